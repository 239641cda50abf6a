"""Agent execution core: definitions, engine, tools, ledger and memory.

This package contains the "engine room" of the agent harness.

Design overview
---------------

An agent is a declarative ``AgentDefinition``: a system prompt, the tools it
may call, its input fields, execution limits, a trigger and an oversight
mode. Running it is a bounded loop of language model calls and tool
invocations executed by ``runtime.AgentEngine`` on top of LangGraph.

- Every run writes a durable execution record (the ledger) and reports its
  progress step by step through ``ExecutionCallbacks``.
- Per-subject memory persists across runs and is only written through the
  ``saveAgentMemory`` tool.
- Trigger matching (``conditions.matches``) is pure; scheduling and event
  delivery are external and call ``AgentService.dispatch_event``.

Typical usage
-------------

Most applications should use ``agent_core.service.AgentService``:

1. ``factory.build_application()`` wires repositories, tools and the model.
2. ``service.run(definition_id, context)`` validates the input and runs.
3. ``service.stream(...)`` delivers the same run as server-sent events.
"""

from .conditions import matches
from .errors import (
    AgentHarnessError,
    ConfigurationError,
    DefinitionNotFoundError,
    DefinitionValidationError,
    InputValidationError,
    ModelCallError,
    NonRecoverableToolError,
    UnknownToolError,
)
from .runtime import AgentEngine, EngineDeps, ExecutionCallbacks
from .schemas import (
    AgentDefinition,
    ExecutionContext,
    ExecutionRecord,
    ExecutionResult,
    ExecutionStatus,
    MemoryEntry,
    Step,
    TokenUsage,
)
from .service import AgentService, AgentServiceDeps, OversightNotifier
from .streaming import ExecutionEventStream
from .validation import validate_definition, validate_input

__all__ = [
    "AgentDefinition",
    "AgentEngine",
    "AgentHarnessError",
    "AgentService",
    "AgentServiceDeps",
    "ConfigurationError",
    "DefinitionNotFoundError",
    "DefinitionValidationError",
    "EngineDeps",
    "ExecutionCallbacks",
    "ExecutionContext",
    "ExecutionEventStream",
    "ExecutionRecord",
    "ExecutionResult",
    "ExecutionStatus",
    "InputValidationError",
    "MemoryEntry",
    "ModelCallError",
    "NonRecoverableToolError",
    "OversightNotifier",
    "Step",
    "TokenUsage",
    "UnknownToolError",
    "matches",
    "validate_definition",
    "validate_input",
]
