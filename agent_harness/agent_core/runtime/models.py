from __future__ import annotations

"""Runtime dependency bundle and LangGraph state types.

The runtime engine is designed to be dependency-injected.

- ``EngineDeps`` collects the ledger, memory store, tool registry, language
  model and per-definition context providers the engine needs.
- ``RunState`` is the per-run working set (conversation, steps, usage,
  counters). It is owned by exactly one run and never shared.
- ``_GraphState`` is the mutable state passed between LangGraph nodes; it
  carries the ``RunState`` plus the routing flags that terminate the graph.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, NotRequired, Optional, Required, TypedDict

from ..model.base import LanguageModel, Message
from ..repos.interfaces import ExecutionRepository, MemoryRepository
from ..schemas.definition import AgentDefinition
from ..schemas.execution import ExecutionContext, ExecutionStatus, MemoryEntry, Step, TokenUsage
from ..tools.base import Tool, ToolCall
from ..tools.dispatch import ToolDispatcher
from ..tools.registry import ToolRegistry
from .callbacks import CallbackInvoker
from .context import ContextProvider


@dataclass(frozen=True)
class EngineDeps:
    """Dependency bundle for ``AgentEngine``.

    This object is typically constructed by application wiring code (see
    ``agent_core.factory``) and passed into the engine or ``AgentService``.
    The memory repository is optional; without it the memory tools report
    that memory is not configured.
    """

    executions: ExecutionRepository
    tools: ToolRegistry
    model: LanguageModel

    memory: Optional[MemoryRepository] = None
    dispatcher: ToolDispatcher = field(default_factory=ToolDispatcher)
    # definition id -> extra CONTEXT: text for that definition's runs
    context_providers: Mapping[str, ContextProvider] = field(default_factory=dict)


@dataclass
class RunState:
    """Working set of a single run."""

    execution_id: Optional[str]
    definition: AgentDefinition
    context: ExecutionContext
    tools: Dict[str, Tool]
    system_prompt: str
    started_at: datetime

    memory: Optional[MemoryEntry] = None
    invoker: Optional[CallbackInvoker] = None
    messages: List[Message] = field(default_factory=list)
    steps: List[Step] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    # Usage of model calls that have not produced a step yet.
    unattributed_usage: Optional[TokenUsage] = None
    model_calls: int = 0
    pending_calls: List[ToolCall] = field(default_factory=list)
    last_text: Optional[str] = None

    status: Optional[ExecutionStatus] = None
    summary: str = ""
    error: Optional[str] = None
    error_exc: Optional[BaseException] = None
    pending_action: Optional[Dict[str, Any]] = None

    @property
    def next_index(self) -> int:
        return len(self.steps)

    def take_usage(self) -> Optional[TokenUsage]:
        usage, self.unattributed_usage = self.unattributed_usage, None
        return usage


class _GraphState(TypedDict):
    """Mutable LangGraph state for a single engine run.

    Required keys:

    - ``run``: the run's ``RunState``.

    Optional keys:

    - ``_finished``: set once the run has a terminal status.
    - ``_route``: where ``call_model`` sends the graph next.
    """

    run: Required[RunState]
    _finished: NotRequired[bool]
    _route: NotRequired[str]
