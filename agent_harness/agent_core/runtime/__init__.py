"""LangGraph-based execution runtime for agent runs.

The runtime takes a pinned ``AgentDefinition`` and a validated
``ExecutionContext`` and drives a bounded loop of model calls and tool
invocations until the run reaches a terminal status (``completed``,
``failed`` or ``escalated``).

The main entry point is ``AgentEngine``. Progress is reported through
``ExecutionCallbacks`` and persisted through the execution ledger provided in
``EngineDeps``.
"""

from .callbacks import CallbackInvoker, ExecutionCallbacks
from .context import ContextProvider
from .engine import AgentEngine
from .models import EngineDeps, RunState
from .prompt import build_system_prompt, build_user_message

__all__ = [
    "AgentEngine",
    "CallbackInvoker",
    "ContextProvider",
    "EngineDeps",
    "ExecutionCallbacks",
    "RunState",
    "build_system_prompt",
    "build_user_message",
]
