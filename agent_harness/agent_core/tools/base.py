from __future__ import annotations

"""Tool protocol and execution data models.

A tool is the concrete execution unit the model can ask for by name.

The engine resolves a definition's ``tools`` through a ``ToolRegistry`` and
hands each model-issued ``ToolCall`` to the ``ToolDispatcher``, which validates
the arguments against the tool's ``input_model`` before calling ``execute``.
Every tool therefore has a typed input at the boundary instead of an untyped
map threaded through the engine.

Tools should:

- return ``ToolResult.success(data)`` or ``ToolResult.failure(message)``
  rather than raising for expected problems,
- raise ``NonRecoverableToolError`` only when continuing the run is pointless,
- not enforce oversight themselves (the engine does that before invocation).
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Type

from pydantic import BaseModel

from ..schemas.definition import AgentDefinition
from ..schemas.execution import BrowserAction, ExecutionContext, MemoryEntry


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolSpec:
    """What the model sees of a tool: its name, purpose and JSON schema."""

    name: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    """Structured tool execution result.

    Exactly one of ``data`` / ``error`` is meaningful: ``error`` set means the
    call failed. ``recoverable`` tells the engine whether the failure is fed
    back to the model (True) or ends the run (False).
    """

    data: Any = None
    error: Optional[str] = None
    recoverable: bool = True

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: Any) -> "ToolResult":
        return cls(data=data)

    @classmethod
    def failure(cls, error: str, *, recoverable: bool = True) -> "ToolResult":
        return cls(error=error, recoverable=recoverable)

    def to_output(self) -> Dict[str, Any]:
        if self.ok:
            return {"data": self.data}
        return {"error": self.error}


BrowserActionSink = Callable[[BrowserAction], Awaitable[None]]


@dataclass
class ToolContext:
    """Execution context passed to tool implementations.

    Attributes
    ----------
    execution_id:
        Ledger id of the current run (None when the ledger is unavailable).
    definition:
        The pinned definition snapshot of the run.
    context:
        The run's ``ExecutionContext`` (org, user, subject, input).
    memory:
        Memory snapshot read once at run start, if any.
    deps:
        Runtime dependencies (repositories) bundled in ``EngineDeps``.
    """

    execution_id: Optional[str]
    definition: AgentDefinition
    context: ExecutionContext
    memory: Optional[MemoryEntry] = None
    deps: Any = None
    browser_action_sink: Optional[BrowserActionSink] = None
    _browser_index: int = 0

    async def emit_browser_action(
        self, type: str, *, reasoning: Optional[str] = None, action: Optional[str] = None
    ) -> BrowserAction:
        """Report a browser action as it happens; indices restart per tool call."""
        item = BrowserAction(index=self._browser_index, type=type, reasoning=reasoning, action=action)
        self._browser_index += 1
        if self.browser_action_sink is not None:
            await self.browser_action_sink(item)
        return item


class Tool(Protocol):
    """Protocol for tool implementations."""

    name: str
    description: str
    input_model: Type[BaseModel]
    requires_approval: bool

    async def execute(self, ctx: ToolContext, data: Any) -> ToolResult: ...
