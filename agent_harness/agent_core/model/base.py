"""Language model capability contract.

The engine treats the model as an opaque capability: a system prompt, the
conversation so far and the tool specs go in; text, tool calls and token usage
come out. The call may fail or time out, in which case implementations raise
``ModelCallError`` after their own retries.

The conversation is kept in a small neutral message form so the engine does
not depend on any provider SDK. Adapters (see ``pydantic_ai.py``) translate it
to their provider's message types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol, Sequence, Tuple

from ..schemas.execution import TokenUsage
from ..tools.base import ToolCall, ToolSpec


class MessageRole(str, Enum):
    user = "user"
    assistant = "assistant"
    tool = "tool"


@dataclass(frozen=True)
class Message:
    role: MessageRole
    content: str = ""
    tool_calls: Tuple[ToolCall, ...] = ()
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    output: Any = None
    is_error: bool = False

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.user, content=content)

    @classmethod
    def assistant(cls, content: Optional[str], tool_calls: Sequence[ToolCall] = ()) -> "Message":
        return cls(role=MessageRole.assistant, content=content or "", tool_calls=tuple(tool_calls))

    @classmethod
    def tool_result(cls, call: ToolCall, output: Any, *, is_error: bool = False) -> "Message":
        return cls(
            role=MessageRole.tool,
            tool_call_id=call.id,
            tool_name=call.name,
            output=output,
            is_error=is_error,
        )


@dataclass(frozen=True)
class ModelRequest:
    system_prompt: str
    messages: Sequence[Message]
    tools: Sequence[ToolSpec] = ()


@dataclass(frozen=True)
class ModelTurn:
    """One model response."""

    text: Optional[str] = None
    tool_calls: Tuple[ToolCall, ...] = ()
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: Optional[str] = None
    model_name: Optional[str] = None

    @property
    def finished(self) -> bool:
        # "length" means the answer was cut off, so the loop asks again.
        return not self.tool_calls and self.finish_reason != "length"


class LanguageModel(Protocol):
    """Protocol for language model capabilities."""

    name: str

    async def generate(self, request: ModelRequest) -> ModelTurn: ...
