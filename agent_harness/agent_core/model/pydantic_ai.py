"""Pydantic AI language model adapter.

This module implements the ``LanguageModel`` contract on top of Pydantic AI's
direct model interface (``pydantic_ai.direct.model_request``). The engine keeps
its own loop, so the adapter issues exactly one model request per ``generate``
call and returns the raw text, tool calls and usage; no Pydantic AI ``Agent``
tool loop is involved.

Failures (provider errors, timeouts) are retried ``max_retries`` times and then
surfaced as ``ModelCallError``.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, List, Optional, Union

from pydantic_ai import messages as pai
from pydantic_ai.direct import model_request
from pydantic_ai.models import Model, ModelRequestParameters
from pydantic_ai.tools import ToolDefinition

from agent_harness.core.logging_config import get_logger
from agent_harness.core.monitoring import log_model_call

from ..errors import ModelCallError
from ..schemas.execution import TokenUsage
from ..tools.base import ToolCall
from .base import Message, MessageRole, ModelRequest, ModelTurn, ToolSpec

logger = get_logger(__name__)


def _tool_return_content(output: Any) -> Any:
    if isinstance(output, (dict, list, str, int, float, bool)) or output is None:
        return output
    return json.loads(json.dumps(output, default=str))


def to_pydantic_ai_messages(request: ModelRequest) -> List[pai.ModelMessage]:
    """Translate the neutral conversation into Pydantic AI messages.

    The system prompt is attached to the first request. Consecutive tool
    results are grouped into one request, as providers expect every tool
    return of a turn in the message that follows it.
    """
    out: List[pai.ModelMessage] = []
    pending: List[pai.ModelRequestPart] = []
    if request.system_prompt:
        pending.append(pai.SystemPromptPart(content=request.system_prompt))

    for msg in request.messages:
        if msg.role == MessageRole.user:
            pending.append(pai.UserPromptPart(content=msg.content))
        elif msg.role == MessageRole.tool:
            pending.append(
                pai.ToolReturnPart(
                    tool_name=msg.tool_name or "",
                    content=_tool_return_content(msg.output),
                    tool_call_id=msg.tool_call_id or "",
                )
            )
        else:
            if pending:
                out.append(pai.ModelRequest(parts=pending))
                pending = []
            parts: List[pai.ModelResponsePart] = []
            if msg.content:
                parts.append(pai.TextPart(content=msg.content))
            for call in msg.tool_calls:
                parts.append(pai.ToolCallPart(tool_name=call.name, args=dict(call.arguments), tool_call_id=call.id))
            out.append(pai.ModelResponse(parts=parts))

    if pending:
        out.append(pai.ModelRequest(parts=pending))
    return out


def to_tool_definitions(tools: List[ToolSpec]) -> List[ToolDefinition]:
    return [
        ToolDefinition(name=t.name, description=t.description, parameters_json_schema=t.parameters) for t in tools
    ]


def _usage_of(response: pai.ModelResponse) -> TokenUsage:
    usage = response.usage
    input_tokens = getattr(usage, "input_tokens", None)
    if input_tokens is None:
        input_tokens = getattr(usage, "request_tokens", None)
    output_tokens = getattr(usage, "output_tokens", None)
    if output_tokens is None:
        output_tokens = getattr(usage, "response_tokens", None)
    return TokenUsage.of(int(input_tokens or 0), int(output_tokens or 0))


def from_pydantic_ai_response(response: pai.ModelResponse) -> ModelTurn:
    texts: List[str] = []
    calls: List[ToolCall] = []
    for part in response.parts:
        if isinstance(part, pai.TextPart):
            texts.append(part.content)
        elif isinstance(part, pai.ToolCallPart):
            calls.append(ToolCall(id=part.tool_call_id, name=part.tool_name, arguments=part.args_as_dict()))
    return ModelTurn(
        text="".join(texts) or None,
        tool_calls=tuple(calls),
        usage=_usage_of(response),
        finish_reason=getattr(response, "finish_reason", None),
        model_name=response.model_name,
    )


class PydanticAILanguageModel:
    """``LanguageModel`` backed by a Pydantic AI model.

    Attributes:
        model: A Pydantic AI ``Model`` instance or a model name such as
            ``"anthropic:claude-sonnet-4-5"``.
        max_retries: Extra attempts after the first failed call.
        timeout_seconds: Per-attempt timeout; None disables it.
        retry_backoff_seconds: Linear backoff between attempts.
    """

    def __init__(
        self,
        model: Union[Model, str],
        *,
        max_retries: int = 2,
        timeout_seconds: Optional[float] = 30.0,
        retry_backoff_seconds: float = 0.5,
    ) -> None:
        self.model = model
        self.max_retries = max(0, max_retries)
        self.timeout_seconds = timeout_seconds
        self.retry_backoff_seconds = retry_backoff_seconds
        self.name = model if isinstance(model, str) else model.model_name

    async def _request_once(self, messages: List[pai.ModelMessage], params: ModelRequestParameters) -> pai.ModelResponse:
        call = model_request(self.model, messages, model_request_parameters=params)
        if self.timeout_seconds is None:
            return await call
        return await asyncio.wait_for(call, timeout=self.timeout_seconds)

    async def generate(self, request: ModelRequest) -> ModelTurn:
        messages = to_pydantic_ai_messages(request)
        params = ModelRequestParameters(function_tools=to_tool_definitions(list(request.tools)))

        attempts = self.max_retries + 1
        last_error: Optional[BaseException] = None
        for attempt in range(1, attempts + 1):
            try:
                response = await self._request_once(messages, params)
            except asyncio.TimeoutError as e:
                last_error = e
                logger.warning(f"Model call to {self.name} timed out after {self.timeout_seconds}s (attempt {attempt}/{attempts})")
            except Exception as e:
                last_error = e
                logger.warning(f"Model call to {self.name} failed (attempt {attempt}/{attempts}): {e}")
            else:
                turn = from_pydantic_ai_response(response)
                log_model_call(self.name, turn.usage.input_tokens, turn.usage.output_tokens)
                return turn

            if attempt < attempts and self.retry_backoff_seconds > 0:
                await asyncio.sleep(self.retry_backoff_seconds * attempt)

        reason = "timed out" if isinstance(last_error, asyncio.TimeoutError) else str(last_error)
        raise ModelCallError(f"Model call failed after {attempts} attempt(s): {reason}", attempts=attempts) from last_error
