"""Tool dispatch.

``ToolDispatcher.dispatch`` is the single place where a model-issued tool call
meets a tool implementation. It validates the arguments against the tool's
``input_model`` and turns every failure into a ``ToolResult``:

- invalid arguments -> recoverable error (the model can correct itself),
- an exception raised by the tool -> recoverable error,
- ``NonRecoverableToolError`` -> non-recoverable error (the run ends).

Repeated identical calls are executed each time; there is no deduplication.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from ..errors import NonRecoverableToolError
from .base import Tool, ToolCall, ToolContext, ToolResult

logger = logging.getLogger(__name__)


def _describe_validation_error(e: ValidationError) -> str:
    parts = []
    for err in e.errors(include_url=False):
        loc = ".".join(str(p) for p in err.get("loc", ())) or "input"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


class ToolDispatcher:
    async def dispatch(self, tool: Tool, call: ToolCall, ctx: ToolContext) -> ToolResult:
        try:
            data = tool.input_model.model_validate(call.arguments)
        except ValidationError as e:
            logger.info(f"Rejected arguments for tool {call.name}: {e.error_count()} error(s)")
            return ToolResult.failure(f"Invalid arguments for {call.name}: {_describe_validation_error(e)}")

        try:
            result = await tool.execute(ctx, data)
        except NonRecoverableToolError as e:
            logger.error(f"Tool {call.name} failed fatally: {e}")
            return ToolResult.failure(str(e) or type(e).__name__, recoverable=False)
        except Exception as e:
            logger.warning(f"Tool {call.name} raised {type(e).__name__}: {e}")
            return ToolResult.failure(f"{type(e).__name__}: {e}")

        if not isinstance(result, ToolResult):
            # Tools returning a bare payload are treated as a success.
            return ToolResult.success(result)
        return result
