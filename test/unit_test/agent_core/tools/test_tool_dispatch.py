from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Type

import pytest
from pydantic import BaseModel

from agent_harness.agent_core.errors import NonRecoverableToolError
from agent_harness.agent_core.schemas.definition import AgentDefinition
from agent_harness.agent_core.schemas.execution import BrowserAction, ExecutionContext
from agent_harness.agent_core.tools.base import Tool, ToolCall, ToolContext, ToolResult
from agent_harness.agent_core.tools.dispatch import ToolDispatcher


class _AddInput(BaseModel):
    a: int
    b: int


@dataclass(frozen=True)
class _AddTool(Tool):
    name: str = "add"
    description: str = "Add two integers"
    input_model: Type[BaseModel] = _AddInput
    requires_approval: bool = False
    raises: Any = None
    bare: bool = False

    async def execute(self, ctx: ToolContext, data: _AddInput) -> Any:
        if self.raises is not None:
            raise self.raises
        if self.bare:
            return data.a + data.b
        return ToolResult.success({"sum": data.a + data.b})


def _ctx() -> ToolContext:
    return ToolContext(execution_id="exec-1", definition=AgentDefinition(name="Calc"), context=ExecutionContext())


@pytest.mark.asyncio
async def test_valid_arguments_are_parsed_before_execute() -> None:
    result = await ToolDispatcher().dispatch(_AddTool(), ToolCall(id="c1", name="add", arguments={"a": "2", "b": 3}), _ctx())

    assert result.ok
    assert result.to_output() == {"data": {"sum": 5}}


@pytest.mark.asyncio
async def test_invalid_arguments_are_a_recoverable_failure() -> None:
    result = await ToolDispatcher().dispatch(_AddTool(), ToolCall(id="c1", name="add", arguments={"a": 1}), _ctx())

    assert not result.ok
    assert result.recoverable is True
    assert result.error.startswith("Invalid arguments for add: b:")


@pytest.mark.asyncio
async def test_tool_exception_is_a_recoverable_failure() -> None:
    tool = _AddTool(raises=RuntimeError("upstream down"))

    result = await ToolDispatcher().dispatch(tool, ToolCall(id="c1", name="add", arguments={"a": 1, "b": 1}), _ctx())

    assert result.recoverable is True
    assert result.to_output() == {"error": "RuntimeError: upstream down"}


@pytest.mark.asyncio
async def test_non_recoverable_error_stops() -> None:
    tool = _AddTool(raises=NonRecoverableToolError("credentials revoked"))

    result = await ToolDispatcher().dispatch(tool, ToolCall(id="c1", name="add", arguments={"a": 1, "b": 1}), _ctx())

    assert result.recoverable is False
    assert result.error == "credentials revoked"


@pytest.mark.asyncio
async def test_bare_return_value_is_wrapped() -> None:
    result = await ToolDispatcher().dispatch(
        _AddTool(bare=True), ToolCall(id="c1", name="add", arguments={"a": 1, "b": 1}), _ctx()
    )

    assert result == ToolResult.success(2)


@pytest.mark.asyncio
async def test_browser_actions_are_indexed_per_context() -> None:
    seen: list[BrowserAction] = []

    async def sink(action: BrowserAction) -> None:
        seen.append(action)

    ctx = _ctx()
    ctx.browser_action_sink = sink
    await ctx.emit_browser_action("navigate", action="https://example.com")
    await ctx.emit_browser_action("click", reasoning="open the jobs page")

    assert [(a.index, a.type) for a in seen] == [(0, "navigate"), (1, "click")]
    assert seen[1].reasoning == "open the jobs page"
    assert seen[1].action is None
