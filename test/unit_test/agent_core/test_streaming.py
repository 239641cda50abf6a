from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, List, Type

import pytest
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from agent_harness.agent_core.model.base import ModelRequest, ModelTurn
from agent_harness.agent_core.repos.memory import InMemoryExecutionRepository
from agent_harness.agent_core.runtime.engine import AgentEngine
from agent_harness.agent_core.runtime.models import EngineDeps
from agent_harness.agent_core.schemas.definition import AgentDefinition
from agent_harness.agent_core.schemas.execution import ExecutionContext, ExecutionStatus, TokenUsage
from agent_harness.agent_core.streaming import (
    EVENT_EXECUTION_CREATED,
    EVENT_LIVE_VIEW,
    EVENT_RESULT,
    EVENT_STATUS,
    EVENT_STEP,
    ExecutionEventStream,
)
from agent_harness.agent_core.tools.base import Tool, ToolCall, ToolContext, ToolResult
from agent_harness.agent_core.tools.registry import ToolRegistry


class _ScriptedModel:
    name = "fake-model"

    def __init__(self, turns: List[ModelTurn], delay: float = 0.0) -> None:
        self._turns = list(turns)
        self._delay = delay

    async def generate(self, request: ModelRequest) -> ModelTurn:
        if self._delay:
            await asyncio.sleep(self._delay)
        return self._turns.pop(0)


class _UrlInput(BaseModel):
    url: str


@dataclass(frozen=True)
class _OpenPageTool(Tool):
    name: str = "openPage"
    description: str = "Open a page in a remote browser"
    input_model: Type[BaseModel] = _UrlInput
    requires_approval: bool = False

    async def execute(self, ctx: ToolContext, data: _UrlInput) -> ToolResult:
        return ToolResult.success({"live_view_url": f"https://live.example/?target={data.url}"})


def _engine(model, ledger: InMemoryExecutionRepository) -> AgentEngine:
    registry = ToolRegistry()
    registry.register(_OpenPageTool())
    return AgentEngine(deps=EngineDeps(executions=ledger, tools=registry, model=model))


def _turns() -> List[ModelTurn]:
    return [
        ModelTurn(
            tool_calls=(ToolCall(id="c1", name="openPage", arguments={"url": "jobs"}),),
            usage=TokenUsage.of(5, 5),
            finish_reason="tool_call",
        ),
        ModelTurn(text="Opened the jobs page", usage=TokenUsage.of(5, 5), finish_reason="stop"),
    ]


DEFINITION = AgentDefinition(id="browser-agent", name="Browser agent", tools=["openPage"])


@pytest.mark.asyncio
async def test_events_arrive_in_run_order() -> None:
    ledger = InMemoryExecutionRepository()
    stream = ExecutionEventStream(_engine(_ScriptedModel(_turns()), ledger), DEFINITION, ExecutionContext())

    events = [event async for event in stream.events()]

    names = [e.event for e in events]
    assert names == [
        EVENT_STATUS,
        EVENT_EXECUTION_CREATED,
        EVENT_STEP,
        EVENT_STEP,
        EVENT_LIVE_VIEW,
        EVENT_STEP,
        EVENT_RESULT,
        EVENT_STATUS,
    ]
    payloads: List[Any] = [json.loads(e.data) for e in events]
    assert payloads[0] == {"status": "running"}
    assert [p["index"] for p in payloads if "index" in p] == [0, 1, 2]
    assert payloads[4] == {"url": "https://live.example/?target=jobs"}
    assert payloads[6]["status"] == "completed"
    assert payloads[6]["summary"] == "Opened the jobs page"
    assert payloads[-1] == {"status": "completed"}
    assert payloads[1]["execution_id"] == payloads[6]["execution_id"]


@pytest.mark.asyncio
async def test_disconnected_consumer_does_not_stop_the_run() -> None:
    ledger = InMemoryExecutionRepository()
    stream = ExecutionEventStream(
        _engine(_ScriptedModel(_turns(), delay=0.01), ledger), DEFINITION, ExecutionContext()
    )

    async for event in stream.events():
        assert event.event == EVENT_STATUS
        break

    result = await stream.result()

    assert result.status == ExecutionStatus.completed
    record = await ledger.get(result.execution_id)
    assert record.status == ExecutionStatus.completed
    assert len(record.steps) == 3


@pytest.mark.asyncio
async def test_result_without_consuming_events() -> None:
    ledger = InMemoryExecutionRepository()
    stream = ExecutionEventStream(_engine(_ScriptedModel(_turns()), ledger), DEFINITION, ExecutionContext())

    result = await stream.result()

    assert result.summary == "Opened the jobs page"
    assert stream.start() is stream.start()


@pytest.mark.asyncio
async def test_cancelled_run_ends_the_event_stream() -> None:
    stream = ExecutionEventStream(
        _engine(_ScriptedModel(_turns(), delay=30), InMemoryExecutionRepository()), DEFINITION, ExecutionContext()
    )
    seen: List[str] = []

    async def consume() -> None:
        async for event in stream.events():
            seen.append(event.event)
            if event.event == EVENT_EXECUTION_CREATED:
                stream.start().cancel()

    await asyncio.wait_for(consume(), timeout=5)

    assert seen == [EVENT_STATUS, EVENT_EXECUTION_CREATED]
    assert stream.start().cancelled()


@pytest.mark.asyncio
async def test_as_response_wraps_the_event_iterator() -> None:
    stream = ExecutionEventStream(
        _engine(_ScriptedModel(_turns()), InMemoryExecutionRepository()), DEFINITION, ExecutionContext()
    )

    response = stream.as_response()

    assert isinstance(response, EventSourceResponse)
    await stream.result()
