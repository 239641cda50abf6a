from __future__ import annotations

"""Server-sent event adapter for agent runs.

``ExecutionEventStream`` subscribes to the engine callbacks and turns every
notification into a ``ServerSentEvent`` (sse-starlette) with an event name and
a JSON payload:

- ``status``: ``{"status": "running"}`` first, the terminal status last,
- ``execution-created``: ``{"execution_id": ...}``,
- ``step``: the step,
- ``live-view``: ``{"url": ...}``,
- ``browser-action``: the browser action,
- ``result``: the ``ExecutionResult``.

The channel is one-way. The engine runs in its own task, so a client that
disconnects (the consumer stops iterating) never cancels the run: it keeps
going and still finalizes its ledger record.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Optional, Set

from sse_starlette.sse import EventSourceResponse, ServerSentEvent

from .runtime.callbacks import ExecutionCallbacks
from .runtime.engine import AgentEngine
from .schemas.definition import AgentDefinition
from .schemas.execution import ExecutionContext, ExecutionResult

logger = logging.getLogger(__name__)

EVENT_STATUS = "status"
EVENT_EXECUTION_CREATED = "execution-created"
EVENT_STEP = "step"
EVENT_LIVE_VIEW = "live-view"
EVENT_BROWSER_ACTION = "browser-action"
EVENT_RESULT = "result"

# Keeps detached runs alive after their consumer went away.
_background_runs: Set["asyncio.Task[ExecutionResult]"] = set()

_DONE = object()


def serialize_payload(payload: Any) -> str:
    return json.dumps(payload, default=str)


class ExecutionEventStream:
    """Stream one agent run as server-sent events.

    Usage::

        stream = ExecutionEventStream(engine, definition, context)
        return stream.as_response()          # inside a Starlette/FastAPI route

    or iterate ``stream.events()`` directly.
    """

    def __init__(self, engine: AgentEngine, definition: AgentDefinition, context: ExecutionContext) -> None:
        self._engine = engine
        self._definition = definition
        self._context = context
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._task: Optional["asyncio.Task[ExecutionResult]"] = None

    def _push(self, event: str, payload: Any) -> None:
        self._queue.put_nowait(ServerSentEvent(data=serialize_payload(payload), event=event))

    def _callbacks(self) -> ExecutionCallbacks:
        def on_complete(result: ExecutionResult) -> None:
            self._push(EVENT_RESULT, result.model_dump(mode="json"))
            self._push(EVENT_STATUS, {"status": result.status.value})
            self._queue.put_nowait(_DONE)

        return ExecutionCallbacks(
            on_execution_created=lambda execution_id: self._push(
                EVENT_EXECUTION_CREATED, {"execution_id": execution_id}
            ),
            on_step=lambda step: self._push(EVENT_STEP, step.model_dump(mode="json")),
            on_live_view=lambda url: self._push(EVENT_LIVE_VIEW, {"url": url}),
            on_browser_action=lambda action: self._push(EVENT_BROWSER_ACTION, action.model_dump(mode="json")),
            on_complete=on_complete,
        )

    def start(self) -> "asyncio.Task[ExecutionResult]":
        """Start the run in its own task (idempotent)."""
        if self._task is None:
            self._push(EVENT_STATUS, {"status": "running"})
            self._task = asyncio.create_task(self._engine.run(self._definition, self._context, self._callbacks()))
            _background_runs.add(self._task)
            self._task.add_done_callback(self._on_task_done)
        return self._task

    def _on_task_done(self, task: "asyncio.Task[ExecutionResult]") -> None:
        _background_runs.discard(task)
        if task.cancelled():
            logger.warning("Streamed run was cancelled before it finished")
            self._queue.put_nowait(_DONE)
        elif task.exception() is not None:
            logger.error(f"Streamed run ended with an exception: {task.exception()}")
            self._queue.put_nowait(_DONE)

    async def events(self) -> AsyncIterator[ServerSentEvent]:
        """Yield events in order until the run's ``result`` has been sent."""
        self.start()
        while True:
            item = await self._queue.get()
            if item is _DONE:
                return
            yield item

    async def result(self) -> ExecutionResult:
        """Wait for the run to finish, whether or not anyone consumed the events."""
        return await self.start()

    def as_response(self) -> EventSourceResponse:
        return EventSourceResponse(self.events())


__all__ = [
    "EVENT_BROWSER_ACTION",
    "EVENT_EXECUTION_CREATED",
    "EVENT_LIVE_VIEW",
    "EVENT_RESULT",
    "EVENT_STATUS",
    "EVENT_STEP",
    "ExecutionEventStream",
    "serialize_payload",
]
