"""Execution callbacks.

Callers observe a run through ``ExecutionCallbacks``: six optional hooks that
may be plain functions or coroutine functions. The engine only ever calls them
through ``CallbackInvoker``, which logs and swallows anything a hook raises, so
a failing or disconnected consumer cannot change the outcome of the run.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..schemas.execution import BrowserAction, ExecutionResult, Step

logger = logging.getLogger(__name__)


@dataclass
class ExecutionCallbacks:
    on_execution_created: Optional[Callable[[str], Any]] = None
    on_step: Optional[Callable[[Step], Any]] = None
    on_live_view: Optional[Callable[[str], Any]] = None
    on_browser_action: Optional[Callable[[BrowserAction], Any]] = None
    on_complete: Optional[Callable[[ExecutionResult], Any]] = None
    on_error: Optional[Callable[[BaseException], Any]] = None


class CallbackInvoker:
    """Best-effort dispatch of ``ExecutionCallbacks`` for one run.

    ``complete`` fires at most once per invoker, which is what gives every run
    exactly one ``on_complete`` notification.
    """

    def __init__(self, callbacks: Optional[ExecutionCallbacks]) -> None:
        self._cb = callbacks or ExecutionCallbacks()
        self._completed = False

    @property
    def completed(self) -> bool:
        return self._completed

    async def _call(self, hook_name: str, *args: Any) -> None:
        fn = getattr(self._cb, hook_name)
        if fn is None:
            return
        try:
            outcome = fn(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Callback {hook_name} raised {type(e).__name__}: {e}")

    async def execution_created(self, execution_id: str) -> None:
        await self._call("on_execution_created", execution_id)

    async def step(self, step: Step) -> None:
        await self._call("on_step", step)

    async def live_view(self, url: str) -> None:
        await self._call("on_live_view", url)

    async def browser_action(self, action: BrowserAction) -> None:
        await self._call("on_browser_action", action)

    async def error(self, error: BaseException) -> None:
        await self._call("on_error", error)

    async def complete(self, result: ExecutionResult) -> None:
        if self._completed:
            logger.debug("on_complete already delivered; ignoring duplicate")
            return
        self._completed = True
        await self._call("on_complete", result)
