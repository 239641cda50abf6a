from __future__ import annotations

"""LangGraph runtime engine.

``AgentEngine`` drives one bounded agent run: a loop of language model calls
and tool invocations, reported step by step to the caller and to the
execution ledger.

Execution model
---------------

The engine runs a LangGraph state machine over a mutable ``_GraphState``:

- ``check_limits``: before every model call, stop with ``completed`` when the
  step budget (model calls) or the wall time budget is used up. The budget
  counts model calls, not steps: one call that requests three tools yields
  six steps (a ``tool-call``/``tool-result`` pair per tool).
- ``call_model``: one model call. Text becomes a ``text`` step. A turn without
  tool calls ends the run with ``completed``; a model error ends it with
  ``failed``.
- ``dispatch_tools``: the turn's tool calls, sequentially. Each produces a
  ``tool-call`` step and a ``tool-result`` step. Tool errors are fed back to
  the model; only a non-recoverable one ends the run.
- ``finish``: builds the ``ExecutionResult``.

Oversight
---------

Under ``review-before`` a tool flagged ``requires_approval`` is not executed.
The proposed ``tool-call`` step is recorded and the run ends ``escalated``
with the pending action stored in the ledger output. Escalation is terminal;
after a human review the caller starts a new run.

Guarantees
----------

- Step indices start at 0 and increase without gaps; ``on_step`` sees them in
  order.
- The ledger record is finalized whether or not anyone listens, and
  ``on_complete`` fires exactly once, after the last ``on_step``.
- Callbacks, ledger writes after creation and monitoring are best-effort and
  never change the outcome of the run.
- The time budget is checked between steps only; a slow model or tool call
  can overrun it.
- Every model call's usage lands on exactly one step, so the step usages add
  up to the run's usage. A call that reported usage but produced neither text
  nor tool calls is recorded as an empty ``text`` step carrying that usage.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from langgraph.graph import END, StateGraph

from agent_harness.core.monitoring import log_error, log_execution_completed, log_execution_started

from ..errors import AgentHarnessError, ConfigurationError, NonRecoverableToolError
from ..model.base import Message, ModelRequest
from ..schemas.base import utc_now
from ..schemas.definition import AgentDefinition, OversightMode
from ..schemas.execution import (
    ExecutionContext,
    ExecutionRecord,
    ExecutionResult,
    ExecutionStatus,
    MemoryEntry,
    Step,
    StepType,
    TokenUsage,
)
from ..tools.base import ToolContext, ToolResult
from ..tools.builtin import MEMORY_TOOL_NAMES
from ..tools.registry import tool_spec
from .callbacks import CallbackInvoker, ExecutionCallbacks
from .context import resolve_dynamic_context
from .models import EngineDeps, RunState, _GraphState
from .prompt import DEFAULT_SUMMARY, build_system_prompt, build_user_message

logger = logging.getLogger(__name__)

LIVE_VIEW_KEYS = ("live_view_url", "liveViewUrl")


def _live_view_url(result: ToolResult) -> Optional[str]:
    if not result.ok or not isinstance(result.data, dict):
        return None
    for key in LIVE_VIEW_KEYS:
        url = result.data.get(key)
        if isinstance(url, str) and url:
            return url
    return None


class AgentEngine:
    """Execute agent definitions against a language model and a tool registry.

    The engine holds no per-run state; every ``run`` call builds its own
    ``RunState``, so one engine instance serves any number of concurrent runs.
    """

    def __init__(self, *, deps: EngineDeps, clock: Optional[Callable[[], datetime]] = None) -> None:
        """
        Initialize the AgentEngine.

        Args:
            deps: The runtime dependencies (ledger, memory, tools, model).
            clock: Returns the current time; defaults to UTC wall time.
        """
        self._deps = deps
        self._clock = clock or utc_now
        self._graph = self._build_graph()

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        g: StateGraph = StateGraph(_GraphState)
        g.add_node("check_limits", self._node_check_limits)
        g.add_node("call_model", self._node_call_model)
        g.add_node("dispatch_tools", self._node_dispatch_tools)
        g.add_node("finish", self._node_finish)

        g.set_entry_point("check_limits")
        g.add_conditional_edges(
            "check_limits",
            self._route_if_finished,
            {"finish": "finish", "continue": "call_model"},
        )
        g.add_conditional_edges(
            "call_model",
            self._route_after_model,
            {"finish": "finish", "tools": "dispatch_tools", "continue": "check_limits"},
        )
        g.add_conditional_edges(
            "dispatch_tools",
            self._route_if_finished,
            {"finish": "finish", "continue": "check_limits"},
        )
        g.add_edge("finish", END)
        return g.compile()

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------

    async def run(
        self,
        definition: AgentDefinition,
        context: ExecutionContext,
        callbacks: Optional[ExecutionCallbacks] = None,
    ) -> ExecutionResult:
        """Run ``definition`` to a terminal state.

        Input is expected to be validated already (see
        ``agent_core.validation.validate_input``). The method never raises for
        run failures: configuration errors, model errors and unexpected
        exceptions all come back as a ``failed`` result.
        """
        invoker = CallbackInvoker(callbacks)
        started_at = self._clock()

        record = ExecutionRecord(
            definition_id=definition.id,
            definition_version=definition.version,
            org_id=context.org_id,
            user_id=context.user_id,
            trigger_type=context.trigger_type,
            input=dict(context.input),
            subject_id=context.subject_id,
            model=getattr(self._deps.model, "name", None),
            started_at=started_at,
        )
        try:
            execution_id: Optional[str] = await self._deps.executions.create(record)
        except Exception as e:
            logger.error(f"Could not create execution record for {definition.id}: {e}", exc_info=True)
            result = ExecutionResult(
                status=ExecutionStatus.failed,
                summary="Agent execution failed.",
                duration_ms=self._elapsed_ms(started_at),
                error=f"execution ledger unavailable: {e}",
            )
            await invoker.error(e)
            await invoker.complete(result)
            return result

        logger.info(f"Execution {execution_id} started for agent {definition.id} ({context.trigger_type.value})")
        log_execution_started(execution_id, definition.id, context.org_id, context.trigger_type.value)
        await invoker.execution_created(execution_id)

        try:
            tools = self._deps.tools.resolve(definition.tools)
        except ConfigurationError as e:
            logger.error(f"Execution {execution_id} misconfigured: {e}")
            result = ExecutionResult(
                execution_id=execution_id,
                status=ExecutionStatus.failed,
                summary="Agent execution failed.",
                duration_ms=self._elapsed_ms(started_at),
                error=f"configuration error: {e}",
            )
            return await self._conclude(execution_id, result, invoker, e)

        memory = await self._read_memory(definition, context)
        extra_context = await resolve_dynamic_context(self._deps.context_providers, definition, context)
        run = RunState(
            execution_id=execution_id,
            definition=definition,
            context=context,
            tools=tools,
            system_prompt=build_system_prompt(
                definition, context, now=started_at, memory=memory, extra_context=extra_context
            ),
            started_at=started_at,
            memory=memory,
            invoker=invoker,
            messages=[Message.user(build_user_message(definition, context.input))],
        )

        state: _GraphState = {"run": run}
        try:
            recursion_limit = definition.constraints.max_steps * 3 + 10
            await self._graph.ainvoke(state, config={"recursion_limit": recursion_limit})
        except Exception as e:
            logger.error(f"Execution {execution_id} crashed: {e}", exc_info=True)
            run.status = ExecutionStatus.failed
            run.summary = "Agent execution failed."
            run.error = f"{type(e).__name__}: {e}"
            run.error_exc = e

        await self._flush_usage(run)
        result = self._build_result(run)
        return await self._conclude(execution_id, result, invoker, run.error_exc)

    # ------------------------------------------------------------------
    # graph nodes
    # ------------------------------------------------------------------

    async def _node_check_limits(self, state: _GraphState) -> _GraphState:
        run = state["run"]
        constraints = run.definition.constraints
        reason: Optional[str] = None
        if run.model_calls >= constraints.max_steps:
            reason = f"step limit of {constraints.max_steps} reached"
        elif self._elapsed_ms(run.started_at) >= constraints.max_execution_time_ms:
            reason = f"time limit of {constraints.max_execution_time_ms} ms reached"

        if reason is not None:
            logger.info(f"Execution {run.execution_id} truncated: {reason}")
            run.status = ExecutionStatus.completed
            run.summary = f"{run.last_text}\n\n(Stopped: {reason}.)" if run.last_text else f"Stopped: {reason}."
            state["_finished"] = True
        return state

    async def _node_call_model(self, state: _GraphState) -> _GraphState:
        run = state["run"]
        request = ModelRequest(
            system_prompt=run.system_prompt,
            messages=list(run.messages),
            tools=[tool_spec(t) for t in run.tools.values()],
        )
        run.model_calls += 1
        try:
            turn = await self._deps.model.generate(request)
        except Exception as e:
            logger.error(f"Execution {run.execution_id}: model call {run.model_calls} failed: {e}")
            run.status = ExecutionStatus.failed
            run.summary = "Agent execution failed."
            run.error = f"model error: {e}"
            run.error_exc = e
            state["_finished"] = True
            state["_route"] = "finish"
            return state

        run.usage = run.usage + turn.usage
        run.unattributed_usage = (
            turn.usage if run.unattributed_usage is None else run.unattributed_usage + turn.usage
        )
        run.messages.append(Message.assistant(turn.text, turn.tool_calls))

        if turn.text and turn.text.strip():
            run.last_text = turn.text
            await self._emit_step(
                run,
                self._step(run, type=StepType.text, content=turn.text, usage=run.take_usage()),
            )

        if turn.tool_calls:
            run.pending_calls = list(turn.tool_calls)
            state["_route"] = "tools"
        elif turn.finished:
            run.status = ExecutionStatus.completed
            run.summary = run.last_text or DEFAULT_SUMMARY
            state["_finished"] = True
            state["_route"] = "finish"
        else:
            # Truncated output: ask again, subject to the limits.
            state["_route"] = "continue"
        return state

    async def _node_dispatch_tools(self, state: _GraphState) -> _GraphState:
        run = state["run"]
        calls, run.pending_calls = run.pending_calls, []
        review = run.definition.oversight.mode == OversightMode.review_before

        for call in calls:
            tool = run.tools.get(call.name)
            await self._emit_step(
                run,
                self._step(
                    run,
                    type=StepType.tool_call,
                    tool_name=call.name,
                    tool_call_id=call.id,
                    input=dict(call.arguments),
                    usage=run.take_usage(),
                ),
            )

            if tool is not None and review and tool.requires_approval:
                logger.info(f"Execution {run.execution_id} escalated: {call.name} requires review")
                run.status = ExecutionStatus.escalated
                run.summary = f'Awaiting human review before running "{call.name}".'
                run.pending_action = {
                    "tool_name": call.name,
                    "tool_call_id": call.id,
                    "input": dict(call.arguments),
                }
                state["_finished"] = True
                return state

            if tool is None:
                # Model asked for a tool outside the definition: feed it back.
                result = ToolResult.failure(f"Unknown tool '{call.name}'. Available tools: {', '.join(run.tools)}")
            else:
                result = await self._deps.dispatcher.dispatch(tool, call, self._tool_context(run))

            await self._emit_step(
                run,
                self._step(
                    run,
                    type=StepType.tool_result,
                    tool_name=call.name,
                    tool_call_id=call.id,
                    output=result.to_output(),
                    is_error=not result.ok,
                ),
            )
            run.messages.append(Message.tool_result(call, result.to_output(), is_error=not result.ok))

            url = _live_view_url(result)
            if url is not None:
                await run.invoker.live_view(url)

            if not result.recoverable:
                run.status = ExecutionStatus.failed
                run.summary = "Agent execution failed."
                run.error = f"tool {call.name} failed: {result.error}"
                run.error_exc = NonRecoverableToolError(result.error or call.name)
                state["_finished"] = True
                return state
        return state

    async def _node_finish(self, state: _GraphState) -> _GraphState:
        """Graph exit node. The result is assembled by ``run``."""
        state["_finished"] = True
        return state

    # ------------------------------------------------------------------
    # routing
    # ------------------------------------------------------------------

    @staticmethod
    def _route_if_finished(state: _GraphState) -> str:
        return "finish" if state.get("_finished") else "continue"

    @staticmethod
    def _route_after_model(state: _GraphState) -> str:
        if state.get("_finished"):
            return "finish"
        return state.get("_route") or "continue"

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _elapsed_ms(self, started_at: datetime) -> int:
        return max(0, int((self._clock() - started_at).total_seconds() * 1000))

    async def _read_memory(self, definition: AgentDefinition, context: ExecutionContext) -> Optional[MemoryEntry]:
        if self._deps.memory is None or not context.subject_id:
            return None
        if not any(name in MEMORY_TOOL_NAMES for name in definition.tools):
            return None
        try:
            return await self._deps.memory.get(definition.id, context.subject_id, context.org_id)
        except Exception as e:
            logger.warning(f"Memory read failed for {definition.id}/{context.subject_id}; continuing without: {e}")
            return None

    def _tool_context(self, run: RunState) -> ToolContext:
        return ToolContext(
            execution_id=run.execution_id,
            definition=run.definition,
            context=run.context,
            memory=run.memory,
            deps=self._deps,
            browser_action_sink=run.invoker.browser_action,
        )

    def _step(self, run: RunState, **fields: Any) -> Step:
        return Step(index=run.next_index, timestamp=self._clock(), **fields)

    async def _emit_step(self, run: RunState, step: Step) -> None:
        run.steps.append(step)
        if run.execution_id is not None:
            try:
                await self._deps.executions.append_step(run.execution_id, step)
            except Exception as e:
                logger.warning(f"Failed to append step {step.index} to execution {run.execution_id}: {e}")
        await run.invoker.step(step)

    async def _flush_usage(self, run: RunState) -> None:
        """Attach usage no step has claimed yet to an empty text step."""
        usage = run.take_usage()
        if usage is not None and usage != TokenUsage():
            await self._emit_step(run, self._step(run, type=StepType.text, content="", usage=usage))

    def _build_result(self, run: RunState) -> ExecutionResult:
        status = run.status or ExecutionStatus.completed
        return ExecutionResult(
            execution_id=run.execution_id,
            status=status,
            summary=run.summary or (run.last_text or DEFAULT_SUMMARY),
            steps=list(run.steps),
            usage=run.usage,
            duration_ms=self._elapsed_ms(run.started_at),
            error=run.error,
            pending_action=run.pending_action,
        )

    async def _conclude(
        self,
        execution_id: str,
        result: ExecutionResult,
        invoker: CallbackInvoker,
        error: Optional[BaseException],
    ) -> ExecutionResult:
        try:
            await self._deps.executions.finalize(execution_id, result)
        except Exception as e:
            logger.warning(f"Failed to finalize execution {execution_id}: {e}")

        logger.info(
            f"Execution {execution_id} {result.status.value}: steps={len(result.steps)} "
            f"tokens={result.usage.total_tokens} duration_ms={result.duration_ms}"
        )
        log_execution_completed(execution_id, result.status.value, result.duration_ms, result.usage.total_tokens)

        if result.status == ExecutionStatus.failed:
            log_error("AgentExecutionFailed", result.error or "", {"execution_id": execution_id})
            await invoker.error(error or AgentHarnessError(result.error or "agent execution failed"))
        await invoker.complete(result)
        return result
