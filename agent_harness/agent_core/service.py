from __future__ import annotations

"""High-level orchestration service for agent runs.

``AgentService`` is what application code (HTTP routes, schedulers, event
consumers) calls. It does the caller-side work around the engine:

- ``run``: resolve the definition, validate the input at the boundary, run
  the engine and, for ``notify-after`` definitions, notify a human.
- ``dispatch_event``: pick the active event-triggered definitions whose event
  name and conditions match, then run each of them.
- ``stream``: the same as ``run`` but delivered as server-sent events.

Input that fails validation raises ``InputValidationError`` before any ledger
record is created. Everything after that point is reported through the
``ExecutionResult``.

``AgentService`` is intentionally thin: execution semantics live in the
engine, matching rules in ``conditions``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

from .conditions import select_matching
from .errors import AgentHarnessError, ConfigurationError, DefinitionNotFoundError
from .repos.interfaces import DefinitionRepository
from .runtime import AgentEngine, EngineDeps, ExecutionCallbacks
from .schemas.definition import AgentDefinition, OversightMode, TriggerType
from .schemas.execution import ExecutionContext, ExecutionRecord, ExecutionResult
from .streaming import ExecutionEventStream
from .validation import validate_input

logger = logging.getLogger(__name__)


class OversightNotifier(Protocol):
    """Receives finished runs of ``notify-after`` definitions."""

    async def notify(self, definition: AgentDefinition, result: ExecutionResult) -> None: ...


@dataclass(frozen=True)
class AgentServiceDeps:
    """Dependency bundle for ``AgentService``."""

    engine_deps: EngineDeps
    definitions: DefinitionRepository
    notifier: Optional[OversightNotifier] = None


class AgentService:
    """Resolve, validate, run and dispatch agent definitions."""

    def __init__(self, *, deps: AgentServiceDeps, engine: Optional[AgentEngine] = None) -> None:
        self._deps = deps
        self._engine = engine or AgentEngine(deps=deps.engine_deps)

    @property
    def engine(self) -> AgentEngine:
        return self._engine

    async def get_definition(self, definition_id: str) -> AgentDefinition:
        """
        Load a definition.

        Raises:
            DefinitionNotFoundError: if the id is unknown.
        """
        definition = await self._deps.definitions.get(definition_id)
        if definition is None:
            raise DefinitionNotFoundError(definition_id)
        return definition

    async def prepare(self, definition_id: str, context: ExecutionContext) -> tuple[AgentDefinition, ExecutionContext]:
        """
        Resolve the definition and validate the context's input against it.

        Raises:
            DefinitionNotFoundError: if the id is unknown.
            ConfigurationError: if the definition is inactive.
            InputValidationError: if the input does not satisfy the input fields.
        """
        definition = await self.get_definition(definition_id)
        if not definition.is_active:
            raise ConfigurationError(f"Agent definition '{definition_id}' is inactive")
        validated = validate_input(definition, context.input)
        return definition, context.model_copy(update={"input": validated})

    async def run(
        self,
        definition_id: str,
        context: ExecutionContext,
        callbacks: Optional[ExecutionCallbacks] = None,
    ) -> ExecutionResult:
        definition, prepared = await self.prepare(definition_id, context)
        return await self._run_prepared(definition, prepared, callbacks)

    async def stream(self, definition_id: str, context: ExecutionContext) -> ExecutionEventStream:
        """Validate up front, then hand back an unstarted event stream."""
        definition, prepared = await self.prepare(definition_id, context)
        return ExecutionEventStream(self._engine, definition, prepared)

    async def _run_prepared(
        self,
        definition: AgentDefinition,
        context: ExecutionContext,
        callbacks: Optional[ExecutionCallbacks],
    ) -> ExecutionResult:
        result = await self._engine.run(definition, context, callbacks)
        await self._notify_after(definition, result)
        return result

    async def _notify_after(self, definition: AgentDefinition, result: ExecutionResult) -> None:
        if definition.oversight.mode != OversightMode.notify_after or self._deps.notifier is None:
            return
        try:
            await self._deps.notifier.notify(definition, result)
        except Exception as e:
            logger.warning(f"Oversight notification failed for execution {result.execution_id}: {e}")

    async def matching_event_definitions(
        self, event_name: str, properties: Mapping[str, Any], org_id: Optional[str] = None
    ) -> list[AgentDefinition]:
        candidates = [
            d
            for d in await self._deps.definitions.list(org_id=org_id, active_only=True)
            if d.trigger.type == TriggerType.event and d.trigger.event_name == event_name
        ]
        return select_matching(candidates, properties)

    async def dispatch_event(
        self,
        event_name: str,
        properties: Mapping[str, Any],
        context: Optional[ExecutionContext] = None,
    ) -> list[ExecutionResult]:
        """
        Run every active definition triggered by ``event_name``.

        ``properties`` is both the condition context and the run input. A
        definition whose input validation fails is skipped (and logged); the
        other matching definitions still run, concurrently.
        """
        base = context or ExecutionContext()
        definitions = await self.matching_event_definitions(event_name, properties, base.org_id)
        logger.info(f"Event {event_name}: {len(definitions)} matching definition(s)")

        jobs = []
        for definition in definitions:
            try:
                validated = validate_input(definition, {**base.input, **dict(properties)})
            except AgentHarnessError as e:
                logger.warning(f"Skipping {definition.id} for event {event_name}: {e}")
                continue
            run_context = base.model_copy(update={"input": validated, "trigger_type": TriggerType.event})
            jobs.append(self._run_prepared(definition, run_context, None))

        if not jobs:
            return []
        return list(await asyncio.gather(*jobs))

    async def get_execution(self, execution_id: str) -> Optional[ExecutionRecord]:
        return await self._deps.engine_deps.executions.get(execution_id)

    async def list_executions(self, definition_id: str, limit: int = 20) -> list[ExecutionRecord]:
        return await self._deps.engine_deps.executions.list_by_definition(definition_id, limit=limit)


__all__ = [
    "AgentService",
    "AgentServiceDeps",
    "OversightNotifier",
]
