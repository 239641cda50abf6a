from __future__ import annotations

"""Repository interface contracts.

The engine and service depend on these Protocols instead of concrete
persistence implementations.

Contract guidelines
-------------------

- All methods are async.
- Implementations must be safe to call concurrently from many runs. Writes are
  keyed per execution id (ledger) or per memory key, so runs never contend on
  the same ledger row.
- The ledger is append-only for steps. ``finalize`` writes the terminal state
  together with the authoritative step list, so a step append that was lost
  to a transient failure is repaired at the end of the run.
- Memory writes are last-write-wins per ``(definition_id, subject_id, org_id)``.
"""

from typing import Any, Mapping, Optional, Protocol

from ..schemas.definition import AgentDefinition
from ..schemas.execution import ExecutionRecord, ExecutionResult, MemoryEntry, Step


class DefinitionRepository(Protocol):
    """Load and save agent definitions."""

    async def get(self, definition_id: str) -> Optional[AgentDefinition]:
        """
        Retrieve a definition by id.

        Returns:
            The definition if found, else None.
        """
        ...

    async def list(self, org_id: Optional[str] = None, active_only: bool = True) -> list[AgentDefinition]:
        """
        List definitions visible to an organisation.

        Args:
            org_id: When given, the organisation's own definitions plus global
                ones (``org_id`` None). When omitted, every definition.
            active_only: Skip definitions with ``is_active`` False.
        """
        ...

    async def upsert(self, partial: Mapping[str, Any]) -> AgentDefinition:
        """
        Create a definition or merge a partial update into an existing one.

        The merged definition is validated and empty condition groups are
        dropped before it is stored.

        Raises:
            DefinitionValidationError: if the merged payload is invalid.
        """
        ...


class ExecutionRepository(Protocol):
    """The execution ledger: one durable record per run."""

    async def create(self, record: ExecutionRecord) -> str:
        """
        Persist a new record (status ``running``).

        Returns:
            The execution id.
        """
        ...

    async def append_step(self, execution_id: str, step: Step) -> None:
        """Append one step to a running execution."""
        ...

    async def finalize(self, execution_id: str, result: ExecutionResult) -> None:
        """
        Write the terminal status, output, usage, duration and steps.

        Sets ``completed_at``. Finalizing twice keeps the latest result.
        """
        ...

    async def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        ...

    async def list_by_definition(self, definition_id: str, limit: int = 20) -> list[ExecutionRecord]:
        """
        List the most recent executions of a definition, newest first.
        """
        ...


class MemoryRepository(Protocol):
    """Cross-run memory keyed by (definition, subject, organisation)."""

    async def get(self, definition_id: str, subject_id: str, org_id: Optional[str]) -> Optional[MemoryEntry]:
        ...

    async def upsert(
        self, definition_id: str, subject_id: str, org_id: Optional[str], memory: Mapping[str, Any]
    ) -> MemoryEntry:
        """
        Replace the memory wholesale.

        Increments ``run_count`` (1 on first write) and sets ``last_run_at`` to
        now.
        """
        ...
