"""In-memory repository implementations.

Used by tests and by single-process deployments that do not need durability.
Each repository guards its dict with an ``asyncio.Lock`` and hands out copies,
so callers can never mutate stored state by accident.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from ..schemas.base import utc_now
from ..schemas.definition import AgentDefinition, ExecutionConstraints
from ..schemas.execution import ExecutionRecord, ExecutionResult, MemoryEntry, Step
from ..validation import validate_definition

MemoryKey = Tuple[str, str, Optional[str]]


@dataclass
class InMemoryDefinitionRepository:
    default_constraints: Optional[ExecutionConstraints] = None
    _items: Dict[str, AgentDefinition] = field(default_factory=dict)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def get(self, definition_id: str) -> Optional[AgentDefinition]:
        return self._items.get(definition_id)

    async def list(self, org_id: Optional[str] = None, active_only: bool = True) -> list[AgentDefinition]:
        out = []
        for d in self._items.values():
            if active_only and not d.is_active:
                continue
            if org_id is not None and d.org_id not in (None, org_id):
                continue
            out.append(d)
        return out

    async def upsert(self, partial: Mapping[str, Any]) -> AgentDefinition:
        async with self._lock:
            existing = self._items.get(str(partial["id"])) if partial.get("id") else None
            definition = validate_definition(partial, existing, default_constraints=self.default_constraints)
            self._items[definition.id] = definition
            return definition


@dataclass
class InMemoryExecutionRepository:
    now: Callable[[], datetime] = utc_now
    _items: Dict[str, ExecutionRecord] = field(default_factory=dict)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def create(self, record: ExecutionRecord) -> str:
        async with self._lock:
            self._items[record.id] = record.model_copy(deep=True)
            return record.id

    async def append_step(self, execution_id: str, step: Step) -> None:
        async with self._lock:
            record = self._items.get(execution_id)
            if record is None:
                raise KeyError(execution_id)
            record.steps.append(step.model_copy(deep=True))

    async def finalize(self, execution_id: str, result: ExecutionResult) -> None:
        async with self._lock:
            record = self._items.get(execution_id)
            if record is None:
                raise KeyError(execution_id)
            self._items[execution_id] = record.model_copy(
                update={
                    "status": result.status,
                    "steps": [s.model_copy(deep=True) for s in result.steps],
                    "output": result.ledger_output(),
                    "usage": result.usage,
                    "duration_ms": result.duration_ms,
                    "completed_at": self.now(),
                }
            )

    async def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        record = self._items.get(execution_id)
        return record.model_copy(deep=True) if record is not None else None

    async def list_by_definition(self, definition_id: str, limit: int = 20) -> list[ExecutionRecord]:
        rows = [r for r in self._items.values() if r.definition_id == definition_id]
        rows.sort(key=lambda r: r.started_at, reverse=True)
        return [r.model_copy(deep=True) for r in rows[:limit]]


@dataclass
class InMemoryMemoryRepository:
    now: Callable[[], datetime] = utc_now
    _items: Dict[MemoryKey, MemoryEntry] = field(default_factory=dict)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def get(self, definition_id: str, subject_id: str, org_id: Optional[str]) -> Optional[MemoryEntry]:
        entry = self._items.get((definition_id, subject_id, org_id))
        return entry.model_copy(deep=True) if entry is not None else None

    async def upsert(
        self, definition_id: str, subject_id: str, org_id: Optional[str], memory: Mapping[str, Any]
    ) -> MemoryEntry:
        key = (definition_id, subject_id, org_id)
        async with self._lock:
            previous = self._items.get(key)
            entry = MemoryEntry(
                definition_id=definition_id,
                subject_id=subject_id,
                org_id=org_id,
                memory=dict(memory),
                run_count=(previous.run_count if previous else 0) + 1,
                last_run_at=self.now(),
            )
            self._items[key] = entry
            return entry.model_copy(deep=True)
