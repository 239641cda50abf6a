from __future__ import annotations

"""SQLAlchemy async repository implementations.

This module provides a SQL-backed persistence implementation for the
repository interfaces defined in ``agent_harness.agent_core.repos.interfaces``.
Postgres (asyncpg) is the production target; SQLite (aiosqlite) is used by the
end-to-end tests.

Usage
-----

Typical wiring (tests or application setup):

- Create an async engine with ``create_engine``.
- Create tables with ``create_all`` (for tests/dev).
- Create a session factory with ``create_sessionmaker``.
- Build repository instances with ``build_sql_repos``.

Transaction model
-----------------

Each repository method opens an ``AsyncSession``, performs its operation, and
commits. A step is therefore durable as soon as ``append_step`` returns, and
concurrent runs never share a transaction.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import event, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..schemas.definition import AgentDefinition, ExecutionConstraints, TriggerType
from ..schemas.execution import (
    ExecutionRecord,
    ExecutionResult,
    ExecutionStatus,
    MemoryEntry,
    Step,
    TokenUsage,
)
from ..validation import validate_definition
from .interfaces import DefinitionRepository, ExecutionRepository, MemoryRepository
from .models import AgentDefinitionRow, AgentMemoryRow, Base, ExecutionRow, ExecutionStepRow

logger = logging.getLogger(__name__)


def create_engine(db_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    The helper normalizes Postgres URLs to ensure the async driver is used.
    For example, it rewrites ``postgresql://`` and other variants to
    ``postgresql+asyncpg://``.

    SQLite connections open every transaction with ``BEGIN IMMEDIATE`` so that
    concurrent writers wait on the busy timeout instead of failing with
    "database is locked" when a read lock cannot be upgraded.
    """
    url = re.sub(r"^postgres(?:ql)?(?:\+[a-z0-9_]+)?://", "postgresql+asyncpg://", db_url, count=1)
    engine = create_async_engine(url, pool_pre_ping=True)
    if engine.dialect.name == "sqlite":
        _serialize_sqlite_writes(engine)
    return engine


def _serialize_sqlite_writes(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Leave BEGIN to the "begin" hook below.
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an ``async_sessionmaker`` with safe defaults for this project."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables for the current ORM metadata.

    This is mainly intended for tests and local development.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back; values are always written in UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _enum_value(value: Any) -> str:
    return str(getattr(value, "value", value))


@dataclass(frozen=True)
class SqlDefinitionRepository(DefinitionRepository):
    """SQL implementation of ``DefinitionRepository``."""

    session_factory: async_sessionmaker[AsyncSession]
    default_constraints: Optional[ExecutionConstraints] = None

    async def get(self, definition_id: str) -> Optional[AgentDefinition]:
        async with self.session_factory() as s:
            row = await s.get(AgentDefinitionRow, definition_id)
            if row is None:
                return None
            return AgentDefinition.model_validate(row.payload)

    async def list(self, org_id: Optional[str] = None, active_only: bool = True) -> list[AgentDefinition]:
        async with self.session_factory() as s:
            stmt = select(AgentDefinitionRow)
            if org_id is not None:
                stmt = stmt.where(or_(AgentDefinitionRow.org_id == org_id, AgentDefinitionRow.org_id.is_(None)))
            if active_only:
                stmt = stmt.where(AgentDefinitionRow.is_active.is_(True))
            stmt = stmt.order_by(AgentDefinitionRow.created_at.asc())
            result = await s.execute(stmt)
            return [AgentDefinition.model_validate(row.payload) for row in result.scalars().all()]

    async def upsert(self, partial: Mapping[str, Any]) -> AgentDefinition:
        """
        Create or merge a definition.

        Raises:
            DefinitionValidationError: if the merged payload is invalid.
        """
        async with self.session_factory() as s:
            row = await s.get(AgentDefinitionRow, str(partial["id"])) if partial.get("id") else None
            existing = AgentDefinition.model_validate(row.payload) if row is not None else None
            definition = validate_definition(partial, existing, default_constraints=self.default_constraints)

            now = _utc_now()
            payload = definition.model_dump(mode="json")
            if row is None:
                s.add(
                    AgentDefinitionRow(
                        id=definition.id,
                        org_id=definition.org_id,
                        name=definition.name,
                        version=definition.version,
                        is_active=definition.is_active,
                        payload=payload,
                        created_at=now,
                        updated_at=now,
                    )
                )
            else:
                row.org_id = definition.org_id
                row.name = definition.name
                row.version = definition.version
                row.is_active = definition.is_active
                row.payload = payload
                row.updated_at = now
            await s.commit()
            return definition


def _step_row(execution_id: str, step: Step) -> ExecutionStepRow:
    return ExecutionStepRow(
        execution_id=execution_id,
        step_index=step.index,
        type=_enum_value(step.type),
        tool_name=step.tool_name,
        payload=step.model_dump(mode="json"),
    )


@dataclass(frozen=True)
class SqlExecutionRepository(ExecutionRepository):
    """SQL implementation of the execution ledger."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, record: ExecutionRecord) -> str:
        async with self.session_factory() as s:
            s.add(
                ExecutionRow(
                    id=record.id,
                    definition_id=record.definition_id,
                    definition_version=record.definition_version,
                    org_id=record.org_id,
                    user_id=record.user_id,
                    trigger_type=_enum_value(record.trigger_type),
                    input=record.input,
                    subject_id=record.subject_id,
                    status=_enum_value(record.status),
                    output=record.output,
                    usage=record.usage.model_dump(),
                    duration_ms=record.duration_ms,
                    model=record.model,
                    started_at=record.started_at,
                    completed_at=record.completed_at,
                )
            )
            for step in record.steps:
                s.add(_step_row(record.id, step))
            await s.commit()
            return record.id

    async def append_step(self, execution_id: str, step: Step) -> None:
        async with self.session_factory() as s:
            s.add(_step_row(execution_id, step))
            await s.commit()

    async def finalize(self, execution_id: str, result: ExecutionResult) -> None:
        """
        Write the terminal state and fill in any step whose append was lost.
        """
        async with self.session_factory() as s:
            row = await s.get(ExecutionRow, execution_id)
            if row is None:
                raise KeyError(execution_id)
            row.status = _enum_value(result.status)
            row.output = result.ledger_output()
            row.usage = result.usage.model_dump()
            row.duration_ms = result.duration_ms
            row.completed_at = _utc_now()

            stored = await s.execute(
                select(ExecutionStepRow.step_index).where(ExecutionStepRow.execution_id == execution_id)
            )
            have = set(stored.scalars().all())
            missing = [step for step in result.steps if step.index not in have]
            if missing:
                logger.info(f"Repairing {len(missing)} missing step(s) for execution {execution_id}")
            for step in missing:
                s.add(_step_row(execution_id, step))
            await s.commit()

    async def _steps_for(self, s: AsyncSession, execution_ids: Iterable[str]) -> Dict[str, List[Step]]:
        ids = list(execution_ids)
        out: Dict[str, List[Step]] = {i: [] for i in ids}
        if not ids:
            return out
        stmt = (
            select(ExecutionStepRow)
            .where(ExecutionStepRow.execution_id.in_(ids))
            .order_by(ExecutionStepRow.execution_id, ExecutionStepRow.step_index.asc())
        )
        result = await s.execute(stmt)
        for row in result.scalars().all():
            out[row.execution_id].append(Step.model_validate(row.payload))
        return out

    @staticmethod
    def _to_record(row: ExecutionRow, steps: List[Step]) -> ExecutionRecord:
        return ExecutionRecord(
            id=row.id,
            definition_id=row.definition_id,
            definition_version=row.definition_version,
            org_id=row.org_id,
            user_id=row.user_id,
            trigger_type=TriggerType(row.trigger_type),
            input=row.input or {},
            subject_id=row.subject_id,
            status=ExecutionStatus(row.status),
            steps=steps,
            output=row.output,
            usage=TokenUsage.model_validate(row.usage or {}),
            duration_ms=row.duration_ms,
            model=row.model,
            started_at=_aware(row.started_at),
            completed_at=_aware(row.completed_at),
        )

    async def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        async with self.session_factory() as s:
            row = await s.get(ExecutionRow, execution_id)
            if row is None:
                return None
            steps = await self._steps_for(s, [row.id])
            return self._to_record(row, steps[row.id])

    async def list_by_definition(self, definition_id: str, limit: int = 20) -> list[ExecutionRecord]:
        async with self.session_factory() as s:
            stmt = (
                select(ExecutionRow)
                .where(ExecutionRow.definition_id == definition_id)
                .order_by(ExecutionRow.started_at.desc())
                .limit(limit)
            )
            result = await s.execute(stmt)
            rows = result.scalars().all()
            steps = await self._steps_for(s, [r.id for r in rows])
            return [self._to_record(r, steps[r.id]) for r in rows]


@dataclass(frozen=True)
class SqlMemoryRepository(MemoryRepository):
    """SQL implementation of ``MemoryRepository``.

    ``upsert`` is an atomic ``UPDATE ... SET run_count = run_count + 1`` with
    an ``INSERT`` fallback. Two first-time writers racing on the insert hit the
    unique constraint; the loser rolls back and applies its write as an update,
    so the row ends in the state of the last committed write.
    """

    session_factory: async_sessionmaker[AsyncSession]

    @staticmethod
    def _key_clause(definition_id: str, subject_id: str, org_id: Optional[str]) -> Any:
        return (
            (AgentMemoryRow.definition_id == definition_id)
            & (AgentMemoryRow.subject_id == subject_id)
            & (AgentMemoryRow.org_key == (org_id or ""))
        )

    @staticmethod
    def _to_entry(row: AgentMemoryRow) -> MemoryEntry:
        return MemoryEntry(
            definition_id=row.definition_id,
            subject_id=row.subject_id,
            org_id=row.org_id,
            memory=row.memory or {},
            run_count=row.run_count,
            last_run_at=_aware(row.last_run_at),
        )

    async def get(self, definition_id: str, subject_id: str, org_id: Optional[str]) -> Optional[MemoryEntry]:
        async with self.session_factory() as s:
            stmt = select(AgentMemoryRow).where(self._key_clause(definition_id, subject_id, org_id))
            row = (await s.execute(stmt)).scalar_one_or_none()
            return self._to_entry(row) if row is not None else None

    async def _update(self, s: AsyncSession, key: Any, memory: Dict[str, Any]) -> int:
        stmt = (
            update(AgentMemoryRow)
            .where(key)
            .values(memory=memory, run_count=AgentMemoryRow.run_count + 1, last_run_at=_utc_now())
            .execution_options(synchronize_session=False)
        )
        result = await s.execute(stmt)
        return result.rowcount or 0

    async def upsert(
        self, definition_id: str, subject_id: str, org_id: Optional[str], memory: Mapping[str, Any]
    ) -> MemoryEntry:
        key = self._key_clause(definition_id, subject_id, org_id)
        data = dict(memory)
        async with self.session_factory() as s:
            if await self._update(s, key, data) == 0:
                s.add(
                    AgentMemoryRow(
                        id=str(uuid.uuid4()),
                        definition_id=definition_id,
                        subject_id=subject_id,
                        org_id=org_id,
                        org_key=org_id or "",
                        memory=data,
                        run_count=1,
                        last_run_at=_utc_now(),
                    )
                )
                try:
                    await s.commit()
                except IntegrityError:
                    await s.rollback()
                    logger.debug(f"Concurrent first write for memory {definition_id}/{subject_id}; retrying as update")
                    await self._update(s, key, data)
                    await s.commit()
            else:
                await s.commit()

            row = (await s.execute(select(AgentMemoryRow).where(key))).scalar_one()
            return self._to_entry(row)


@dataclass(frozen=True)
class SqlRepoBundle:
    """Convenience bundle of all SQL repositories for dependency injection."""

    definitions: SqlDefinitionRepository
    executions: SqlExecutionRepository
    memory: SqlMemoryRepository


def build_sql_repos(
    *,
    session_factory: async_sessionmaker[AsyncSession],
    default_constraints: Optional[ExecutionConstraints] = None,
) -> SqlRepoBundle:
    """Build a ``SqlRepoBundle`` from a session factory."""
    return SqlRepoBundle(
        definitions=SqlDefinitionRepository(session_factory=session_factory, default_constraints=default_constraints),
        executions=SqlExecutionRepository(session_factory=session_factory),
        memory=SqlMemoryRepository(session_factory=session_factory),
    )
