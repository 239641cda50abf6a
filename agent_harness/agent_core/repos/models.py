from __future__ import annotations

"""SQLAlchemy ORM models for agent harness persistence.

These ORM models define the SQL schema used by the SQL repository
implementation in ``agent_harness.agent_core.repos.sql``.

Design
------

- Definitions are stored as a validated JSON document plus the columns the
  store filters on (organisation, active flag).
- Executions keep scalar columns for the ledger fields; steps live in their
  own append-only table keyed by ``(execution_id, index)`` so appending a step
  never rewrites the record.
- Memory rows are unique per ``(definition_id, subject_id, org_key)``.
  ``org_key`` is ``org_id`` with NULL mapped to the empty string, because a
  unique constraint does not treat two NULLs as equal.

JSON columns use ``JSONB`` on Postgres and plain ``JSON`` elsewhere (SQLite in
tests). Table names are prefixed with ``ah_`` to avoid collisions in shared
databases.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class AgentDefinitionRow(Base):
    """Row model for ``ah_agent_definitions``."""

    __tablename__ = "ah_agent_definitions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    org_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    version: Mapped[str] = mapped_column(String(32))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    payload: Mapped[Dict[str, Any]] = mapped_column(JsonType)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ExecutionRow(Base):
    """Row model for ``ah_agent_executions``.

    One ledger record per run. ``status`` is ``running`` until the engine
    finalizes the record; ``output``, ``usage``, ``duration_ms`` and
    ``completed_at`` are only set at that point.
    """

    __tablename__ = "ah_agent_executions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    definition_id: Mapped[str] = mapped_column(String(64), index=True)
    definition_version: Mapped[str] = mapped_column(String(32))

    org_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    trigger_type: Mapped[str] = mapped_column(String(32))
    input: Mapped[Dict[str, Any]] = mapped_column(JsonType)
    subject_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    status: Mapped[str] = mapped_column(String(32))
    output: Mapped[Optional[Dict[str, Any]]] = mapped_column(JsonType, nullable=True)
    usage: Mapped[Dict[str, Any]] = mapped_column(JsonType)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    model: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class ExecutionStepRow(Base):
    """Row model for ``ah_agent_execution_steps`` (append-only)."""

    __tablename__ = "ah_agent_execution_steps"
    __table_args__ = (UniqueConstraint("execution_id", "step_index", name="uq_ah_step_execution_index"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    execution_id: Mapped[str] = mapped_column(String(64), index=True)
    step_index: Mapped[int] = mapped_column(Integer)
    type: Mapped[str] = mapped_column(String(32))
    tool_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JsonType)


class AgentMemoryRow(Base):
    """Row model for ``ah_agent_memory``."""

    __tablename__ = "ah_agent_memory"
    __table_args__ = (UniqueConstraint("definition_id", "subject_id", "org_key", name="uq_ah_memory_key"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    definition_id: Mapped[str] = mapped_column(String(64))
    subject_id: Mapped[str] = mapped_column(String(128))
    org_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    org_key: Mapped[str] = mapped_column(String(128), default="")

    memory: Mapped[Dict[str, Any]] = mapped_column(JsonType)
    run_count: Mapped[int] = mapped_column(Integer, default=0)
    last_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
