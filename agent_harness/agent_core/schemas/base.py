"""Pydantic base schema utilities for agent core models."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseSchema(BaseModel):
    """
    Base Pydantic model for all agent harness schemas.

    Configures common Pydantic behaviors:
    - ``populate_by_name=True``: accept both the snake_case field name and the
      camelCase wire alias (``maxSteps``, ``eventName``...).
    - ``extra="forbid"``: unknown fields are rejected instead of silently kept.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
    )


class FrozenSchema(BaseSchema):
    """Immutable variant used for snapshots that must not change mid-run."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )
