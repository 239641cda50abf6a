"""Persistence layer for the agent harness.

This package provides:

- Repository interfaces (Protocols) used by the engine and service.
- In-memory implementations for tests and single-process use.
- SQLAlchemy ORM models and async SQL repository implementations.

The engine depends on the Protocols in ``interfaces``. Implementations may be
swapped (SQL, in-memory fakes) without touching runtime logic.
"""

from .interfaces import DefinitionRepository, ExecutionRepository, MemoryRepository
from .memory import InMemoryDefinitionRepository, InMemoryExecutionRepository, InMemoryMemoryRepository
from .sql import (
    SqlDefinitionRepository,
    SqlExecutionRepository,
    SqlMemoryRepository,
    SqlRepoBundle,
    build_sql_repos,
    create_all,
    create_engine,
    create_sessionmaker,
)

__all__ = [
    "DefinitionRepository",
    "ExecutionRepository",
    "MemoryRepository",
    "InMemoryDefinitionRepository",
    "InMemoryExecutionRepository",
    "InMemoryMemoryRepository",
    "SqlDefinitionRepository",
    "SqlExecutionRepository",
    "SqlMemoryRepository",
    "SqlRepoBundle",
    "build_sql_repos",
    "create_all",
    "create_engine",
    "create_sessionmaker",
]
