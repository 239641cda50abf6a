from __future__ import annotations

"""Convenience factories for wiring the agent harness.

This module contains small helpers to build the default tool registry, the
default language model and a ready-to-use ``AgentService`` from settings.

The intent is to keep application wiring and tests concise, while still
allowing deployments to provide their own registry, model and repositories.
"""

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from agent_harness.core.config import Settings, settings as default_settings
from agent_harness.core.logging_config import get_logger, setup_logging
from agent_harness.core.monitoring import initialize_logfire

from .model.base import LanguageModel
from .model.pydantic_ai import PydanticAILanguageModel
from .repos.sql import SqlRepoBundle, build_sql_repos, create_all, create_engine, create_sessionmaker
from .runtime import ContextProvider, EngineDeps
from .runtime.engine import AgentEngine
from .schemas.definition import ExecutionConstraints
from .service import AgentService, AgentServiceDeps, OversightNotifier
from .tools.base import Tool
from .tools.builtin import GetAgentMemoryTool, SaveAgentMemoryTool
from .tools.registry import ToolRegistry

logger = get_logger(__name__)


def build_default_registry(extra_tools: Iterable[Tool] = ()) -> ToolRegistry:
    """Build the default ``ToolRegistry``.

    The default registry holds the built-in memory tools. Application tools
    are passed as ``extra_tools`` and registered after them.
    """
    reg = ToolRegistry()
    reg.register(GetAgentMemoryTool())
    reg.register(SaveAgentMemoryTool())
    for tool in extra_tools:
        reg.register(tool)
    return reg


def build_language_model(cfg: Optional[Settings] = None) -> LanguageModel:
    """Construct the pydantic-ai backed model from settings."""
    llm = (cfg or default_settings).language_model
    return PydanticAILanguageModel(llm.model, max_retries=llm.max_retries, timeout_seconds=llm.timeout_seconds)


def default_constraints(cfg: Optional[Settings] = None) -> ExecutionConstraints:
    defaults = (cfg or default_settings).engine_defaults
    return ExecutionConstraints(
        max_steps=defaults.max_steps,
        max_execution_time_ms=defaults.max_execution_time_ms,
    )


def build_engine(*, deps: EngineDeps) -> AgentEngine:
    """Construct an ``AgentEngine`` from its dependencies."""
    return AgentEngine(deps=deps)


@dataclass(frozen=True)
class Application:
    """Everything ``build_application`` wired together."""

    service: AgentService
    repos: SqlRepoBundle
    registry: ToolRegistry
    db_engine: AsyncEngine

    async def close(self) -> None:
        """Dispose the database engine and its pooled connections."""
        await self.db_engine.dispose()


async def build_application(
    *,
    cfg: Optional[Settings] = None,
    tools: Iterable[Tool] = (),
    model: Optional[LanguageModel] = None,
    notifier: Optional[OversightNotifier] = None,
    context_providers: Optional[Mapping[str, ContextProvider]] = None,
    create_tables: bool = False,
    configure_logging: bool = True,
) -> Application:
    """Wire logging, monitoring, SQL repositories, tools and the model.

    Args:
        cfg: Settings to use; defaults to the process-wide settings.
        tools: Application tools registered next to the memory tools.
        model: Language model override (tests pass a fake here).
        notifier: Receives finished ``notify-after`` runs.
        context_providers: Extra prompt context per definition id.
        create_tables: Create the schema first (dev/tests only).
        configure_logging: Call ``setup_logging`` with the configured levels.
    """
    cfg = cfg or default_settings
    if configure_logging:
        log_cfg = cfg.logging
        setup_logging(log_level=log_cfg.log_level, log_format=log_cfg.log_format, enable_file=log_cfg.enable_file_logging)
    initialize_logfire()

    engine = create_engine(cfg.database_url)
    if create_tables:
        await create_all(engine)
    repos = build_sql_repos(session_factory=create_sessionmaker(engine), default_constraints=default_constraints(cfg))

    registry = build_default_registry(tools)
    engine_deps = EngineDeps(
        executions=repos.executions,
        tools=registry,
        model=model or build_language_model(cfg),
        memory=repos.memory,
        context_providers=dict(context_providers or {}),
    )
    service = AgentService(
        deps=AgentServiceDeps(engine_deps=engine_deps, definitions=repos.definitions, notifier=notifier),
        engine=build_engine(deps=engine_deps),
    )
    logger.info(f"Agent harness wired: tools={registry.names()}")
    return Application(service=service, repos=repos, registry=registry, db_engine=engine)
