"""
Monitoring and Tracing Configuration Module.

This module provides integration with Pydantic Logfire for tracing agent
executions:
- Execution lifecycle (started / terminal status / duration)
- Language model calls and token usage
- Error tracking

Every helper is best-effort: monitoring must never change the outcome of a run,
so failures to reach Logfire are logged at DEBUG level and swallowed.
"""

import logging
import os
from typing import Any, Optional

logger = logging.getLogger(__name__)

LOGFIRE_ENABLED = os.getenv("LOGFIRE_ENABLED", "false").lower() in ("true", "1", "yes")
LOGFIRE_TOKEN = os.getenv("LOGFIRE_TOKEN", "")
LOGFIRE_ENVIRONMENT = os.getenv("LOGFIRE_ENVIRONMENT", "development")
LOGFIRE_SERVICE_NAME = os.getenv("LOGFIRE_SERVICE_NAME", "agent-harness")
LOGFIRE_SERVICE_VERSION = os.getenv("LOGFIRE_SERVICE_VERSION", "0.1.0")

LOGFIRE_TRACE_PYDANTIC_AI = os.getenv("LOGFIRE_TRACE_PYDANTIC_AI", "true").lower() in ("true", "1", "yes")
LOGFIRE_TRACE_SQLALCHEMY = os.getenv("LOGFIRE_TRACE_SQLALCHEMY", "true").lower() in ("true", "1", "yes")

_configured = False


def initialize_logfire() -> bool:
    """
    Initialize Pydantic Logfire for monitoring and tracing.

    Sets up Logfire with automatic instrumentation for pydantic-ai model calls
    and SQLAlchemy operations. The initialization only happens when
    ``LOGFIRE_ENABLED`` is set and a ``LOGFIRE_TOKEN`` is available.

    Returns:
        True when Logfire was configured, False otherwise.
    """
    global _configured

    if not LOGFIRE_ENABLED:
        logger.info("Logfire monitoring is disabled. Set LOGFIRE_ENABLED=true to enable.")
        return False

    if not LOGFIRE_TOKEN:
        logger.warning("Logfire is enabled but LOGFIRE_TOKEN is not set. Monitoring will not work.")
        return False

    try:
        import logfire

        logfire.configure(
            token=LOGFIRE_TOKEN,
            service_name=LOGFIRE_SERVICE_NAME,
            service_version=LOGFIRE_SERVICE_VERSION,
            environment=LOGFIRE_ENVIRONMENT,
        )

        if LOGFIRE_TRACE_PYDANTIC_AI:
            try:
                logfire.instrument_pydantic_ai()
                logger.info("Logfire: Pydantic AI instrumentation enabled")
            except Exception as e:
                logger.warning(f"Failed to instrument Pydantic AI: {e}")

        if LOGFIRE_TRACE_SQLALCHEMY:
            try:
                logfire.instrument_sqlalchemy()
                logger.info("Logfire: SQLAlchemy instrumentation enabled")
            except Exception as e:
                logger.warning(f"Failed to instrument SQLAlchemy: {e}")

        _configured = True
        logger.info(f"Logfire monitoring initialized: environment={LOGFIRE_ENVIRONMENT}, service={LOGFIRE_SERVICE_NAME}")
        return True
    except Exception as e:
        logger.error(f"Failed to initialize Logfire: {e}", exc_info=True)
        return False


def log_execution_started(execution_id: str, definition_id: str, org_id: Optional[str], trigger_type: str) -> None:
    """
    Log the start of an agent execution.

    Args:
        execution_id: Ledger id of the execution
        definition_id: The agent definition being run
        org_id: The organisation the run belongs to
        trigger_type: How the run was triggered (manual, schedule, event)
    """
    if not _configured:
        return

    try:
        import logfire

        logfire.info(
            "Agent execution started",
            execution_id=execution_id,
            definition_id=definition_id,
            org_id=org_id,
            trigger_type=trigger_type,
        )
    except Exception:
        logger.debug(f"Could not log execution start to Logfire: execution_id={execution_id}")


def log_execution_completed(execution_id: Optional[str], status: str, duration_ms: int, total_tokens: int) -> None:
    """
    Log the terminal state of an agent execution.

    Args:
        execution_id: Ledger id of the execution (None if the ledger was unavailable)
        status: Terminal status (completed, failed, escalated)
        duration_ms: Wall time of the run in milliseconds
        total_tokens: Total tokens consumed by the run
    """
    if not _configured:
        return

    try:
        import logfire

        logfire.info(
            "Agent execution finished",
            execution_id=execution_id,
            status=status,
            duration_ms=duration_ms,
            total_tokens=total_tokens,
        )
    except Exception:
        logger.debug(f"Could not log execution completion to Logfire: execution_id={execution_id}")


def log_model_call(model: str, input_tokens: int, output_tokens: int) -> None:
    """
    Log a language model call with usage metrics.

    Args:
        model: The model name
        input_tokens: Prompt tokens used by the call
        output_tokens: Completion tokens used by the call
    """
    if not _configured:
        return

    try:
        import logfire

        logfire.info(
            "LLM call completed",
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
    except Exception:
        logger.debug(f"Could not log LLM call to Logfire: model={model}")


def log_error(error_type: str, error_message: str, context: Optional[dict[str, Any]] = None) -> None:
    """
    Log an error with context for debugging.

    Args:
        error_type: Type of error
        error_message: Error message
        context: Additional context dictionary
    """
    if not _configured:
        return

    try:
        import logfire

        logfire.error(
            "{error_type}: {error_message}",
            error_type=error_type,
            error_message=error_message,
            **(context or {}),
        )
    except Exception:
        logger.debug(f"Could not log error to Logfire: {error_type}")
