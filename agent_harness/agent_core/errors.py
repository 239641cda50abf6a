"""Error types raised by the agent harness.

Purpose:
- Give callers one root (``AgentHarnessError``) to catch.
- Keep configuration problems (a definition referencing a tool nobody
  registered) distinguishable from transient failures, so they surface as a
  clear diagnostic instead of a generic run failure.

Usage:
- ``InputValidationError`` and ``DefinitionValidationError`` are raised at the
  boundary, before any execution record exists.
- ``UnknownToolError`` and ``ModelCallError`` are translated by the engine into
  a ``failed`` execution result; they never escape ``AgentEngine.run``.
- ``NonRecoverableToolError`` is raised by tool implementations that want the
  run to stop instead of feeding the error back to the model.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional


class AgentHarnessError(Exception):
    pass


class ConfigurationError(AgentHarnessError):
    pass


class UnknownToolError(ConfigurationError):
    """Raised when a definition references tool names missing from the registry.

    Args:
        names: Every unknown tool name of the definition, in definition order.
    """

    def __init__(self, names: Iterable[str]) -> None:
        self.names: List[str] = list(names)
        super().__init__(f"unknown tool(s): {', '.join(self.names)}")


class DefinitionValidationError(AgentHarnessError):
    """Raised when a definition payload fails validation.

    Args:
        message: Human-readable description.
        errors: The structured pydantic error list, when available.
    """

    def __init__(self, message: str, *, errors: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class DefinitionNotFoundError(AgentHarnessError):
    def __init__(self, definition_id: str) -> None:
        super().__init__(f"Agent definition not found: '{definition_id}'")
        self.definition_id = definition_id


class InputValidationError(AgentHarnessError):
    """Raised when run input does not satisfy the definition's input fields.

    Args:
        field_errors: Mapping of input key to the reason it was rejected.
    """

    def __init__(self, field_errors: Dict[str, str]) -> None:
        self.field_errors = dict(field_errors)
        detail = "; ".join(f"{k}: {v}" for k, v in self.field_errors.items())
        super().__init__(f"Invalid input: {detail}")


class ModelCallError(AgentHarnessError):
    """Raised by a language model adapter once its retries are exhausted."""

    def __init__(self, message: str, *, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts


class NonRecoverableToolError(AgentHarnessError):
    pass
