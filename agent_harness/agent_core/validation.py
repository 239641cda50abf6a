"""Boundary validation for definitions and run input.

Both validators run before the engine is involved: a payload that fails here
never creates an execution record.

- ``validate_input`` checks raw run input against the definition's
  ``input_fields`` using a pydantic model built on the fly with
  ``create_model``. Defaults are applied, unknown keys are ignored and every
  failing key is reported at once.
- ``validate_definition`` turns a full or partial payload into a frozen
  ``AgentDefinition``, merging a partial update into the stored definition
  first and dropping empty condition groups.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, ValidationError, create_model

from .conditions import normalize_condition_groups
from .errors import DefinitionValidationError, InputValidationError
from .schemas.definition import (
    AgentDefinition,
    ExecutionConstraints,
    InputFieldType,
    Oversight,
    Trigger,
)

logger = logging.getLogger(__name__)

_PY_TYPES: Dict[InputFieldType, type] = {
    InputFieldType.string: str,
    InputFieldType.number: float,
    InputFieldType.integer: int,
    InputFieldType.boolean: bool,
}

_NESTED: Dict[str, Type[BaseModel]] = {
    "constraints": ExecutionConstraints,
    "trigger": Trigger,
    "oversight": Oversight,
}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def build_input_model(definition: AgentDefinition) -> Type[BaseModel]:
    fields: Dict[str, Tuple[Any, Any]] = {}
    for f in definition.input_fields:
        py_type = _PY_TYPES[f.type]
        if f.required and f.default is None:
            fields[f.key] = (py_type, ...)
        else:
            fields[f.key] = (Optional[py_type], f.default)
    return create_model(  # type: ignore[call-overload]
        f"{definition.name.title().replace(' ', '')}Input",
        __config__=ConfigDict(extra="ignore"),
        **fields,
    )


def validate_input(definition: AgentDefinition, raw: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Validate and normalise run input for ``definition``.

    Blank values (``None`` or whitespace-only strings) count as missing, so a
    required field cannot be satisfied with an empty form value.

    Returns:
        The validated input with defaults applied and ``None`` values removed.

    Raises:
        InputValidationError: with one entry per rejected key.
    """
    cleaned = {k: v for k, v in (raw or {}).items() if not _is_blank(v)}
    model = build_input_model(definition)
    try:
        validated = model.model_validate(cleaned)
    except ValidationError as e:
        field_errors: Dict[str, str] = {}
        for err in e.errors():
            key = str(err["loc"][0]) if err.get("loc") else "__root__"
            field_errors.setdefault(key, "required" if err["type"] == "missing" else err["msg"])
        logger.debug(f"Input rejected for definition {definition.id}: {field_errors}")
        raise InputValidationError(field_errors) from e
    return validated.model_dump(exclude_none=True)


def _field_name(model_cls: Type[BaseModel], key: str) -> str:
    if key in model_cls.model_fields:
        return key
    for name, info in model_cls.model_fields.items():
        if info.alias == key:
            return name
    return key


def _canonical(model_cls: Type[BaseModel], data: Mapping[str, Any]) -> Dict[str, Any]:
    return {_field_name(model_cls, k): v for k, v in data.items()}


def merge_definition_payload(existing: Optional[AgentDefinition], partial: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge a partial payload over ``existing``.

    Top-level keys replace the stored value, except the small nested objects
    (constraints, trigger, oversight) which are merged key by key.
    """
    update = _canonical(AgentDefinition, partial)
    if existing is None:
        return update

    merged: Dict[str, Any] = existing.model_dump()
    for key, value in update.items():
        nested_cls = _NESTED.get(key)
        if nested_cls is not None and isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **_canonical(nested_cls, value)}
        else:
            merged[key] = value
    return merged


def validate_definition(
    partial: Mapping[str, Any],
    existing: Optional[AgentDefinition] = None,
    *,
    default_constraints: Optional[ExecutionConstraints] = None,
) -> AgentDefinition:
    """Build a validated definition from ``partial`` (merged over ``existing``).

    Raises:
        DefinitionValidationError: if the merged payload is invalid.
    """
    payload = merge_definition_payload(existing, partial)
    if existing is None and payload.get("constraints") is None and default_constraints is not None:
        payload["constraints"] = default_constraints.model_dump()
    try:
        definition = AgentDefinition.model_validate(payload)
    except ValidationError as e:
        raise DefinitionValidationError(
            f"Invalid agent definition: {e.error_count()} error(s)",
            errors=e.errors(include_url=False, include_context=False),
        ) from e

    if definition.conditions is not None:
        groups = normalize_condition_groups(definition.conditions)
        if len(groups or []) != len(definition.conditions):
            logger.info(f"Dropped {len(definition.conditions) - len(groups or [])} empty condition group(s) from {definition.id}")
            definition = definition.model_copy(update={"conditions": groups})
    return definition
