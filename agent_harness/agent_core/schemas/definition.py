"""Agent definition schemas.

An ``AgentDefinition`` is the declarative description of one runnable agent:
its prompt, the tools it may call, the inputs it accepts, its execution
budget, how it is triggered, the human oversight applied to it and the
conditions a trigger context has to satisfy before it runs.

Definitions are frozen. The engine pins one snapshot for the whole run, so an
edit that lands in the store mid-run never leaks into that run.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, List, Optional, Union
from uuid import uuid4

from pydantic import Field, PositiveInt, field_validator, model_validator

from .base import FrozenSchema


def humanize_key(key: str) -> str:
    """``candidateName`` / ``candidate_name`` -> ``Candidate Name``."""
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", key)
    words = re.split(r"[\s_\-]+", spaced)
    return " ".join(w[:1].upper() + w[1:] for w in words if w)


class InputFieldType(str, Enum):
    string = "string"
    number = "number"
    integer = "integer"
    boolean = "boolean"


class TriggerType(str, Enum):
    manual = "manual"
    schedule = "schedule"
    event = "event"


class OversightMode(str, Enum):
    auto = "auto"
    review_before = "review-before"
    notify_after = "notify-after"


class ConditionOperator(str, Enum):
    equals = "equals"
    not_equals = "not_equals"
    contains = "contains"
    in_ = "in"
    not_in = "not_in"


class GroupOperator(str, Enum):
    and_ = "AND"
    or_ = "OR"


class InputField(FrozenSchema):
    key: str = Field(min_length=1)
    label: str
    required: bool = False
    description: Optional[str] = None
    default: Optional[Any] = None
    type: InputFieldType = InputFieldType.string

    @model_validator(mode="before")
    @classmethod
    def _default_label(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("label") and data.get("key"):
            data = {**data, "label": humanize_key(str(data["key"]))}
        return data


class ExecutionConstraints(FrozenSchema):
    max_steps: PositiveInt = Field(default=10, alias="maxSteps")
    max_execution_time_ms: PositiveInt = Field(default=60_000, alias="maxExecutionTimeMs")


class Trigger(FrozenSchema):
    type: TriggerType = TriggerType.manual
    cron: Optional[str] = None
    timezone: Optional[str] = None
    event_name: Optional[str] = Field(default=None, alias="eventName")
    description: Optional[str] = None

    @model_validator(mode="after")
    def _check_trigger_fields(self) -> "Trigger":
        if self.type == TriggerType.schedule and not self.cron:
            raise ValueError("schedule trigger requires a cron expression")
        if self.type == TriggerType.event and not self.event_name:
            raise ValueError("event trigger requires an event name")
        return self


class Oversight(FrozenSchema):
    mode: OversightMode = OversightMode.auto


class Condition(FrozenSchema):
    property: str = Field(min_length=1)
    operator: ConditionOperator
    value: Union[str, List[str]]


class ConditionGroup(FrozenSchema):
    """Conditions combined with ``operator`` (AND unless the group says OR)."""

    conditions: List[Condition] = Field(default_factory=list)
    operator: GroupOperator = GroupOperator.and_


class AgentDefinition(FrozenSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))
    version: str = "1.0"
    name: str = Field(min_length=1)
    description: str = ""
    system_prompt: str = Field(default="", alias="systemPrompt")

    tools: List[str] = Field(default_factory=list)
    input_fields: List[InputField] = Field(default_factory=list, alias="inputFields")

    constraints: ExecutionConstraints = Field(default_factory=ExecutionConstraints)
    trigger: Trigger = Field(default_factory=Trigger)
    oversight: Oversight = Field(default_factory=Oversight)
    conditions: Optional[List[ConditionGroup]] = None

    org_id: Optional[str] = Field(default=None, alias="orgId")
    is_active: bool = Field(default=True, alias="isActive")

    @field_validator("tools")
    @classmethod
    def _dedupe_tools(cls, v: List[str]) -> List[str]:
        seen: list[str] = []
        for name in v:
            if name not in seen:
                seen.append(name)
        return seen

    @field_validator("input_fields")
    @classmethod
    def _unique_input_keys(cls, v: List[InputField]) -> List[InputField]:
        keys = [f.key for f in v]
        dupes = sorted({k for k in keys if keys.count(k) > 1})
        if dupes:
            raise ValueError(f"duplicate input field keys: {', '.join(dupes)}")
        return v

    def uses_tool(self, name: str) -> bool:
        return name in self.tools
