from __future__ import annotations

import pytest
from pydantic import ValidationError

from agent_harness.agent_core.schemas.definition import (
    AgentDefinition,
    InputField,
    OversightMode,
    Trigger,
    TriggerType,
    humanize_key,
)


@pytest.mark.parametrize(
    "key,label",
    [("candidateName", "Candidate Name"), ("candidate_name", "Candidate Name"), ("url", "Url")],
)
def test_humanize_key(key: str, label: str) -> None:
    assert humanize_key(key) == label


def test_input_field_label_defaults_from_key() -> None:
    assert InputField(key="jobTitle").label == "Job Title"
    assert InputField(key="jobTitle", label="Role").label == "Role"


def test_tools_are_deduplicated_in_order() -> None:
    d = AgentDefinition(name="A", tools=["b", "a", "b"])

    assert d.tools == ["b", "a"]
    assert d.uses_tool("a") is True
    assert d.uses_tool("c") is False


def test_duplicate_input_keys_are_rejected() -> None:
    with pytest.raises(ValidationError, match="duplicate input field keys: x"):
        AgentDefinition(name="A", input_fields=[InputField(key="x"), InputField(key="x")])


def test_event_trigger_requires_event_name() -> None:
    with pytest.raises(ValidationError):
        Trigger(type=TriggerType.event)
    assert Trigger(type="event", eventName="lead.created").event_name == "lead.created"


def test_oversight_accepts_hyphenated_modes() -> None:
    d = AgentDefinition.model_validate({"name": "A", "oversight": {"mode": "review-before"}})

    assert d.oversight.mode is OversightMode.review_before


def test_definitions_are_frozen_and_reject_unknown_fields() -> None:
    d = AgentDefinition(name="A")

    with pytest.raises(ValidationError):
        d.name = "B"  # type: ignore[misc]
    with pytest.raises(ValidationError):
        AgentDefinition.model_validate({"name": "A", "colour": "blue"})


def test_defaults() -> None:
    d = AgentDefinition(name="A")

    assert d.version == "1.0"
    assert d.is_active is True
    assert d.constraints.max_steps == 10
    assert d.constraints.max_execution_time_ms == 60_000
    assert d.trigger.type == TriggerType.manual
    assert d.oversight.mode == OversightMode.auto
    assert d.conditions is None
