from __future__ import annotations

from datetime import datetime, timezone

from agent_harness.agent_core.runtime.prompt import build_system_prompt, build_user_message
from agent_harness.agent_core.schemas.definition import AgentDefinition
from agent_harness.agent_core.schemas.execution import ExecutionContext, MemoryEntry

NOW = datetime(2026, 2, 3, 14, 5, tzinfo=timezone.utc)


def _definition() -> AgentDefinition:
    return AgentDefinition(id="coach", name="Career coach", system_prompt="Help the candidate prepare.")


def test_layers_appear_in_order() -> None:
    ctx = ExecutionContext(org_id="org-1", org_prompt="Acme hires engineers.", subject_id="p-1")

    prompt = build_system_prompt(_definition(), ctx, now=NOW)

    base = prompt.index("CURRENT DATE/TIME: 2026-02-03T14:05:00+00:00 (Tuesday 03 February 2026, 14:05)")
    org = prompt.index("ORGANISATION CONTEXT:\nAcme hires engineers.")
    agent = prompt.index("AGENT: Career coach\nHelp the candidate prepare.")
    dynamic = prompt.index("CONTEXT:\nOrganisation ID: org-1\nSubject ID: p-1")
    assert base < org < agent < dynamic


def test_org_layer_and_context_are_omitted_when_absent() -> None:
    prompt = build_system_prompt(_definition(), ExecutionContext(), now=NOW)

    assert "ORGANISATION CONTEXT" not in prompt
    assert "\nCONTEXT:" not in prompt
    assert prompt.endswith("AGENT: Career coach\nHelp the candidate prepare.")


def test_memory_snapshot_is_rendered() -> None:
    memory = MemoryEntry(
        definition_id="coach",
        subject_id="p-1",
        memory={"b": 2, "a": 1},
        run_count=3,
        last_run_at=NOW,
    )

    prompt = build_system_prompt(_definition(), ExecutionContext(subject_id="p-1"), now=NOW, memory=memory)

    assert "Previous runs for this subject: 3" in prompt
    assert "Last run at: 2026-02-03T14:05:00+00:00" in prompt
    assert 'Memory from previous runs: {"a": 1, "b": 2}' in prompt


def test_extra_context_follows_the_built_in_lines() -> None:
    prompt = build_system_prompt(
        _definition(),
        ExecutionContext(org_id="org-1", subject_id="p-1"),
        now=NOW,
        extra_context="Open roles: 3",
    )

    assert prompt.endswith(
        "CONTEXT:\nOrganisation ID: org-1\nSubject ID: p-1\n"
        "Memory from previous runs: none (first run for this subject)\nOpen roles: 3"
    )


def test_user_message_lists_non_empty_input() -> None:
    message = build_user_message(
        _definition(),
        {"name": "Ada", "remote": True, "skills": ["python", "sql"], "notes": "", "years": 4},
    )

    assert message.splitlines() == [
        'Execute the "Career coach" agent with the following input:',
        "- name: Ada",
        "- remote: true",
        '- skills: ["python", "sql"]',
        "- years: 4",
    ]
