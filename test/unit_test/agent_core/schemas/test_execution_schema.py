from __future__ import annotations

from agent_harness.agent_core.schemas.execution import (
    ExecutionContext,
    ExecutionResult,
    ExecutionStatus,
    TokenUsage,
)


def test_token_usage_adds_up() -> None:
    total = TokenUsage.of(10, 5) + TokenUsage.of(3, 2)

    assert total == TokenUsage(input_tokens=13, output_tokens=7, total_tokens=20)


def test_status_terminality() -> None:
    assert ExecutionStatus.running.is_terminal is False
    assert all(s.is_terminal for s in (ExecutionStatus.completed, ExecutionStatus.failed, ExecutionStatus.escalated))


def test_context_accepts_camel_case() -> None:
    ctx = ExecutionContext.model_validate({"input": {"a": 1}, "orgId": "o", "subjectId": "s", "triggerType": "event"})

    assert (ctx.org_id, ctx.subject_id, ctx.trigger_type.value) == ("o", "s", "event")


def test_ledger_output_only_carries_what_is_set() -> None:
    ok = ExecutionResult(status=ExecutionStatus.completed, summary="done")
    escalated = ExecutionResult(
        status=ExecutionStatus.escalated,
        summary="waiting",
        pending_action={"tool_name": "send"},
    )
    failed = ExecutionResult(status=ExecutionStatus.failed, summary="failed", error="boom")

    assert ok.ledger_output() == {"summary": "done"}
    assert escalated.ledger_output() == {"summary": "waiting", "pending_action": {"tool_name": "send"}}
    assert failed.ledger_output() == {"summary": "failed", "error": "boom"}
