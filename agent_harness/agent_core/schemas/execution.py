from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import Field

from .base import BaseSchema, utc_now
from .definition import TriggerType


class ExecutionStatus(str, Enum):
    running = "running"
    completed = "completed"
    failed = "failed"
    escalated = "escalated"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.running


class StepType(str, Enum):
    text = "text"
    tool_call = "tool-call"
    tool_result = "tool-result"
    browser_action = "browser-action"


class TokenUsage(BaseSchema):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    @classmethod
    def of(cls, input_tokens: int, output_tokens: int) -> "TokenUsage":
        return cls(input_tokens=input_tokens, output_tokens=output_tokens, total_tokens=input_tokens + output_tokens)


class ExecutionContext(BaseSchema):
    """Everything a single run needs beyond the definition itself."""

    input: Dict[str, Any] = Field(default_factory=dict)
    org_id: Optional[str] = Field(default=None, alias="orgId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    org_prompt: Optional[str] = Field(default=None, alias="orgPrompt")
    trigger_type: TriggerType = Field(default=TriggerType.manual, alias="triggerType")
    subject_id: Optional[str] = Field(default=None, alias="subjectId")


class Step(BaseSchema):
    index: int = Field(ge=0)
    type: StepType
    tool_name: Optional[str] = None
    tool_call_id: Optional[str] = None
    input: Optional[Dict[str, Any]] = None
    output: Optional[Any] = None
    content: Optional[str] = None
    is_error: bool = False
    usage: Optional[TokenUsage] = None
    timestamp: datetime = Field(default_factory=utc_now)


class BrowserAction(BaseSchema):
    index: int = Field(ge=0)
    type: str
    reasoning: Optional[str] = None
    action: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


class ExecutionResult(BaseSchema):
    execution_id: Optional[str] = None
    status: ExecutionStatus
    summary: str = ""
    steps: List[Step] = Field(default_factory=list)
    usage: TokenUsage = Field(default_factory=TokenUsage)
    duration_ms: int = 0
    error: Optional[str] = None
    # review-before escalation: the tool call that awaits a human decision
    pending_action: Optional[Dict[str, Any]] = None

    def ledger_output(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"summary": self.summary}
        if self.error is not None:
            out["error"] = self.error
        if self.pending_action is not None:
            out["pending_action"] = self.pending_action
        return out


class ExecutionRecord(BaseSchema):
    """Durable ledger row of one run."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    definition_id: str
    definition_version: str = "1.0"
    org_id: Optional[str] = None
    user_id: Optional[str] = None
    trigger_type: TriggerType = TriggerType.manual
    input: Dict[str, Any] = Field(default_factory=dict)
    subject_id: Optional[str] = None

    status: ExecutionStatus = ExecutionStatus.running
    steps: List[Step] = Field(default_factory=list)
    output: Optional[Dict[str, Any]] = None
    usage: TokenUsage = Field(default_factory=TokenUsage)
    duration_ms: Optional[int] = None
    model: Optional[str] = None

    started_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None


class MemoryEntry(BaseSchema):
    definition_id: str
    subject_id: str
    org_id: Optional[str] = None
    memory: Dict[str, Any] = Field(default_factory=dict)
    run_count: int = 0
    last_run_at: Optional[datetime] = None
