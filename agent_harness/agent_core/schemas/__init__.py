"""Schemas for agent definitions, executions and memory."""

from .base import BaseSchema, FrozenSchema
from .definition import (
    AgentDefinition,
    Condition,
    ConditionGroup,
    ConditionOperator,
    ExecutionConstraints,
    GroupOperator,
    InputField,
    InputFieldType,
    Oversight,
    OversightMode,
    Trigger,
    TriggerType,
)
from .execution import (
    BrowserAction,
    ExecutionContext,
    ExecutionRecord,
    ExecutionResult,
    ExecutionStatus,
    MemoryEntry,
    Step,
    StepType,
    TokenUsage,
)

__all__ = [
    "BaseSchema",
    "FrozenSchema",
    "AgentDefinition",
    "Condition",
    "ConditionGroup",
    "ConditionOperator",
    "ExecutionConstraints",
    "GroupOperator",
    "InputField",
    "InputFieldType",
    "Oversight",
    "OversightMode",
    "Trigger",
    "TriggerType",
    "BrowserAction",
    "ExecutionContext",
    "ExecutionRecord",
    "ExecutionResult",
    "ExecutionStatus",
    "MemoryEntry",
    "Step",
    "StepType",
    "TokenUsage",
]
