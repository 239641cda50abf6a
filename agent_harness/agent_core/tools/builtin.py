from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, Field

from agent_harness.core.logging_config import get_logger

from ..schemas.base import BaseSchema
from ..schemas.execution import MemoryEntry
from .base import Tool, ToolContext, ToolResult

logger = get_logger(__name__)

GET_AGENT_MEMORY = "getAgentMemory"
SAVE_AGENT_MEMORY = "saveAgentMemory"
MEMORY_TOOL_NAMES = frozenset({GET_AGENT_MEMORY, SAVE_AGENT_MEMORY})


class MemoryKeyInput(BaseSchema):
    """Memory key; omitted parts default to the current run's key."""

    agent_id: Optional[str] = Field(default=None, alias="agentId", description="Agent definition id")
    subject_id: Optional[str] = Field(default=None, alias="subjectId", description="Subject id (usually a profile id)")
    org_id: Optional[str] = Field(default=None, alias="orgId", description="Organisation id")


class SaveMemoryInput(MemoryKeyInput):
    memory: Dict[str, Any] = Field(description="Memory payload to persist (replaces existing memory)")


def _resolve_key(ctx: ToolContext, data: MemoryKeyInput) -> tuple[str, Optional[str], Optional[str]]:
    return (
        data.agent_id or ctx.definition.id,
        data.subject_id or ctx.context.subject_id,
        data.org_id or ctx.context.org_id,
    )


def _is_own_key(ctx: ToolContext, key: tuple[str, Optional[str], Optional[str]]) -> bool:
    return key == (ctx.definition.id, ctx.context.subject_id, ctx.context.org_id)


def _memory_payload(entry: MemoryEntry) -> Dict[str, Any]:
    return {
        "memory": entry.memory,
        "runCount": entry.run_count,
        "lastRunAt": entry.last_run_at.isoformat() if entry.last_run_at else None,
    }


@dataclass(frozen=True)
class GetAgentMemoryTool(Tool):
    """
    Read the persistent memory of an agent for one subject.

    The engine reads the run's own memory once before the first model call;
    asking for that key again returns the snapshot instead of re-reading the
    store. Other keys are read from ``ctx.deps.memory``.
    """

    name: str = GET_AGENT_MEMORY
    description: str = (
        "Read persistent memory for this agent's previous interactions with a subject. "
        "Use this to recall what happened in previous runs. Returns null if no memory exists "
        "(first run for this subject)."
    )
    input_model: Type[BaseModel] = MemoryKeyInput
    requires_approval: bool = False

    async def execute(self, ctx: ToolContext, data: MemoryKeyInput) -> ToolResult:
        key = _resolve_key(ctx, data)
        if key[1] is None:
            return ToolResult.failure("subjectId is required to read agent memory.")

        if _is_own_key(ctx, key) and ctx.memory is not None:
            return ToolResult.success(_memory_payload(ctx.memory))

        repo = getattr(ctx.deps, "memory", None)
        if repo is None:
            return ToolResult.failure("Agent memory is not configured.")
        try:
            entry = await repo.get(*key)
        except Exception as e:
            logger.error(f"[{GET_AGENT_MEMORY}] Failed to load memory for {key}: {e}")
            return ToolResult.failure("Failed to load agent memory.")
        return ToolResult.success(_memory_payload(entry) if entry is not None else None)


@dataclass(frozen=True)
class SaveAgentMemoryTool(Tool):
    """
    Persist agent memory for one subject.

    The payload replaces the stored memory wholesale; ``runCount`` goes up by
    one and ``lastRunAt`` is set to now. Concurrent writers: last write wins.
    """

    name: str = SAVE_AGENT_MEMORY
    description: str = (
        "Save persistent memory for this agent's interaction with a subject. "
        "Use this at the end of a run to record what was covered. "
        "The memory payload replaces any existing memory and is available on the next run."
    )
    input_model: Type[BaseModel] = SaveMemoryInput
    requires_approval: bool = False

    async def execute(self, ctx: ToolContext, data: SaveMemoryInput) -> ToolResult:
        key = _resolve_key(ctx, data)
        if key[1] is None:
            return ToolResult.failure("subjectId is required to save agent memory.")

        repo = getattr(ctx.deps, "memory", None)
        if repo is None:
            return ToolResult.failure("Agent memory is not configured.")
        try:
            entry = await repo.upsert(*key, data.memory)
        except Exception as e:
            logger.error(f"[{SAVE_AGENT_MEMORY}] Failed to save memory for {key}: {e}")
            return ToolResult.failure("Failed to save agent memory.")
        return ToolResult.success({"success": True, "runCount": entry.run_count})
