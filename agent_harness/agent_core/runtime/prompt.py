"""Prompt assembly for agent runs.

The system prompt is built from four layers, in order:

1. base rails shared by every agent (with the current date and time),
2. the organisation prompt, when the context carries one,
3. the agent's own name and system prompt,
4. dynamic context: organisation, subject, the memory snapshot and whatever
   the definition's context provider returned.

The first user message lists the validated input, one ``- key: value`` line
per non-empty value.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Mapping, Optional

from ..schemas.definition import AgentDefinition
from ..schemas.execution import ExecutionContext, MemoryEntry

DEFAULT_SUMMARY = "Agent execution completed."


def system_base(now: datetime) -> str:
    stamp = now.isoformat()
    human = now.strftime("%A %d %B %Y, %H:%M")
    return (
        "You are an autonomous AI agent executing a specific task.\n"
        "\n"
        f"CURRENT DATE/TIME: {stamp} ({human})\n"
        "\n"
        "RULES:\n"
        "- Only state facts you obtained from the input or from tool results\n"
        "- Be precise and factual in all outputs\n"
        "- Complete the task steps methodically, one at a time\n"
        "- After each tool call, write one short sentence about the result then move on\n"
        "- Do not repeat data that is already visible in tool outputs\n"
        "- Finish with a short summary of 2-3 bullet points\n"
        "- When setting due dates, always use dates in the future relative to the current date above"
    )


def dynamic_context(
    context: ExecutionContext, memory: Optional[MemoryEntry], extra: Optional[str] = None
) -> str:
    lines = []
    if context.org_id:
        lines.append(f"Organisation ID: {context.org_id}")
    if context.subject_id:
        lines.append(f"Subject ID: {context.subject_id}")
    if memory is not None:
        lines.append(f"Previous runs for this subject: {memory.run_count}")
        if memory.last_run_at is not None:
            lines.append(f"Last run at: {memory.last_run_at.isoformat()}")
        lines.append(f"Memory from previous runs: {json.dumps(memory.memory, default=str, sort_keys=True)}")
    elif context.subject_id:
        lines.append("Memory from previous runs: none (first run for this subject)")
    if extra:
        lines.append(extra)
    return "\n".join(lines)


def build_system_prompt(
    definition: AgentDefinition,
    context: ExecutionContext,
    *,
    now: datetime,
    memory: Optional[MemoryEntry] = None,
    extra_context: Optional[str] = None,
) -> str:
    layers = [
        system_base(now),
        f"\nORGANISATION CONTEXT:\n{context.org_prompt}" if context.org_prompt else "",
        f"\nAGENT: {definition.name}\n{definition.system_prompt}",
    ]
    extra = dynamic_context(context, memory, extra_context)
    if extra:
        layers.append(f"\nCONTEXT:\n{extra}")
    return "\n".join(layer for layer in layers if layer)


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def build_user_message(definition: AgentDefinition, data: Mapping[str, Any]) -> str:
    parts = [f'Execute the "{definition.name}" agent with the following input:']
    for key, value in data.items():
        if value is None or value == "":
            continue
        parts.append(f"- {key}: {_render(value)}")
    return "\n".join(parts)
