"""Tool protocol, registry, dispatch and the built-in memory tools."""

from .base import Tool, ToolCall, ToolContext, ToolResult, ToolSpec
from .builtin import MEMORY_TOOL_NAMES, GetAgentMemoryTool, SaveAgentMemoryTool
from .dispatch import ToolDispatcher
from .registry import ToolRegistry, tool_spec

__all__ = [
    "Tool",
    "ToolCall",
    "ToolContext",
    "ToolResult",
    "ToolSpec",
    "ToolDispatcher",
    "ToolRegistry",
    "tool_spec",
    "MEMORY_TOOL_NAMES",
    "GetAgentMemoryTool",
    "SaveAgentMemoryTool",
]
