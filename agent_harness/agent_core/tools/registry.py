from __future__ import annotations

"""Tool registry.

The registry maps a tool name to an executable tool implementation.

The engine uses it to resolve a definition's ``tools`` list before the first
model call. Resolution is all-or-nothing: a definition naming a tool nobody
registered is a configuration error, reported with every missing name, and the
run fails before any model call is made.
"""

from typing import Dict, Iterable, List

from ..errors import UnknownToolError
from .base import Tool, ToolSpec


class ToolRegistry:
    """
    In-memory mapping of tool names to implementations.

    The registry is populated once during wiring and only read afterwards, so
    it can be shared by concurrent runs without locking.

    Notes:
        - ``register`` overwrites any existing mapping for the tool name.
        - ``get`` will raise ``KeyError`` if the tool is missing.
    """

    def __init__(self) -> None:
        """Initialize an empty tool registry."""
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """
        Register a tool implementation.

        Args:
            tool: The tool instance to register. It must expose a ``name`` attribute.
        """
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool:
        """
        Retrieve a registered tool by name.

        Raises:
            KeyError: If no tool is registered with the given name.
        """
        return self._tools[name]

    def has(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> List[str]:
        return sorted(self._tools)

    def resolve(self, names: Iterable[str]) -> Dict[str, Tool]:
        """
        Resolve tool names into implementations, preserving their order.

        Raises:
            UnknownToolError: listing every name that is not registered.
        """
        wanted = list(names)
        missing = [n for n in wanted if n not in self._tools]
        if missing:
            raise UnknownToolError(missing)
        return {n: self._tools[n] for n in wanted}

    def metadata(self, names: Iterable[str] | None = None) -> List[ToolSpec]:
        """Describe tools for the model: name, description and JSON schema."""
        selected = self.resolve(names) if names is not None else dict(sorted(self._tools.items()))
        return [tool_spec(t) for t in selected.values()]


def tool_spec(tool: Tool) -> ToolSpec:
    return ToolSpec(name=tool.name, description=tool.description, parameters=tool.input_model.model_json_schema())
