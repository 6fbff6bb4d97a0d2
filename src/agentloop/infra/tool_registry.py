"""Read-only lookup table of tools shared across invocations."""

from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from agentloop.domain.tool import Tool


class DuplicateToolError(ValueError):
    """Raised when two tools share a name."""


class ToolRegistry:
    """
    Immutable registry of tools, built once at agent setup.

    Args:
        tools: Tools to register; names must be unique.
    """

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        registry: Dict[str, Tool] = {}
        for tool in tools:
            if tool.name in registry:
                raise DuplicateToolError(f"Tool '{tool.name}' registered twice")
            registry[tool.name] = tool
        self._registry: Mapping[str, Tool] = MappingProxyType(registry)

    def get_tool(self, name: str) -> Optional[Tool]:
        """
        Retrieves a tool by name.

        Args:
            name: The tool name to fetch.

        Returns:
            The matching tool or None.
        """
        return self._registry.get(name)

    def manifest(self) -> List[dict]:
        """Returns the OpenAI-style function manifest for every tool."""

        return [tool.as_openai_tool() for tool in self._registry.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._registry

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._registry.values())

    def __len__(self) -> int:
        return len(self._registry)
