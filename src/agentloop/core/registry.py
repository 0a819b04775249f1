"""
Tool Registry

Holds every tool available to a session, keyed by unique name. The registry
is populated once during setup (builtin, custom and MCP-discovered tools)
and is read-only afterwards.
"""

from collections.abc import Iterable, Iterator
from typing import Any

import structlog

from agentloop.core.domain.errors import DuplicateToolName, ToolNotFound
from agentloop.core.interfaces.tools import ToolProtocol

_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
}


class ToolRegistry:
    """
    Name-keyed set of tools.

    Example:
        >>> registry = ToolRegistry([BashTool(), FileReadTool()])
        >>> registry.resolve("bash").name
        'bash'
    """

    def __init__(self, tools: Iterable[ToolProtocol] = ()):
        self._tools: dict[str, ToolProtocol] = {}
        self.logger = structlog.get_logger().bind(component="tool_registry")
        for tool in tools:
            self._add(tool)
        self.logger.debug("registry_built", tools=self.names())

    def _add(self, tool: ToolProtocol) -> None:
        existing = self._tools.get(tool.name)
        if existing is not None:
            raise DuplicateToolName(tool.name, existing.kind.value, tool.kind.value)
        self._tools[tool.name] = tool

    def resolve(self, name: str) -> ToolProtocol:
        """
        Look up a tool by name.

        Raises:
            ToolNotFound: If no tool with this name is registered
        """
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFound(name) from None

    def get(self, name: str) -> ToolProtocol | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolProtocol]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)


def validate_arguments(schema: dict[str, Any], arguments: dict[str, Any]) -> str | None:
    """
    Check an argument payload against a tool's JSON schema.

    Only the parts every tool relies on are checked: required keys, the
    declared type of each known property, and enum membership.

    Returns:
        None when valid, otherwise a description of the first problem
    """
    if not isinstance(arguments, dict):
        return "Arguments must be an object"

    for key in schema.get("required", []):
        if key not in arguments:
            return f"Missing required parameter: {key}"

    properties = schema.get("properties", {})
    for key, value in arguments.items():
        prop = properties.get(key)
        if not prop or (value is None and key not in schema.get("required", [])):
            continue
        expected = prop.get("type")
        if isinstance(expected, str) and expected in _JSON_TYPES:
            # bool is an int subclass
            if expected in ("integer", "number") and isinstance(value, bool):
                return f"Parameter '{key}' must be of type {expected}"
            if not isinstance(value, _JSON_TYPES[expected]):
                return f"Parameter '{key}' must be of type {expected}"
        if "enum" in prop and value not in prop["enum"]:
            return f"Parameter '{key}' must be one of {prop['enum']}"
    return None
