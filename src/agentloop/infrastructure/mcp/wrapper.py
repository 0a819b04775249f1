"""
MCP Tool Wrapper

Exposes one tool of an MCP server through the tool protocol. Registered
names are qualified with the server name (``<server>__<tool>``) so tools of
different servers never collide with each other or with built-in tools.
"""

from typing import Any

from agentloop.core.cancellation import CancellationToken
from agentloop.core.domain.config import SideEffect
from agentloop.core.domain.messages import ToolResult
from agentloop.core.interfaces.mcp import McpClientProtocol
from agentloop.core.interfaces.tools import ToolKind

NAME_SEPARATOR = "__"


def qualified_name(server_name: str, tool_name: str) -> str:
    return f"{server_name}{NAME_SEPARATOR}{tool_name}"


class McpTool:
    """Remote tool resolved through an MCP client."""

    kind = ToolKind.MCP
    requires_approval = False

    def __init__(self, client: McpClientProtocol, definition: dict[str, Any]):
        self.client = client
        self.remote_name = definition["name"]
        self._description = definition.get("description", "")
        self._schema = definition.get("input_schema") or {"type": "object", "properties": {}}
        self._side_effect = SideEffect.READ if definition.get("read_only") else SideEffect.EXECUTE

    @property
    def name(self) -> str:
        return qualified_name(self.client.server_name, self.remote_name)

    @property
    def description(self) -> str:
        return f"[{self.client.server_name}] {self._description}".strip()

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return self._schema

    @property
    def side_effect(self) -> SideEffect:
        return self._side_effect

    async def invoke(self, arguments: dict[str, Any], cancel_token: CancellationToken) -> ToolResult:
        cancel_token.raise_if_cancelled()
        return await self.client.call_tool(self.remote_name, arguments)
