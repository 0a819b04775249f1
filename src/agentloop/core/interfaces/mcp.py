"""
MCP Client Protocol

Remote tool source consulted during session setup (list_tools) and at
dispatch time (call_tool).
"""

from typing import Any, Protocol

from agentloop.core.domain.messages import ToolResult


class McpClientProtocol(Protocol):
    """Connection to one MCP server."""

    @property
    def server_name(self) -> str: ...

    async def connect(self) -> None: ...

    async def list_tools(self) -> list[dict[str, Any]]:
        """Return tool definitions with name, description and input_schema."""
        ...

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult: ...

    async def close(self) -> None: ...
