"""
MCP client for stdio servers.

Each StdioMcpClient owns one server subprocess. The stdio transport and the
ClientSession are entered and exited by a dedicated background task, which
keeps the connection alive until close() is called. Tool calls can be made
from any task of the same event loop.
"""

import asyncio
import json
import os
from contextlib import AsyncExitStack
from datetime import timedelta
from typing import Any

import structlog
from mcp.client.session import ClientSession
from mcp.client.stdio import StdioServerParameters, stdio_client

from agentloop.core.domain.config import McpServerConfig
from agentloop.core.domain.errors import McpError
from agentloop.core.domain.messages import ToolResult


class StdioMcpClient:
    """Persistent connection to one MCP server launched over stdio."""

    def __init__(self, server: McpServerConfig, connect_timeout: float = 30.0, call_timeout: float = 120.0):
        self.server = server
        self.connect_timeout = connect_timeout
        self.call_timeout = call_timeout
        self._session: ClientSession | None = None
        self._runner: asyncio.Task | None = None
        self._ready = asyncio.Event()
        self._shutdown = asyncio.Event()
        self._error: BaseException | None = None
        self.logger = structlog.get_logger().bind(component="mcp_client", server=server.name)

    @property
    def server_name(self) -> str:
        return self.server.name

    async def connect(self) -> None:
        """
        Launch the server and initialize the session.

        Raises:
            McpError: If the server cannot be started or initialized in time
        """
        if self._session is not None:
            return
        self._runner = asyncio.create_task(self._run())
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=self.connect_timeout)
        except asyncio.TimeoutError:
            await self.close()
            raise McpError(f"MCP server '{self.server.name}' did not start within {self.connect_timeout}s") from None
        if self._error is not None:
            raise McpError(f"MCP server '{self.server.name}' failed to start: {self._error}") from self._error
        self.logger.info("mcp_connected", command=self.server.command)

    async def _run(self) -> None:
        params = StdioServerParameters(
            command=self.server.command,
            args=list(self.server.args),
            env={**os.environ, **(self.server.env or {})},
        )
        try:
            async with AsyncExitStack() as stack:
                read_stream, write_stream = await stack.enter_async_context(stdio_client(params))
                session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
                await session.initialize()
                self._session = session
                self._ready.set()
                await self._shutdown.wait()
        except Exception as e:
            self._error = e
            self.logger.error("mcp_connection_failed", error=str(e), error_type=type(e).__name__)
        finally:
            self._session = None
            self._ready.set()

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise McpError(f"MCP server '{self.server.name}' is not connected")
        return self._session

    async def list_tools(self) -> list[dict[str, Any]]:
        """Return the server's tools as dicts with name, description, input_schema and read_only."""
        session = self._require_session()
        result = await session.list_tools()
        return [
            {
                "name": tool.name,
                "description": tool.description or "",
                "input_schema": tool.inputSchema or {"type": "object", "properties": {}},
                "read_only": bool(tool.annotations and tool.annotations.readOnlyHint),
            }
            for tool in result.tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        session = self._require_session()
        result = await session.call_tool(
            name=name,
            arguments=arguments,
            read_timeout_seconds=timedelta(seconds=self.call_timeout),
        )

        texts = [block.text for block in result.content if hasattr(block, "text")]
        text = "\n".join(texts)
        if result.isError:
            return ToolResult.failure(text or "Unknown MCP error")
        if not text and getattr(result, "structuredContent", None):
            text = json.dumps(result.structuredContent, ensure_ascii=False, default=str)
        return ToolResult.ok(text)

    async def close(self) -> None:
        self._shutdown.set()
        if self._runner is not None:
            await asyncio.gather(self._runner, return_exceptions=True)
            self._runner = None
            self.logger.info("mcp_closed")
