"""
Application Layer - Agent Wiring

Builds the collaborators of a session from an AgentConfig:
- the LLM provider (litellm by default)
- the tool registry: built-in tools, custom tools, caller-supplied tools
  and tools discovered on the configured MCP servers

MCP discovery happens here, during session setup and before the first
turn, so a registry is complete and immutable once a session runs.
"""

from collections.abc import Callable, Iterable, Sequence

import structlog

from agentloop.core.domain.config import (
    AgentConfig,
    BuiltinTool,
    BuiltinToolConfig,
    CustomToolConfig,
    McpServerConfig,
)
from agentloop.core.domain.errors import ConfigError, McpError
from agentloop.core.interfaces.llm import LLMProviderProtocol
from agentloop.core.interfaces.mcp import McpClientProtocol
from agentloop.core.interfaces.tools import ToolProtocol
from agentloop.core.registry import ToolRegistry
from agentloop.infrastructure.llm.litellm_provider import LiteLLMProvider
from agentloop.infrastructure.mcp.client import StdioMcpClient
from agentloop.infrastructure.mcp.wrapper import McpTool
from agentloop.infrastructure.tools.custom_tool import CustomTool
from agentloop.infrastructure.tools.file_tools import FileReadTool, FileWriteTool
from agentloop.infrastructure.tools.plan_tool import UpdatePlanTool
from agentloop.infrastructure.tools.shell_tool import BashTool
from agentloop.infrastructure.tools.web_tool import WebSearchTool

McpClientFactory = Callable[[McpServerConfig], McpClientProtocol]

logger = structlog.get_logger(component="agent_factory")


def create_llm_provider(config: AgentConfig) -> LLMProviderProtocol:
    """Default provider for a configuration."""
    return LiteLLMProvider(model=config.model, provider=config.provider, api_key=config.api_key)


def create_builtin_tool(entry: BuiltinToolConfig, config: AgentConfig) -> ToolProtocol:
    workdir = config.working_directory
    if entry.tool == BuiltinTool.BASH:
        return BashTool(working_directory=workdir, allow_network=entry.allow_network)
    if entry.tool == BuiltinTool.WEB_SEARCH:
        return WebSearchTool()
    if entry.tool == BuiltinTool.FILE_READ:
        return FileReadTool(working_directory=workdir)
    if entry.tool == BuiltinTool.FILE_WRITE:
        return FileWriteTool(working_directory=workdir)
    if entry.tool == BuiltinTool.UPDATE_PLAN:
        return UpdatePlanTool()
    raise ConfigError(f"Unknown builtin tool: {entry.tool}")


def create_configured_tools(config: AgentConfig) -> list[ToolProtocol]:
    """Instantiate builtin and custom tools in configuration order."""
    tools: list[ToolProtocol] = []
    for entry in config.tools:
        if isinstance(entry, BuiltinToolConfig):
            tools.append(create_builtin_tool(entry, config))
        elif isinstance(entry, CustomToolConfig):
            tools.append(CustomTool(entry))
    return tools


async def connect_mcp_servers(
    servers: Sequence[McpServerConfig],
    client_factory: McpClientFactory | None = None,
) -> tuple[list[ToolProtocol], list[McpClientProtocol]]:
    """
    Connect to MCP servers and wrap their tools.

    Returns both the tools and the connected clients; the caller owns the
    clients and must close them when the session ends. If any server fails,
    the clients connected so far are closed before the error is raised.

    Raises:
        McpError: If a server cannot be connected or listed
    """
    factory = client_factory or StdioMcpClient
    tools: list[ToolProtocol] = []
    clients: list[McpClientProtocol] = []

    try:
        for server in servers:
            logger.info("connecting_to_mcp_server", server=server.name, command=server.command)
            client = factory(server)
            clients.append(client)
            await client.connect()
            definitions = await client.list_tools()
            logger.info(
                "mcp_server_connected",
                server=server.name,
                tools_count=len(definitions),
                tool_names=[d["name"] for d in definitions],
            )
            tools.extend(McpTool(client, definition) for definition in definitions)
    except Exception as e:
        for client in clients:
            await client.close()
        if isinstance(e, McpError):
            raise
        raise McpError(f"MCP setup failed: {e}") from e

    return tools, clients


async def build_registry(
    config: AgentConfig,
    extra_tools: Iterable[ToolProtocol] = (),
    mcp_client_factory: McpClientFactory | None = None,
) -> tuple[ToolRegistry, list[McpClientProtocol]]:
    """
    Build the session's tool registry.

    Registration order is builtin/custom (as configured), then extra tools,
    then MCP tools.

    Returns:
        Registry and the MCP clients that must be closed with the session

    Raises:
        DuplicateToolName: If two tools share a name
        McpError: If MCP discovery fails
    """
    tools = create_configured_tools(config)
    tools.extend(extra_tools)
    # local duplicates fail before any MCP server is launched
    ToolRegistry(tools)
    mcp_tools, clients = await connect_mcp_servers(config.mcp_servers, mcp_client_factory)
    try:
        registry = ToolRegistry([*tools, *mcp_tools])
    except ConfigError:
        for client in clients:
            await client.close()
        raise
    logger.info("registry_ready", tools=registry.names(), mcp_servers=len(clients))
    return registry, clients
