"""agentloop - embeddable agent execution runtime."""

from agentloop.application.agent import Agent, AgentController
from agentloop.core.channel import Channel, ChannelClosed
from agentloop.core.domain import (
    AgentConfig,
    AgentError,
    ApprovalPolicy,
    ConfigError,
    InputMessage,
    OutputEvent,
    OutputEventType,
    SandboxPolicy,
    SessionState,
    ToolResult,
    create_config,
    load_config,
)
from agentloop.core.domain.config import builtin_tools

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "AgentConfig",
    "AgentController",
    "AgentError",
    "ApprovalPolicy",
    "Channel",
    "ChannelClosed",
    "ConfigError",
    "InputMessage",
    "OutputEvent",
    "OutputEventType",
    "SandboxPolicy",
    "SessionState",
    "ToolResult",
    "__version__",
    "builtin_tools",
    "create_config",
    "load_config",
]
