"""Domain types: configuration, messages, events, session state and errors."""

from agentloop.core.domain.config import (
    AgentConfig,
    ApprovalPolicy,
    BuiltinTool,
    BuiltinToolConfig,
    CustomToolConfig,
    McpServerConfig,
    RetryPolicy,
    SandboxPolicy,
    SideEffect,
    create_config,
    load_config,
)
from agentloop.core.domain.errors import (
    AgentError,
    AlreadyRunning,
    ConfigError,
    DuplicateToolName,
    InvalidTransition,
    McpError,
    ModelApiError,
    NotRunning,
    OutputError,
    OutputErrorKind,
    PolicyDenied,
    ToolCancelledError,
    ToolExecutionError,
    ToolNotFound,
)
from agentloop.core.domain.events import OutputEvent, OutputEventType
from agentloop.core.domain.messages import (
    InputMessage,
    Message,
    Role,
    ToolCall,
    ToolResult,
    ToolResultStatus,
)
from agentloop.core.domain.state import ControlCommand, SessionSnapshot, SessionState

__all__ = [
    "AgentConfig",
    "AgentError",
    "AlreadyRunning",
    "ApprovalPolicy",
    "BuiltinTool",
    "BuiltinToolConfig",
    "ConfigError",
    "ControlCommand",
    "CustomToolConfig",
    "DuplicateToolName",
    "InputMessage",
    "InvalidTransition",
    "McpError",
    "McpServerConfig",
    "Message",
    "ModelApiError",
    "NotRunning",
    "OutputError",
    "OutputErrorKind",
    "OutputEvent",
    "OutputEventType",
    "PolicyDenied",
    "RetryPolicy",
    "Role",
    "SandboxPolicy",
    "SessionSnapshot",
    "SessionState",
    "SideEffect",
    "ToolCall",
    "ToolCancelledError",
    "ToolExecutionError",
    "ToolNotFound",
    "ToolResult",
    "ToolResultStatus",
    "create_config",
    "load_config",
]
