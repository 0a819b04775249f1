"""
Domain Errors

Exception hierarchy for the agent runtime plus the error descriptions that
travel on the output channel.

Propagation rules:
- Per-call tool faults (ToolExecutionError and its variants) are captured by
  the dispatcher and turned into failed ToolResults; they never abort a session.
- Turn-level and session-level faults (ModelApiError, ConfigError) move the
  session to Errored and surface as a terminal Error event.
"""

from dataclasses import dataclass
from enum import Enum


class AgentError(Exception):
    """Base class for every error raised by agentloop."""


class ConfigError(AgentError):
    """Invalid or contradictory configuration. Raised before the session runs."""


class DuplicateToolName(ConfigError):
    """Two registered tools share the same name."""

    def __init__(self, name: str, existing_kind: str, new_kind: str):
        super().__init__(
            f"Tool name '{name}' is already registered as a {existing_kind} tool "
            f"and cannot be re-registered as a {new_kind} tool"
        )
        self.name = name
        self.existing_kind = existing_kind
        self.new_kind = new_kind


class ToolNotFound(AgentError, KeyError):
    """Requested tool is not in the registry."""

    def __init__(self, name: str):
        super().__init__(f"Tool not found: {name}")
        self.name = name

    def __str__(self) -> str:
        return self.args[0]


class ToolExecutionError(AgentError):
    """A tool call failed. Recorded per call, never fatal to the session."""


class PolicyDenied(ToolExecutionError):
    """The policy gate refused a tool call."""

    def __init__(self, tool_name: str, reason: str):
        super().__init__(f"Tool '{tool_name}' denied by policy: {reason}")
        self.tool_name = tool_name
        self.reason = reason


class ToolCancelledError(ToolExecutionError):
    """A tool execution observed the session's cancellation signal."""


class ModelApiError(AgentError):
    """Transport or provider failure while talking to the model."""

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        status_code: int | None = None,
        error_type: str | None = None,
    ):
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code
        self.error_type = error_type


class AlreadyRunning(AgentError):
    """The agent already has an execution in flight."""

    def __init__(self) -> None:
        super().__init__("Agent is already running")


class NotRunning(AgentError):
    """An operation needs a running execution and there is none."""

    def __init__(self) -> None:
        super().__init__("Agent is not running")


class InvalidTransition(AgentError):
    """A session state change that the state diagram does not allow."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Invalid session transition: {current} -> {target}")
        self.current = current
        self.target = target


class McpError(AgentError):
    """An MCP server could not be reached or answered with an error."""


class OutputErrorKind(str, Enum):
    """Category of an error delivered on the output channel."""

    TURN_LIMIT_EXCEEDED = "turn_limit_exceeded"
    TOOL = "tool"
    MODEL = "model"
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    INTERRUPTED = "interrupted"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class OutputError:
    """
    Error description carried by a terminal Error event.

    Attributes:
        kind: Error category
        message: Human-readable detail (may be empty for INTERRUPTED)
    """

    kind: OutputErrorKind
    message: str = ""

    def __str__(self) -> str:
        if self.kind == OutputErrorKind.TURN_LIMIT_EXCEEDED:
            return "Turn limit exceeded"
        if self.kind == OutputErrorKind.INTERRUPTED:
            return "Agent was interrupted"
        label = {
            OutputErrorKind.TOOL: "Tool error",
            OutputErrorKind.MODEL: "Model error",
            OutputErrorKind.NETWORK: "Network error",
            OutputErrorKind.AUTHENTICATION: "Authentication error",
            OutputErrorKind.CONFIGURATION: "Configuration error",
            OutputErrorKind.UNKNOWN: "Unknown error",
        }[self.kind]
        return f"{label}: {self.message}"

    @classmethod
    def interrupted(cls) -> "OutputError":
        return cls(OutputErrorKind.INTERRUPTED)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "OutputError":
        """Map an exception onto the output error category a consumer sees."""
        if isinstance(exc, ModelApiError):
            if exc.status_code in (401, 403):
                return cls(OutputErrorKind.AUTHENTICATION, str(exc))
            if exc.error_type in ("APIConnectionError", "Timeout", "ConnectionError"):
                return cls(OutputErrorKind.NETWORK, str(exc))
            return cls(OutputErrorKind.MODEL, str(exc))
        if isinstance(exc, ConfigError):
            return cls(OutputErrorKind.CONFIGURATION, str(exc))
        if isinstance(exc, ToolExecutionError):
            return cls(OutputErrorKind.TOOL, str(exc))
        return cls(OutputErrorKind.UNKNOWN, str(exc) or type(exc).__name__)
