"""
Agent Configuration

Immutable configuration snapshot shared read-only by every component of a
session. Values are built and validated by create_config() / load_config();
AgentConfig.evolve() returns a new validated snapshot instead of mutating.
"""

import dataclasses
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from agentloop.core.domain.errors import ConfigError


class SandboxPolicy(str, Enum):
    """Where a tool may act."""

    DANGER_FULL_ACCESS = "danger_full_access"
    READ_ONLY = "read_only"
    WORKSPACE_WRITE = "workspace_write"


class ApprovalPolicy(str, Enum):
    """Whether external confirmation is needed before a tool runs."""

    NEVER = "never"
    ON_REQUEST = "on_request"
    UNLESS_TRUSTED = "unless_trusted"
    ALWAYS = "always"


class SideEffect(str, Enum):
    """What a tool does to the outside world."""

    NONE = "none"
    READ = "read"
    WRITE = "write"
    EXECUTE = "execute"
    NETWORK = "network"


class BuiltinTool(str, Enum):
    """Names of the tools shipped with agentloop."""

    BASH = "bash"
    WEB_SEARCH = "web_search"
    FILE_READ = "file_read"
    FILE_WRITE = "file_write"
    UPDATE_PLAN = "update_plan"


@dataclass(frozen=True)
class BuiltinToolConfig:
    """Enable one built-in tool."""

    tool: BuiltinTool
    allow_network: bool = False


@dataclass(frozen=True)
class CustomToolConfig:
    """
    Externally supplied tool.

    Attributes:
        name: Unique tool name
        description: Description shown to the model
        parameters: JSON schema of the argument object
        handler: Callable receiving the validated arguments as keyword
            arguments; may be sync or async and returns any JSON-able value
        requires_approval: Ask for approval under the ON_REQUEST policy
        side_effect: Side effect category used by the sandbox check
    """

    name: str
    description: str
    parameters: dict[str, Any]
    handler: Callable[..., Any]
    requires_approval: bool = False
    side_effect: SideEffect = SideEffect.NONE


@dataclass(frozen=True)
class McpServerConfig:
    """Stdio MCP server launched during session setup."""

    name: str
    command: str
    args: tuple[str, ...] = ()
    env: dict[str, str] | None = None


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff for transient model API failures."""

    max_attempts: int = 3
    backoff_multiplier: float = 2.0
    initial_backoff: float = 1.0

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt`` (0-based)."""
        return self.initial_backoff * (self.backoff_multiplier**attempt)


ToolConfig = BuiltinToolConfig | CustomToolConfig


DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful coding agent. Use the available tools when they help "
    "you answer, and reply with a concise final answer when you are done."
)


@dataclass(frozen=True)
class AgentConfig:
    """Configuration snapshot for one agent. Never mutated after construction."""

    model: str = "gpt-5-mini"
    provider: str = "openai"
    api_key: str | None = field(default=None, repr=False)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    base_instructions: str | None = None
    tools: tuple[ToolConfig, ...] = ()
    mcp_servers: tuple[McpServerConfig, ...] = ()
    max_turns: int = 100
    working_directory: Path = field(default_factory=Path.cwd)
    enable_reasoning: bool = False
    sandbox_policy: SandboxPolicy = SandboxPolicy.WORKSPACE_WRITE
    approval_policy: ApprovalPolicy = ApprovalPolicy.NEVER
    max_parallel_tools: int = 4
    tool_timeout: float = 120.0
    cancel_grace_period: float = 5.0
    approval_timeout: float | None = None
    output_buffer: int = 100
    input_buffer: int = 100
    stream_deltas: bool = False
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    @property
    def full_system_prompt(self) -> str:
        if self.base_instructions:
            return f"{self.base_instructions}\n\n{self.system_prompt}"
        return self.system_prompt

    def evolve(self, **changes: Any) -> "AgentConfig":
        """Return a validated copy with ``changes`` applied."""
        values = {f.name: getattr(self, f.name) for f in dataclasses.fields(self)}
        unknown = set(changes) - set(values)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {sorted(unknown)}")
        values.update(changes)
        return create_config(**values)


_FIELD_NAMES = {f.name for f in dataclasses.fields(AgentConfig)}


def _coerce_enum(enum_cls: type[Enum], value: Any, key: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"Invalid {key} '{value}'. Expected one of: {allowed}") from None


def _coerce_tool(entry: Any) -> ToolConfig:
    if isinstance(entry, (BuiltinToolConfig, CustomToolConfig)):
        if isinstance(entry, CustomToolConfig):
            _validate_custom_tool(entry)
        return entry
    if isinstance(entry, BuiltinTool):
        return BuiltinToolConfig(tool=entry)
    if isinstance(entry, str):
        return BuiltinToolConfig(tool=_coerce_enum(BuiltinTool, entry, "builtin tool"))
    if isinstance(entry, dict):
        if "tool" in entry:
            return BuiltinToolConfig(
                tool=_coerce_enum(BuiltinTool, entry["tool"], "builtin tool"),
                allow_network=bool(entry.get("allow_network", False)),
            )
        raise ConfigError(f"Tool entry needs a 'tool' key: {entry}")
    raise ConfigError(f"Unsupported tool configuration: {entry!r}")


def _validate_custom_tool(tool: CustomToolConfig) -> None:
    if not tool.name or not tool.name.strip():
        raise ConfigError("Custom tool name must not be empty")
    if not callable(tool.handler):
        raise ConfigError(f"Custom tool '{tool.name}' has no callable handler")
    if not isinstance(tool.parameters, dict):
        raise ConfigError(f"Custom tool '{tool.name}' parameters must be a JSON schema object")


def _coerce_mcp_server(entry: Any) -> McpServerConfig:
    if isinstance(entry, McpServerConfig):
        server = entry
    elif isinstance(entry, dict):
        try:
            server = McpServerConfig(
                name=entry["name"],
                command=entry["command"],
                args=tuple(entry.get("args", ())),
                env=entry.get("env"),
            )
        except KeyError as e:
            raise ConfigError(f"MCP server entry is missing {e.args[0]!r}: {entry}") from None
    else:
        raise ConfigError(f"Unsupported MCP server configuration: {entry!r}")
    if not server.name or "__" in server.name:
        raise ConfigError(f"Invalid MCP server name '{server.name}'")
    return server


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce_retry_policy(value: Any) -> RetryPolicy:
    if isinstance(value, RetryPolicy):
        policy = value
    elif isinstance(value, dict):
        unknown = set(value) - {f.name for f in dataclasses.fields(RetryPolicy)}
        if unknown:
            raise ConfigError(f"Unknown retry_policy keys: {sorted(unknown)}")
        policy = RetryPolicy(**value)
    else:
        raise ConfigError(f"Unsupported retry policy: {value!r}")
    if not isinstance(policy.max_attempts, int) or isinstance(policy.max_attempts, bool):
        raise ConfigError(f"retry_policy.max_attempts must be an integer, got {policy.max_attempts!r}")
    if not (_is_number(policy.initial_backoff) and _is_number(policy.backoff_multiplier)):
        raise ConfigError("retry_policy backoff values must be numbers")
    if policy.max_attempts < 1:
        raise ConfigError("retry_policy.max_attempts must be at least 1")
    if policy.initial_backoff < 0 or policy.backoff_multiplier < 1:
        raise ConfigError("retry_policy backoff values are out of range")
    return policy


def create_config(**kwargs: Any) -> AgentConfig:
    """
    Build and validate an AgentConfig.

    Enum fields accept their string values, tool entries accept builtin
    names, and working_directory accepts any path-like value.

    Raises:
        ConfigError: On unknown keys or invalid / contradictory values
    """
    unknown = set(kwargs) - _FIELD_NAMES
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {sorted(unknown)}")

    values = dict(kwargs)
    if "sandbox_policy" in values:
        values["sandbox_policy"] = _coerce_enum(SandboxPolicy, values["sandbox_policy"], "sandbox_policy")
    if "approval_policy" in values:
        values["approval_policy"] = _coerce_enum(
            ApprovalPolicy, values["approval_policy"], "approval_policy"
        )
    if "tools" in values:
        values["tools"] = tuple(_coerce_tool(t) for t in values["tools"] or ())
    if "mcp_servers" in values:
        values["mcp_servers"] = tuple(_coerce_mcp_server(s) for s in values["mcp_servers"] or ())
    if "retry_policy" in values:
        values["retry_policy"] = _coerce_retry_policy(values["retry_policy"])
    if values.get("working_directory") is not None:
        values["working_directory"] = Path(values["working_directory"]).expanduser().resolve()
    else:
        values.pop("working_directory", None)

    config = AgentConfig(**values)
    _validate(config)
    return config


def _validate(config: AgentConfig) -> None:
    if not config.model:
        raise ConfigError("model must not be empty")
    for name in ("max_turns", "max_parallel_tools", "output_buffer", "input_buffer"):
        value = getattr(config, name)
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise ConfigError(f"{name} must be a positive integer, got {value!r}")
    for name in ("tool_timeout", "cancel_grace_period"):
        value = getattr(config, name)
        if not _is_number(value) or value <= 0:
            raise ConfigError(f"{name} must be a positive number, got {value!r}")
    if config.approval_timeout is not None and (
        not _is_number(config.approval_timeout) or config.approval_timeout <= 0
    ):
        raise ConfigError(
            f"approval_timeout must be a positive number when set, got {config.approval_timeout!r}"
        )
    if not config.working_directory.is_dir():
        raise ConfigError(f"working_directory does not exist: {config.working_directory}")

    seen_servers: set[str] = set()
    for server in config.mcp_servers:
        if server.name in seen_servers:
            raise ConfigError(f"Duplicate MCP server name '{server.name}'")
        seen_servers.add(server.name)

    seen_builtins: set[BuiltinTool] = set()
    for tool in config.tools:
        if isinstance(tool, BuiltinToolConfig):
            if tool.tool in seen_builtins:
                raise ConfigError(f"Builtin tool '{tool.tool.value}' is listed twice")
            seen_builtins.add(tool.tool)


def _resolve_profile_path(path_or_profile: str | Path, config_dir: Path | None) -> Path:
    candidate = Path(path_or_profile)
    if candidate.suffix in (".yaml", ".yml"):
        return candidate
    base = config_dir or Path(os.getenv("AGENTLOOP_CONFIG_DIR", "configs"))
    return base / f"{path_or_profile}.yaml"


def load_config(
    path_or_profile: str | Path, config_dir: Path | None = None, **overrides: Any
) -> AgentConfig:
    """
    Load a configuration profile from YAML.

    Args:
        path_or_profile: A YAML file path or a profile name resolved as
            ``<config_dir>/<profile>.yaml``
        config_dir: Directory holding profiles (defaults to
            $AGENTLOOP_CONFIG_DIR or ./configs)
        **overrides: Values that take precedence over the file (None values
            are ignored)

    Returns:
        Validated AgentConfig

    Raises:
        ConfigError: If the file is missing, unparsable or invalid
    """
    path = _resolve_profile_path(path_or_profile, config_dir)
    if not path.exists():
        raise ConfigError(f"Profile not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Profile {path} must contain a mapping")

    agent_section = data.pop("agent", {}) or {}
    values: dict[str, Any] = {**data, **agent_section}
    if "api_key_env" in values:
        values["api_key"] = os.getenv(values.pop("api_key_env"))
    values.update({k: v for k, v in overrides.items() if v is not None})
    return create_config(**values)


def builtin_tools(names: Iterable[str | BuiltinTool] = tuple(BuiltinTool)) -> tuple[BuiltinToolConfig, ...]:
    """Shorthand for enabling several built-in tools."""
    return tuple(_coerce_tool(name) for name in names)
