"""Unit tests for configuration building and profile loading."""

import pytest
import yaml

from agentloop.core.domain.config import (
    AgentConfig,
    ApprovalPolicy,
    BuiltinTool,
    BuiltinToolConfig,
    CustomToolConfig,
    RetryPolicy,
    SandboxPolicy,
    builtin_tools,
    create_config,
    load_config,
)
from agentloop.core.domain.errors import ConfigError


class TestCreateConfig:
    """Validation performed by create_config()."""

    def test_defaults(self, tmp_path):
        """Unset values fall back to the documented defaults."""
        config = create_config(working_directory=tmp_path)

        assert config.max_turns == 100
        assert config.sandbox_policy == SandboxPolicy.WORKSPACE_WRITE
        assert config.approval_policy == ApprovalPolicy.NEVER
        assert config.working_directory == tmp_path.resolve()

    def test_string_values_are_coerced(self, tmp_path):
        """Enum fields and builtin tool names accept strings."""
        config = create_config(
            working_directory=str(tmp_path),
            sandbox_policy="READ_ONLY",
            approval_policy="on_request",
            tools=["bash", {"tool": "web_search", "allow_network": True}],
        )

        assert config.sandbox_policy == SandboxPolicy.READ_ONLY
        assert config.approval_policy == ApprovalPolicy.ON_REQUEST
        assert config.tools == (
            BuiltinToolConfig(BuiltinTool.BASH),
            BuiltinToolConfig(BuiltinTool.WEB_SEARCH, allow_network=True),
        )

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"max_turns": 0}, "max_turns"),
            ({"max_parallel_tools": -1}, "max_parallel_tools"),
            ({"tool_timeout": 0}, "tool_timeout"),
            ({"approval_timeout": 0}, "approval_timeout"),
            ({"sandbox_policy": "sometimes"}, "sandbox_policy"),
            ({"tools": ["bash", "bash"]}, "listed twice"),
            ({"tools": ["telnet"]}, "builtin tool"),
            ({"model": ""}, "model"),
            ({"colour": "blue"}, "Unknown configuration keys"),
            ({"retry_policy": {"max_attempts": 0}}, "max_attempts"),
            ({"retry_policy": {"max_retries": 2}}, "Unknown retry_policy keys"),
            ({"retry_policy": {"initial_backoff": "soon"}}, "must be numbers"),
            ({"tool_timeout": "fast"}, "tool_timeout"),
            ({"cancel_grace_period": None}, "cancel_grace_period"),
            ({"approval_timeout": "1m"}, "approval_timeout"),
            ({"max_turns": True}, "max_turns"),
        ],
    )
    def test_invalid_values(self, tmp_path, overrides, message):
        """Invalid values raise ConfigError naming the offending key."""
        with pytest.raises(ConfigError, match=message):
            create_config(working_directory=tmp_path, **overrides)

    def test_missing_working_directory(self, tmp_path):
        with pytest.raises(ConfigError, match="working_directory"):
            create_config(working_directory=tmp_path / "missing")

    def test_mcp_server_validation(self, tmp_path):
        """MCP servers need a name and a command, and names are unique."""
        with pytest.raises(ConfigError, match="command"):
            create_config(working_directory=tmp_path, mcp_servers=[{"name": "docs"}])
        with pytest.raises(ConfigError, match="Duplicate MCP server"):
            create_config(
                working_directory=tmp_path,
                mcp_servers=[{"name": "docs", "command": "a"}, {"name": "docs", "command": "b"}],
            )
        with pytest.raises(ConfigError, match="Invalid MCP server name"):
            create_config(working_directory=tmp_path, mcp_servers=[{"name": "a__b", "command": "a"}])

    def test_custom_tool_needs_callable_handler(self, tmp_path):
        tool = CustomToolConfig(name="broken", description="", parameters={}, handler=None)
        with pytest.raises(ConfigError, match="callable"):
            create_config(working_directory=tmp_path, tools=[tool])

    def test_evolve_returns_validated_copy(self, tmp_path):
        """evolve() never mutates and re-validates the result."""
        config = create_config(working_directory=tmp_path)
        changed = config.evolve(max_turns=5)

        assert changed.max_turns == 5
        assert config.max_turns == 100
        with pytest.raises(ConfigError):
            config.evolve(max_turns=0)

    def test_full_system_prompt_prepends_base_instructions(self, tmp_path):
        config = create_config(working_directory=tmp_path, system_prompt="Be brief.", base_instructions="Base.")
        assert config.full_system_prompt == "Base.\n\nBe brief."

    def test_builtin_tools_shorthand(self):
        assert [t.tool for t in builtin_tools()] == list(BuiltinTool)
        assert builtin_tools(["file_read"]) == (BuiltinToolConfig(BuiltinTool.FILE_READ),)


class TestRetryPolicy:
    def test_exponential_backoff(self):
        policy = RetryPolicy(max_attempts=3, backoff_multiplier=2.0, initial_backoff=0.5)
        assert [policy.delay_for(i) for i in range(3)] == [0.5, 1.0, 2.0]


class TestLoadConfig:
    """Loading YAML profiles."""

    def write_profile(self, directory, name, data):
        path = directory / f"{name}.yaml"
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return path

    def test_profile_by_name(self, tmp_path, monkeypatch):
        """Profiles are resolved in config_dir and merge the agent section."""
        monkeypatch.setenv("TEST_AGENT_KEY", "sk-test")
        self.write_profile(
            tmp_path,
            "dev",
            {
                "agent": {"model": "gpt-4o", "api_key_env": "TEST_AGENT_KEY", "max_turns": 7},
                "working_directory": str(tmp_path),
                "tools": ["file_read"],
            },
        )

        config = load_config("dev", config_dir=tmp_path)

        assert isinstance(config, AgentConfig)
        assert config.model == "gpt-4o"
        assert config.api_key == "sk-test"
        assert config.max_turns == 7
        assert config.tools == builtin_tools(["file_read"])

    def test_overrides_win_and_none_is_ignored(self, tmp_path):
        path = self.write_profile(tmp_path, "p", {"max_turns": 7, "working_directory": str(tmp_path)})

        config = load_config(path, max_turns=2, model=None)

        assert config.max_turns == 2
        assert config.model == "gpt-5-mini"

    def test_missing_profile(self, tmp_path):
        with pytest.raises(ConfigError, match="Profile not found"):
            load_config("nope", config_dir=tmp_path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("agent: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_non_mapping_profile(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_profile_typos_raise_config_error(self, tmp_path):
        """Misspelled or mistyped YAML values never escape as TypeError."""
        self.write_profile(
            tmp_path,
            "typo",
            {
                "working_directory": str(tmp_path),
                "agent": {"tool_timeout": "fast", "retry_policy": {"max_retries": 2}},
            },
        )

        with pytest.raises(ConfigError):
            load_config("typo", config_dir=tmp_path)
