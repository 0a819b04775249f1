"""
Unit Tests for the command line interface

Commands run through typer's CliRunner inside a temporary working
directory; the model provider is patched with ScriptedProvider.
"""

import asyncio
import io
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console
from typer.testing import CliRunner

from conftest import FakeTool, ScriptedProvider, text_response, tool_response

from agentloop import __version__
from agentloop.api.cli.commands.run import consume, resolve_config
from agentloop.api.cli.main import app
from agentloop.api.cli.output_formatter import AgentConsole
from agentloop.application.agent import Agent
from agentloop.core.domain.config import ApprovalPolicy, BuiltinTool
from agentloop.core.domain.events import OutputEvent

runner = CliRunner()


@pytest.fixture(autouse=True)
def workspace(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    return tmp_path


def patched_provider(*responses):
    return patch(
        "agentloop.application.agent.create_llm_provider",
        return_value=ScriptedProvider(list(responses)),
    )


class TestCommands:
    """Tests for the typer commands."""

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_tools_list(self):
        result = runner.invoke(app, ["tools", "list"])

        assert result.exit_code == 0
        assert "bash" in result.output
        assert "update_plan" in result.output

    def test_tools_inspect(self):
        result = runner.invoke(app, ["tools", "inspect", "file_read"])

        assert result.exit_code == 0
        assert '"path"' in result.output

    def test_tools_inspect_unknown(self):
        result = runner.invoke(app, ["tools", "inspect", "nope"])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_run_prints_answer(self):
        with patched_provider(text_response("All done")):
            result = runner.invoke(app, ["run", "do it"])

        assert result.exit_code == 0
        assert "All done" in result.output

    def test_run_invalid_option_exits_2(self):
        result = runner.invoke(app, ["run", "do it", "--max-turns", "0"])

        assert result.exit_code == 2
        assert "max_turns" in result.output

    def test_run_model_error_exits_1(self):
        from agentloop.core.domain.errors import ModelApiError

        with patched_provider(ModelApiError("quota exceeded")):
            result = runner.invoke(app, ["run", "do it"])

        assert result.exit_code == 1
        assert "quota exceeded" in result.output

    def test_missing_profile_exits_2(self):
        result = runner.invoke(app, ["--profile", "ghost", "run", "do it"])

        assert result.exit_code == 2
        assert "Profile not found" in result.output

    def test_run_session_is_saved(self, workspace):
        with patched_provider(text_response("saved")):
            result = runner.invoke(app, ["run", "remember this", "--session", "cli-1"])

        assert result.exit_code == 0
        assert (workspace / ".agentloop" / "sessions" / "cli-1.json").exists()

    def test_chat_until_exit(self):
        with patched_provider(text_response("Hi there")):
            result = runner.invoke(app, ["chat", "--session", "c1"], input="hello\nexit\n")

        assert result.exit_code == 0
        assert "Hi there" in result.output
        assert "Goodbye" in result.output


class TestConsume:
    """Tests for the shared event loop of run and chat."""

    def test_resolve_config_defaults_to_builtin_tools(self):
        config = resolve_config(None, max_turns=3, model=None)

        assert config.max_turns == 3
        assert [t.tool for t in config.tools] == list(BuiltinTool)

    @pytest.mark.asyncio
    async def test_denied_approval_is_reported_to_the_model(self, workspace):
        """Answering an approval request with no denies the call."""
        tool = FakeTool("echo")
        provider = ScriptedProvider([tool_response(("c1", "echo", {})), text_response("ok")])
        agent = Agent(
            resolve_config(None, approval_policy=ApprovalPolicy.ALWAYS).evolve(tools=()),
            llm_provider=provider,
            tools=[tool],
        )
        ui = AgentConsole(console=Console(file=io.StringIO()))
        ui.confirm_tool_call = MagicMock(return_value=False)

        completed = await asyncio.wait_for(consume(agent, "go", None, ui), timeout=5)

        assert completed is True
        assert tool.invocations == []
        ui.confirm_tool_call.assert_called_once()
        assert "Rejected by user" in provider.calls[1]["messages"][-1]["content"]

    def test_render_todo_update(self):
        buffer = io.StringIO()
        ui = AgentConsole(console=Console(file=buffer, width=80))

        ui.render(OutputEvent.todo_update([{"step": "Write tests", "status": "completed"}]))

        output = buffer.getvalue()
        assert "[x]" in output
        assert "Write tests" in output
