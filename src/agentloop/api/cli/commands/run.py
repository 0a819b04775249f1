"""Run command - Execute a single prompt."""

import asyncio
from contextlib import aclosing
from typing import Any, Optional

import typer

from agentloop.api.cli.output_formatter import AgentConsole
from agentloop.application.agent import Agent
from agentloop.core.domain.config import AgentConfig, builtin_tools, create_config, load_config
from agentloop.core.domain.errors import AgentError
from agentloop.core.domain.events import OutputEventType
from agentloop.infrastructure.logging import configure_logging
from agentloop.infrastructure.persistence.file_session_store import FileSessionStore


def resolve_config(profile: str | None, **overrides: Any) -> AgentConfig:
    """
    Configuration for a CLI invocation.

    Without a profile all built-in tools are enabled with default settings;
    command line options override profile values.
    """
    if profile:
        return load_config(profile, **overrides)
    values = {k: v for k, v in overrides.items() if v is not None}
    values.setdefault("tools", builtin_tools())
    return create_config(**values)


async def consume(agent: Agent, prompt: str, session_id: str | None, ui: AgentConsole) -> bool:
    """
    Stream one prompt through the agent, rendering every event.

    Approval requests are answered interactively on the console.

    Returns:
        True if the session ended with Completed
    """
    completed = False
    async with aclosing(agent.stream(prompt, session=session_id)) as events:
        async for event in events:
            if event.type == OutputEventType.APPROVAL_REQUEST and event.call is not None:
                approved = await asyncio.to_thread(ui.confirm_tool_call, event.call)
                if approved:
                    agent.controller.approve(event.token)
                else:
                    agent.controller.deny(event.token, "Rejected by user")
                continue
            ui.render(event)
            completed = event.type == OutputEventType.COMPLETED
    return completed


def run(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="Prompt for the agent"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model identifier"),
    max_turns: Optional[int] = typer.Option(None, "--max-turns", help="Maximum model calls"),
    sandbox: Optional[str] = typer.Option(
        None, "--sandbox", help="Sandbox policy (read_only, workspace_write, danger_full_access)"
    ),
    approval: Optional[str] = typer.Option(
        None, "--approval", help="Approval policy (never, on_request, unless_trusted, always)"
    ),
    session_id: Optional[str] = typer.Option(None, "--session", "-s", help="Resume or create a named session"),
    debug: Optional[bool] = typer.Option(None, "--debug", help="Enable debug output (overrides global --debug)"),
):
    """Execute a single prompt and stream the result.

    Examples:
        # One-shot prompt with all builtin tools
        agentloop run "List the python files in this directory"

        # Read-only sandbox with a turn limit
        agentloop run "Summarise README.md" --sandbox read_only --max-turns 5

        # Continue a saved session
        agentloop run "And now the tests" --session my-session
    """
    global_opts = ctx.obj or {}
    profile = global_opts.get("profile")
    debug = debug if debug is not None else global_opts.get("debug", False)
    configure_logging(debug)

    ui = AgentConsole(debug=debug)
    try:
        config = resolve_config(
            profile,
            model=model,
            max_turns=max_turns,
            sandbox_policy=sandbox,
            approval_policy=approval,
        )
    except AgentError as e:
        ui.print_error(str(e))
        raise typer.Exit(2)

    ui.print_banner()
    ui.print_system_message(f"Model: {config.model}", "info")
    if session_id:
        ui.print_system_message(f"Session: {session_id}", "info")
    ui.print_divider()

    store = FileSessionStore() if session_id else None
    agent = Agent(config, session_store=store)
    try:
        completed = asyncio.run(consume(agent, prompt, session_id, ui))
    except AgentError as e:
        ui.print_error(str(e))
        raise typer.Exit(1)
    except KeyboardInterrupt:
        ui.print_warning("Interrupted")
        raise typer.Exit(130)

    if not completed:
        raise typer.Exit(1)
