"""Chat command - Interactive chat mode with the agent."""

import asyncio
import uuid
from typing import Optional

import typer

from agentloop.api.cli.commands.run import consume, resolve_config
from agentloop.api.cli.output_formatter import AgentConsole
from agentloop.application.agent import Agent
from agentloop.core.domain.errors import AgentError
from agentloop.infrastructure.logging import configure_logging
from agentloop.infrastructure.persistence.file_session_store import FileSessionStore

EXIT_COMMANDS = ("exit", "quit", "bye")


def chat(
    ctx: typer.Context,
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model identifier"),
    max_turns: Optional[int] = typer.Option(None, "--max-turns", help="Maximum model calls per session"),
    sandbox: Optional[str] = typer.Option(None, "--sandbox", help="Sandbox policy"),
    approval: Optional[str] = typer.Option(None, "--approval", help="Approval policy"),
    session_id: Optional[str] = typer.Option(None, "--session", "-s", help="Resume an existing session"),
    debug: Optional[bool] = typer.Option(None, "--debug", help="Enable debug output (overrides global --debug)"),
):
    """Start an interactive chat session.

    Every message is appended to the same persisted session, so the
    conversation can be picked up later with --session.

    Examples:
        agentloop chat
        agentloop --profile dev chat --approval on_request
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

    session_id = session_id or uuid.uuid4().hex
    ui.print_banner()
    ui.print_system_message(f"Session: {session_id}  Model: {config.model}", "info")
    ui.print_system_message("Type 'exit', 'quit', or press Ctrl+C to end session", "info")
    ui.print_divider()

    agent = Agent(config, session_store=FileSessionStore())

    async def run_chat_loop() -> None:
        while True:
            try:
                user_input = await asyncio.to_thread(ui.prompt)
            except (KeyboardInterrupt, EOFError):
                break

            if user_input.strip().lower() in EXIT_COMMANDS:
                break
            if not user_input.strip():
                continue

            try:
                await consume(agent, user_input, session_id, ui)
            except AgentError as e:
                ui.print_error(f"Execution failed: {e}")

    try:
        asyncio.run(run_chat_loop())
    except KeyboardInterrupt:
        pass
    ui.print_divider()
    ui.print_system_message(f"Goodbye! Resume with --session {session_id}", "info")
