"""agentloop CLI entry point."""

from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console

from agentloop.api.cli.commands import chat, run, tools

app = typer.Typer(
    name="agentloop",
    help="agentloop - embeddable agent execution runtime",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

# Register commands
app.command("run", help="Execute a single prompt")(run.run)
app.command("chat", help="Interactive chat mode")(chat.chat)
app.add_typer(tools.app, name="tools", help="Tool management")


@app.callback()
def main(
    ctx: typer.Context,
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Configuration profile (configs/<profile>.yaml)"
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output"),
):
    """agentloop Agent CLI."""
    load_dotenv()
    # Store global options in context for subcommands
    ctx.obj = {"profile": profile, "debug": debug}


@app.command()
def version():
    """Show agentloop version."""
    from agentloop import __version__

    console.print(f"[bold blue]agentloop[/bold blue] version [cyan]{__version__}[/cyan]")


if __name__ == "__main__":
    app()
