"""Tools command - List and inspect available tools."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from agentloop.api.cli.commands.run import resolve_config
from agentloop.application.factory import build_registry
from agentloop.core.domain.config import AgentConfig
from agentloop.core.domain.errors import AgentError
from agentloop.core.registry import ToolRegistry

app = typer.Typer(help="Tool management")
console = Console()


async def _load_registry(config: AgentConfig) -> ToolRegistry:
    registry, clients = await build_registry(config)
    for client in clients:
        await client.close()
    return registry


def _registry_for(ctx: typer.Context) -> ToolRegistry:
    profile = (ctx.obj or {}).get("profile")
    try:
        return asyncio.run(_load_registry(resolve_config(profile)))
    except AgentError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(2)


@app.command("list")
def list_tools(ctx: typer.Context):
    """List available tools."""
    registry = _registry_for(ctx)

    table = Table(title="Available Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Kind", style="green")
    table.add_column("Side effect", style="yellow")
    table.add_column("Approval", style="magenta")
    table.add_column("Description", style="white")

    for tool in registry:
        description = tool.description
        if len(description) > 60:
            description = description[:57] + "..."
        table.add_row(
            tool.name,
            tool.kind.value,
            tool.side_effect.value,
            "yes" if tool.requires_approval else "",
            description,
        )

    console.print(table)


@app.command("inspect")
def inspect_tool(ctx: typer.Context, tool_name: str = typer.Argument(..., help="Tool name to inspect")):
    """Inspect tool details and parameters."""
    registry = _registry_for(ctx)
    tool = registry.get(tool_name)

    if not tool:
        console.print(f"[red]Tool '{tool_name}' not found[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold cyan]{tool.name}[/bold cyan] [dim]({tool.kind.value}, {tool.side_effect.value})[/dim]")
    console.print(f"{tool.description}\n")

    console.print("[bold]Parameters:[/bold]")
    console.print_json(data=tool.parameters_schema)
