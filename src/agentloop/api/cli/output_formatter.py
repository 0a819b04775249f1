"""
Rich console rendering for the command line.

Turns OutputEvents into panels, status lines and tables. The CLI is only a
consumer of the output channel; nothing here feeds back into the runtime
except approval answers.
"""

import json
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from agentloop.core.domain.events import OutputEvent, OutputEventType
from agentloop.core.domain.messages import ToolCall
from agentloop.infrastructure.tools.tool_converter import truncate_for_display

_STATUS_ICONS = {"pending": "[ ]", "in_progress": "[>]", "completed": "[x]"}


class AgentConsole:
    """Console wrapper with agentloop styling."""

    def __init__(self, debug: bool = False, console: Console | None = None):
        self.debug = debug
        self.console = console or Console()
        self._streaming = False

    # ------------------------------------------------------------------
    # Plain messages
    # ------------------------------------------------------------------

    def print_banner(self) -> None:
        self.console.print("[bold blue]agentloop[/bold blue] [dim]agent runtime[/dim]")

    def print_divider(self) -> None:
        self.console.print(Rule(style="dim"))

    def print_system_message(self, message: str, level: str = "info") -> None:
        style = {"info": "cyan", "success": "green", "system": "bold blue"}.get(level, "white")
        self.console.print(f"[{style}]{message}[/{style}]")

    def print_user_message(self, message: str) -> None:
        self.console.print(Panel(message, title="You", title_align="left", border_style="blue"))

    def print_agent_message(self, message: str) -> None:
        self.console.print(
            Panel(Markdown(message), title="Agent", title_align="left", border_style="green")
        )

    def print_success(self, message: str) -> None:
        self.console.print(f"[green]{message}[/green]")

    def print_warning(self, message: str) -> None:
        self.console.print(f"[yellow]{message}[/yellow]")

    def print_error(self, message: str) -> None:
        self.console.print(f"[bold red]{message}[/bold red]")

    def print_debug(self, message: str) -> None:
        if self.debug:
            self.console.print(f"[dim]{message}[/dim]")

    def prompt(self) -> str:
        return Prompt.ask("[bold blue]You[/bold blue]", console=self.console)

    def confirm_tool_call(self, call: ToolCall) -> bool:
        """Ask the user whether a suspended tool call may run."""
        self.console.print(
            Panel(
                json.dumps(call.arguments, indent=2, ensure_ascii=False),
                title=f"Approval required: {call.name}",
                title_align="left",
                border_style="yellow",
            )
        )
        return Confirm.ask("Run this tool?", default=False, console=self.console)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def render(self, event: OutputEvent) -> None:
        """Render one output event. Approval requests are handled by the caller."""
        kind = event.type
        if kind == OutputEventType.PRIMARY_DELTA:
            self._streaming = True
            self.console.print(event.text or "", end="")
            return
        if self._streaming:
            self.console.print()
            self._streaming = False
            if kind == OutputEventType.PRIMARY:
                return

        if kind == OutputEventType.START:
            self.print_debug(f"turn {event.turn_id}")
        elif kind == OutputEventType.PRIMARY:
            self.print_agent_message(event.text or "")
        elif kind == OutputEventType.DETAIL:
            self.console.print(f"[dim]{escape(event.text or '')}[/dim]")
        elif kind == OutputEventType.REASONING:
            self.print_debug(f"thinking: {event.text}")
        elif kind == OutputEventType.TOOL_START and event.call is not None:
            args = truncate_for_display(json.dumps(event.call.arguments, ensure_ascii=False), 120)
            self.console.print(f"[yellow]-> {event.call.name}[/yellow] [dim]{escape(args)}[/dim]")
        elif kind == OutputEventType.TOOL_COMPLETE and event.call is not None and event.result:
            self._render_tool_result(event)
        elif kind == OutputEventType.TODO_UPDATE:
            self.console.print(self.todo_table(event.todos))
        elif kind == OutputEventType.COMPLETED:
            self.print_debug("session completed")
        elif kind == OutputEventType.ERROR:
            self.print_error(str(event.error))

    def _render_tool_result(self, event: OutputEvent) -> None:
        result = event.result
        if result.success:
            summary = truncate_for_display(str(result.output), 160)
            self.console.print(f"[green]<- {event.call.name}[/green] [dim]{escape(summary)}[/dim]")
        else:
            self.console.print(
                f"[red]<- {event.call.name} {result.status.value}[/red] [dim]{escape(result.error or '')}[/dim]"
            )

    @staticmethod
    def todo_table(todos: tuple[dict[str, Any], ...]) -> Table:
        table = Table(title="Plan", show_header=False, box=None)
        table.add_column("Status", style="cyan", no_wrap=True)
        table.add_column("Step", style="white")
        for item in todos:
            icon = _STATUS_ICONS.get(item.get("status", ""), "[?]")
            table.add_row(Text(icon), Text(item.get("step", "")))
        return table
