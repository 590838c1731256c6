# display.py
# All terminal output for the plan agent CLI.
#
# This module owns presentation entirely. The session and executor never
# format strings for the terminal; run.py calls named functions here.
#
# Colour language:
#   cyan    session / routing events
#   yellow  skipped steps and warnings
#   green   success / confirmed
#   red     failures, halts

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from plan_agent.models import ExecutionReport, Plan, StepStatus

console = Console()

_STATUS_STYLE = {
    StepStatus.SUCCEEDED: "[bold green]✓[/bold green]",
    StepStatus.FAILED: "[bold red]✗[/bold red]",
    StepStatus.SKIPPED: "[bold yellow]–[/bold yellow]",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        value = value[:max_len] + "…"
    return escape(value)


def log_handler() -> RichHandler:
    """Logging handler that shares the display console."""
    return RichHandler(console=console, show_path=False, rich_tracebacks=True)


# ---------------------------------------------------------------------------
# Session entry
# ---------------------------------------------------------------------------


def banner(model: str, project_root: str) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Plan Agent[/bold cyan]\n"
            "[dim]Natural-language requests → validated plans → tool execution[/dim]\n\n"
            f"[dim]Model   :[/dim] [white]{model}[/white]\n"
            f"[dim]Project :[/dim] [white]{project_root}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def prompt_received(prompt: str) -> None:
    console.print()
    console.print(Rule("[cyan]NEW REQUEST[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{escape(prompt)}[/white]",
            title=_label("USER PROMPT", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Plan and execution
# ---------------------------------------------------------------------------


def plan_parsed(plan: Plan) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="cyan",
        show_header=True,
        header_style="bold cyan",
        padding=(0, 1),
    )
    table.add_column("ID", justify="center", width=4)
    table.add_column("Type", style="bold white", width=10)
    table.add_column("Target", style="dim white", width=28)
    table.add_column("Description", style="white")

    for index, step in enumerate(plan.steps, 1):
        table.add_row(
            str(step.id if step.id is not None else index),
            escape(step.type),
            _mono(step.target, 26),
            escape(step.description),
        )

    console.print(
        Panel(
            table,
            title=_label("PLAN", "cyan"),
            subtitle=f"[dim]Goal: {escape(plan.goal)}[/dim]",
            border_style="cyan",
            padding=(0, 1),
        )
    )


def execution_summary(report: ExecutionReport) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("Step", justify="center", width=6)
    table.add_column("Tool", width=22)
    table.add_column("Status", justify="center", width=8)
    table.add_column("Detail", style="dim white")

    for outcome in report.outcomes:
        table.add_row(
            str(outcome.index + 1),
            outcome.tool or outcome.type or "?",
            _STATUS_STYLE[outcome.status],
            _mono(outcome.error or outcome.description, 60),
        )

    console.print(
        Panel(
            table,
            title="[dim]EXECUTION SUMMARY[/dim]",
            subtitle=(
                f"[dim]{report.succeeded} succeeded · {report.failed} failed · "
                f"{report.skipped} skipped[/dim]"
            ),
            border_style="dim",
            padding=(0, 1),
        )
    )


# ---------------------------------------------------------------------------
# Final result
# ---------------------------------------------------------------------------


def final_result(result: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]{escape(result)}[/white]",
            title=_label("RESULT", "green"),
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()


def ui_message(message: str, level: str = "info") -> None:
    color = {"info": "cyan", "warning": "yellow", "error": "red"}.get(level, "cyan")
    console.print(_label(level.upper(), color), f"[{color}]{escape(message)}[/{color}]")


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()
