"""Rich terminal formatting helpers."""

from __future__ import annotations

from datetime import date
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn, TimeRemainingColumn
from rich.table import Table
from rich.text import Text

from chains.ledger import is_next_day
from chains.models import ActivitySummary, DayMarker, TimingState

console = Console()

_STATE_STYLE: dict[TimingState, str] = {
    TimingState.IDLE: "dim",
    TimingState.RUNNING: "bold cyan",
    TimingState.PAUSED: "yellow",
    TimingState.AWAITING_CONFIRMATION: "bold magenta",
}

_STATE_ICON: dict[TimingState, str] = {
    TimingState.IDLE: "[ ]",
    TimingState.RUNNING: "[>]",
    TimingState.PAUSED: "[=]",
    TimingState.AWAITING_CONFIRMATION: "[?]",
}

_DONE = "●"
_NOT_DONE = "○"
_LINK = "─"


def format_time(seconds: int) -> str:
    """Format seconds as MM:SS (minutes may exceed 59)."""
    seconds = max(seconds, 0)
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def short_day_label(day: date, today: Optional[date] = None) -> str:
    """Label a day as Today or by its abbreviated weekday."""
    if day == (today or date.today()):
        return "Today"
    return day.strftime("%a")


def print_activity_list(summaries: list[ActivitySummary], title: str = "Activities") -> None:
    """Print all activities with remaining time and status."""
    if not summaries:
        console.print(Panel("No activities.", title=title, border_style="dim"))
        return

    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column("state", width=3)
    table.add_column("id", width=5)
    table.add_column("name")
    table.add_column("remaining", justify="right")
    table.add_column("status")
    table.add_column("streak", justify="right")

    for summary in summaries:
        activity = summary.activity
        style = "green" if summary.completed_today else _STATE_STYLE[activity.timing_state]
        table.add_row(
            _STATE_ICON[activity.timing_state],
            f"#{activity.id}",
            activity.name,
            format_time(summary.remaining_seconds),
            summary.status_text,
            f"{summary.current_streak}d",
            style=style,
        )

    console.print(Panel(table, title=title, border_style="blue"))


def render_chain(markers: list[DayMarker], today: Optional[date] = None) -> Text:
    """Draw a history as dots, linking adjacent completed days."""
    chain = Text()
    labels = Text()
    previous: Optional[DayMarker] = None
    for marker in markers:
        if previous is not None:
            linked = previous.done and marker.done and is_next_day(previous.day, marker.day)
            chain.append(f" {_LINK if linked else ' '} ", style="green" if linked else "")
            labels.append("   ")
        chain.append(_DONE if marker.done else _NOT_DONE, style="green" if marker.done else "dim")
        labels.append(short_day_label(marker.day, today)[0])
        previous = marker
    return Text("\n").join([chain, labels])


def print_streak(
    name: str,
    streak: int,
    markers: list[DayMarker],
    longest: Optional[int] = None,
    today: Optional[date] = None,
) -> None:
    """Print the streak panel for one activity."""
    lines = Text(f"Current streak: {streak} day{'s' if streak != 1 else ''}\n")
    if longest is not None:
        lines.append(f"Longest streak: {longest} day{'s' if longest != 1 else ''}\n")
    lines.append("\n")
    lines.append_text(render_chain(markers, today))
    console.print(Panel(lines, title=name, border_style="green"))


def print_nudge(message: str) -> None:
    """Print a message in a styled panel."""
    text = Text(message, justify="center")
    console.print(Panel(text, border_style="magenta", padding=(1, 4)))


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]{message}[/green]")


def print_info(message: str) -> None:
    """Print an informational message."""
    console.print(f"[blue]{message}[/blue]")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]{message}[/yellow]")


def create_timer_progress() -> Progress:
    """Create a Rich progress bar for the timer."""
    return Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(bar_width=40),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TimeRemainingColumn(),
        console=console,
    )
