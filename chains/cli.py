"""Timer Chains CLI -- run short activity timers and keep the chain going."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from pydantic import ValidationError
from rich.logging import RichHandler

from chains import config as cfg
from chains import db, display, ledger
from chains.engine import Engine
from chains.errors import ChainsError, ConflictError, InvalidStateError, NotFoundError
from chains.models import Activity, ActivityCreate, TimingState, utc_now
from chains.reminders import DatabaseReminders

app = typer.Typer(
    name="chains",
    help="Run short activity timers and keep a daily chain going.",
    no_args_is_help=True,
)

_DEFAULT_MINUTES = 15

_clock = utc_now


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Timer Chains."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=display.console, show_path=False)],
        force=True,
    )


def _describe(exc: ChainsError) -> str:
    if isinstance(exc, ConflictError):
        return (
            f"Activity #{exc.active_id} already has a timer going. "
            "Finish, pause or cancel it first."
        )
    if isinstance(exc, NotFoundError):
        return f"No activity #{exc.activity_id}."
    if isinstance(exc, InvalidStateError):
        return f"Cannot {exc.operation} right now: the timer is {exc.state.value.replace('_', ' ')}."
    return str(exc)


@contextmanager
def _session() -> Iterator[Engine]:
    """Open the database, yield an engine, and turn engine errors into exit 1."""
    conn = db.get_connection()
    try:
        yield Engine(conn, reminders=DatabaseReminders(conn), clock=_clock)
    except ChainsError as exc:
        display.print_warning(_describe(exc))
        raise typer.Exit(1)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Activities
# ---------------------------------------------------------------------------


@app.command()
def add(
    name: str = typer.Argument(..., help="What do you want to do every day?"),
    minutes: Optional[int] = typer.Option(None, "--minutes", "-m", help="Timer minutes"),
    seconds: Optional[int] = typer.Option(None, "--seconds", "-s", help="Extra timer seconds"),
) -> None:
    """Add a new activity."""
    if minutes is None and seconds is None:
        minutes = _DEFAULT_MINUTES
    total = (minutes or 0) * 60 + (seconds or 0)
    try:
        activity_in = ActivityCreate(name=name.strip(), target_duration_seconds=total)
    except ValidationError:
        display.print_warning("An activity needs a name and a duration above zero.")
        raise typer.Exit(1)
    with _session() as engine:
        activity = engine.add_activity(activity_in)
        display.print_success(
            f"Added activity #{activity.id}: {activity.name} "
            f"({display.format_time(activity.target_duration_seconds)})"
        )


@app.command(name="list")
def list_cmd() -> None:
    """List activities with their timers and streaks."""
    with _session() as engine:
        engine.settle()
        display.print_activity_list(engine.summaries())


@app.command()
def delete(
    activity_id: int = typer.Argument(..., help="ID of the activity"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation"),
) -> None:
    """Delete an activity (its completion history is kept)."""
    with _session() as engine:
        activity = engine.get_activity(activity_id)
        if not yes and not typer.confirm(f'Delete "{activity.name}"?', default=False):
            display.print_info("Kept.")
            return
        engine.delete_activity(activity_id)
        display.print_success(f"Deleted #{activity_id}: {activity.name}")


# ---------------------------------------------------------------------------
# Timer
# ---------------------------------------------------------------------------


def _ask_confirmation(engine: Engine, activity: Activity) -> None:
    """Ask whether the finished activity was done and record the answer."""
    done = typer.confirm(f'Timer finished. Did you complete "{activity.name}"?', default=True)
    _apply_confirmation(engine, activity, done)


def _apply_confirmation(engine: Engine, activity: Activity, done: bool) -> None:
    engine.confirm(activity.id, done)
    if done:
        streak = engine.current_streak(activity.id)
        display.print_success(
            f"Completed {activity.name}. Streak: {streak} day{'s' if streak != 1 else ''}."
        )
    else:
        display.print_info("Not counted. The timer has been reset.")


def _run_countdown(engine: Engine, activity: Activity) -> bool:
    """Drive ticks once a second until the timer finishes.

    Returns True when the activity is awaiting confirmation, False if the
    user stopped watching or the timer was changed elsewhere.
    """
    total = activity.target_duration_seconds
    progress = display.create_timer_progress()
    try:
        with progress:
            task = progress.add_task(activity.name, total=total)
            while True:
                left = engine.remaining(activity.id)
                progress.update(task, completed=total - left)
                current = engine.tick(activity.id)
                if current.timing_state == TimingState.AWAITING_CONFIRMATION:
                    progress.update(task, completed=total)
                    break
                time.sleep(1)
    except KeyboardInterrupt:
        display.console.print(
            "\n[yellow]Stopped watching. The timer keeps running.[/yellow]"
        )
        return False
    except InvalidStateError:
        display.print_warning("The timer was paused or cancelled elsewhere.")
        return False

    # Bell notification
    display.console.print("\a", end="")
    return True


@app.command()
def start(
    activity_id: int = typer.Argument(..., help="ID of the activity"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation"),
    watch_timer: bool = typer.Option(False, "--watch", "-w", help="Follow the countdown"),
) -> None:
    """Start (or continue) an activity's timer."""
    with _session() as engine:
        engine.settle()
        activity = engine.get_activity(activity_id)
        left = display.format_time(engine.remaining(activity_id))
        if not yes and not typer.confirm(
            f'Start timer with {left} remaining for "{activity.name}" now?', default=True
        ):
            return
        activity = engine.start(activity_id)
        display.print_success(f"Started {activity.name}: {left} to go.")
        if watch_timer and _run_countdown(engine, activity):
            _ask_confirmation(engine, activity)


@app.command()
def pause(activity_id: int = typer.Argument(..., help="ID of the activity")) -> None:
    """Pause a running timer, keeping the time left."""
    with _session() as engine:
        activity = engine.pause(activity_id)
        left = display.format_time(engine.remaining(activity_id))
        display.print_info(f"Paused {activity.name} with {left} left.")


@app.command()
def resume(
    activity_id: int = typer.Argument(..., help="ID of the activity"),
    watch_timer: bool = typer.Option(False, "--watch", "-w", help="Follow the countdown"),
) -> None:
    """Resume a paused timer."""
    with _session() as engine:
        activity = engine.resume(activity_id)
        left = display.format_time(engine.remaining(activity_id))
        display.print_success(f"Resumed {activity.name}: {left} to go.")
        if watch_timer and _run_countdown(engine, activity):
            _ask_confirmation(engine, activity)


@app.command()
def cancel(activity_id: int = typer.Argument(..., help="ID of the activity")) -> None:
    """Abandon a running or paused timer."""
    with _session() as engine:
        activity = engine.cancel(activity_id)
        display.print_info(f"Cancelled the timer for {activity.name}.")


@app.command()
def watch() -> None:
    """Follow the active timer and confirm it when it finishes."""
    with _session() as engine:
        engine.settle()
        activity = engine.active_activity()
        if activity is None:
            display.print_info("No timer is running.")
            return
        if activity.timing_state == TimingState.RUNNING and not _run_countdown(
            engine, activity
        ):
            return
        _ask_confirmation(engine, activity)


@app.command()
def confirm(
    activity_id: int = typer.Argument(..., help="ID of the activity"),
    done: Optional[bool] = typer.Option(
        None, "--yes/--no", help="Whether the activity was completed"
    ),
) -> None:
    """Confirm (or decline) a finished timer."""
    with _session() as engine:
        engine.settle()
        activity = engine.get_activity(activity_id)
        if done is None:
            if activity.timing_state != TimingState.AWAITING_CONFIRMATION:
                raise InvalidStateError("confirm", activity.timing_state)
            _ask_confirmation(engine, activity)
        else:
            _apply_confirmation(engine, activity, done)


# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------


@app.command()
def streak(
    activity_id: int = typer.Argument(..., help="ID of the activity"),
    days: Optional[int] = typer.Option(None, "--days", "-d", help="Days to show"),
    show_all: bool = typer.Option(False, "--all", help="Show the full history"),
) -> None:
    """Show an activity's streak and recent chain."""
    window = None if show_all else (days or cfg.load_config().history_days)
    with _session() as engine:
        activity = engine.get_activity(activity_id)
        display.print_streak(
            activity.name,
            engine.current_streak(activity_id),
            engine.history(activity_id, days=window),
            longest=engine.longest_streak(activity_id),
            today=ledger.start_of_day(engine.now()),
        )


@app.command()
def chart(
    activity_id: int = typer.Argument(..., help="ID of the activity"),
    out: Path = typer.Option(Path("chain.png"), "--out", "-o", help="PNG file to write"),
    days: Optional[int] = typer.Option(None, "--days", "-d", help="Days to show"),
) -> None:
    """Save the activity's chain as an image."""
    from chains.charts import save_chain

    window = days or cfg.load_config().history_days
    with _session() as engine:
        activity = engine.get_activity(activity_id)
        markers = engine.history(activity_id, days=window)
        today = ledger.start_of_day(engine.now())
        path = save_chain(markers, out, title=activity.name, today=today)
        display.print_success(f"Chain saved to {path}")


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


@app.command()
def reminders(
    show_pending: bool = typer.Option(False, "--pending", help="List pending reminders"),
) -> None:
    """Show reminders that are due (or pending with --pending)."""
    with _session() as engine:
        service = DatabaseReminders(engine.conn)
        if show_pending:
            pending = service.pending()
            if not pending:
                display.print_info("No pending reminders.")
            for r in pending:
                display.print_info(f"#{r.activity_id} at {r.fire_at.astimezone():%H:%M:%S}: {r.body}")
            return

        due = service.pop_due(engine.now())
        if not due:
            display.print_info("Nothing due.")
            return
        for r in due:
            display.console.print("\a", end="")
            display.print_nudge(f"{r.title}\n{r.body}")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@app.command()
def config(
    db_path: Optional[str] = typer.Option(
        None, "--db-path",
        help="Set a custom database file path",
    ),
    history_days: Optional[int] = typer.Option(
        None, "--history-days",
        help="Days shown by the streak chain",
    ),
    reset: bool = typer.Option(False, "--reset", help="Reset to default local DB"),
    show: bool = typer.Option(False, "--show", help="Show current config"),
) -> None:
    """Configure where your data is stored and how much history is shown."""
    if db_path:
        result = cfg.set_db_path(db_path)
        display.print_success(f"Database path set to: {result.db_path}")
    elif history_days is not None:
        try:
            result = cfg.set_history_days(history_days)
        except ValidationError:
            display.print_warning("History days must be between 1 and 366.")
            raise typer.Exit(1)
        display.print_success(f"Streak chain shows {result.history_days} days.")
    elif reset:
        cfg.reset_db_path()
        display.print_success("Reset to default local database.")
    elif show:
        current = cfg.load_config()
        display.print_info(f"Database: {cfg.get_db_path()}")
        display.print_info(f"Custom path: {current.db_path or '(default)'}")
        display.print_info(f"History days: {current.history_days}")
    else:
        display.print_info("Use --db-path, --history-days, --reset or --show.")


if __name__ == "__main__":
    app()
