"""SQLite database layer. All public functions return Pydantic models."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional

from chains.config import get_db_path as _config_get_db_path
from chains.models import (
    Activity,
    ActivityCreate,
    CompletionRecord,
    Reminder,
    TimingState,
    as_utc,
    utc_now,
)

# completions.activity_id is deliberately not a foreign key: records outlive
# their activity. AUTOINCREMENT keeps deleted ids from being reused.
_SCHEMA = """
CREATE TABLE IF NOT EXISTS activities (
    id                       INTEGER PRIMARY KEY AUTOINCREMENT,
    name                     TEXT    NOT NULL,
    target_duration_seconds  INTEGER NOT NULL,
    timing_state             TEXT    NOT NULL DEFAULT 'idle',
    deadline                 TEXT,
    paused_remaining_seconds INTEGER,
    created_at               TEXT    NOT NULL
);

-- At most one activity may be running or awaiting confirmation.
CREATE UNIQUE INDEX IF NOT EXISTS idx_one_active_timer
    ON activities(timing_state IN ('running', 'awaiting_confirmation'))
    WHERE timing_state IN ('running', 'awaiting_confirmation');

CREATE TABLE IF NOT EXISTS completions (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    activity_id INTEGER NOT NULL,
    day         TEXT    NOT NULL,
    recorded_at TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_completions_activity_day
    ON completions(activity_id, day);

CREATE TABLE IF NOT EXISTS reminders (
    activity_id INTEGER PRIMARY KEY,
    fire_at     TEXT NOT NULL,
    title       TEXT NOT NULL,
    body        TEXT NOT NULL
);
"""


def _get_db_path() -> Path:
    """Return the database file path from config (or default)."""
    return _config_get_db_path()


def get_connection(
    db_path: Optional[Path] = None, timeout: float = 10.0
) -> sqlite3.Connection:
    """Open a connection and ensure the schema exists.

    Other processes may hold the write lock briefly; *timeout* is how long a
    writer waits for it before failing with "database is locked".
    """
    path = db_path or _get_db_path()
    conn = sqlite3.connect(str(path), timeout=timeout, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.executescript(_SCHEMA)
    return conn


@contextmanager
def immediate(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a read-then-write sequence under the database write lock.

    ``BEGIN IMMEDIATE`` takes the lock up front, so a second connection doing
    the same check-and-set waits until this one commits or rolls back.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()


# ---------------------------------------------------------------------------
# Activities
# ---------------------------------------------------------------------------


def _row_to_activity(row: sqlite3.Row) -> Activity:
    """Convert a database row to an Activity model."""
    return Activity(
        id=row["id"],
        name=row["name"],
        target_duration_seconds=row["target_duration_seconds"],
        timing_state=TimingState(row["timing_state"]),
        deadline=(
            datetime.fromisoformat(row["deadline"]) if row["deadline"] else None
        ),
        paused_remaining_seconds=row["paused_remaining_seconds"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def add_activity(
    conn: sqlite3.Connection,
    activity_in: ActivityCreate,
    now: Optional[datetime] = None,
) -> Activity:
    """Insert a new idle activity and return it as a model."""
    created = (now or utc_now()).isoformat()
    cur = conn.execute(
        "INSERT INTO activities (name, target_duration_seconds, timing_state, created_at) "
        "VALUES (?, ?, ?, ?)",
        (
            activity_in.name,
            activity_in.target_duration_seconds,
            TimingState.IDLE.value,
            created,
        ),
    )
    conn.commit()
    row = conn.execute(
        "SELECT * FROM activities WHERE id = ?", (cur.lastrowid,)
    ).fetchone()
    return _row_to_activity(row)


def get_activity(conn: sqlite3.Connection, activity_id: int) -> Optional[Activity]:
    """Fetch a single activity by ID."""
    row = conn.execute(
        "SELECT * FROM activities WHERE id = ?", (activity_id,)
    ).fetchone()
    return _row_to_activity(row) if row else None


def list_activities(
    conn: sqlite3.Connection,
    states: Optional[Iterable[TimingState]] = None,
) -> list[Activity]:
    """List activities, optionally filtered by timing state."""
    query = "SELECT * FROM activities"
    params: list[str] = []
    if states is not None:
        params = [s.value for s in states]
        if not params:
            return []
        query += f" WHERE timing_state IN ({', '.join('?' for _ in params)})"
    query += " ORDER BY id ASC"
    rows = conn.execute(query, params).fetchall()
    return [_row_to_activity(r) for r in rows]


def update_timing(conn: sqlite3.Connection, activity: Activity) -> Activity:
    """Persist the timing fields of *activity*."""
    conn.execute(
        "UPDATE activities SET timing_state = ?, deadline = ?, paused_remaining_seconds = ? "
        "WHERE id = ?",
        (
            activity.timing_state.value,
            activity.deadline.isoformat() if activity.deadline else None,
            activity.paused_remaining_seconds,
            activity.id,
        ),
    )
    conn.commit()
    return activity


def delete_activity(conn: sqlite3.Connection, activity_id: int) -> bool:
    """Delete an activity. Its completion records are kept for history."""
    cur = conn.execute("DELETE FROM activities WHERE id = ?", (activity_id,))
    conn.commit()
    return cur.rowcount > 0


# ---------------------------------------------------------------------------
# Completions
# ---------------------------------------------------------------------------


def _row_to_completion(row: sqlite3.Row) -> CompletionRecord:
    """Convert a database row to a CompletionRecord model."""
    return CompletionRecord(
        id=row["id"],
        activity_id=row["activity_id"],
        day=date.fromisoformat(row["day"]),
        recorded_at=datetime.fromisoformat(row["recorded_at"]),
    )


def get_completion(
    conn: sqlite3.Connection, activity_id: int, day: date
) -> Optional[CompletionRecord]:
    """Fetch the completion record for one activity on one day."""
    row = conn.execute(
        "SELECT * FROM completions WHERE activity_id = ? AND day = ?",
        (activity_id, day.isoformat()),
    ).fetchone()
    return _row_to_completion(row) if row else None


def insert_completion(
    conn: sqlite3.Connection,
    activity_id: int,
    day: date,
    now: Optional[datetime] = None,
) -> CompletionRecord:
    """Insert a completion record. Callers check for duplicates first."""
    recorded = (now or utc_now()).isoformat()
    cur = conn.execute(
        "INSERT INTO completions (activity_id, day, recorded_at) VALUES (?, ?, ?)",
        (activity_id, day.isoformat(), recorded),
    )
    conn.commit()
    row = conn.execute(
        "SELECT * FROM completions WHERE id = ?", (cur.lastrowid,)
    ).fetchone()
    return _row_to_completion(row)


def list_completions(
    conn: sqlite3.Connection, activity_id: Optional[int] = None
) -> list[CompletionRecord]:
    """List completion records, oldest day first."""
    query = "SELECT * FROM completions"
    params: list[int] = []
    if activity_id is not None:
        query += " WHERE activity_id = ?"
        params.append(activity_id)
    query += " ORDER BY day ASC, id ASC"
    rows = conn.execute(query, params).fetchall()
    return [_row_to_completion(r) for r in rows]


def completion_days(conn: sqlite3.Connection, activity_id: int) -> set[date]:
    """Return the set of days on which an activity was completed."""
    rows = conn.execute(
        "SELECT DISTINCT day FROM completions WHERE activity_id = ?", (activity_id,)
    ).fetchall()
    return {date.fromisoformat(r["day"]) for r in rows}


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


def _row_to_reminder(row: sqlite3.Row) -> Reminder:
    """Convert a database row to a Reminder model."""
    return Reminder(
        activity_id=row["activity_id"],
        fire_at=datetime.fromisoformat(row["fire_at"]),
        title=row["title"],
        body=row["body"],
    )


def upsert_reminder(conn: sqlite3.Connection, reminder: Reminder) -> Reminder:
    """Store a reminder, replacing any pending one for the same activity."""
    conn.execute(
        """INSERT INTO reminders (activity_id, fire_at, title, body)
           VALUES (?, ?, ?, ?)
           ON CONFLICT(activity_id) DO UPDATE SET
               fire_at = excluded.fire_at,
               title = excluded.title,
               body = excluded.body""",
        (
            reminder.activity_id,
            reminder.fire_at.isoformat(),
            reminder.title,
            reminder.body,
        ),
    )
    conn.commit()
    return reminder


def delete_reminder(conn: sqlite3.Connection, activity_id: int) -> bool:
    """Remove the pending reminder for an activity, if any."""
    cur = conn.execute("DELETE FROM reminders WHERE activity_id = ?", (activity_id,))
    conn.commit()
    return cur.rowcount > 0


def list_reminders(
    conn: sqlite3.Connection, due_before: Optional[datetime] = None
) -> list[Reminder]:
    """List pending reminders, soonest first."""
    query = "SELECT * FROM reminders"
    params: list[str] = []
    if due_before is not None:
        query += " WHERE fire_at <= ?"
        params.append(as_utc(due_before).isoformat())
    query += " ORDER BY fire_at ASC"
    rows = conn.execute(query, params).fetchall()
    return [_row_to_reminder(r) for r in rows]
