"""Reminder services told when a countdown deadline is set or cleared.

Delivery is best-effort: the engine never depends on a reminder firing, since
remaining time is always re-derived from the stored deadline.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Optional, Protocol

from chains import db
from chains.models import Reminder, utc_now

REMINDER_TITLE = "Timer finished"


def reminder_body(activity_name: str) -> str:
    return f'Timer for "{activity_name}" is done.'


class ReminderService(Protocol):
    """Anything that can schedule and cancel a per-activity reminder."""

    def schedule(
        self, activity_id: int, fire_at: datetime, title: str, body: str
    ) -> None: ...

    def cancel(self, activity_id: int) -> None: ...


class NullReminders:
    """Reminder service that drops every request."""

    def schedule(
        self, activity_id: int, fire_at: datetime, title: str, body: str
    ) -> None:
        pass

    def cancel(self, activity_id: int) -> None:
        pass


class DatabaseReminders:
    """Keeps one pending reminder per activity in the ``reminders`` table.

    A separate poller (``chains reminders``) pops the ones that are due and
    shows them.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def schedule(
        self, activity_id: int, fire_at: datetime, title: str, body: str
    ) -> None:
        db.upsert_reminder(
            self._conn,
            Reminder(activity_id=activity_id, fire_at=fire_at, title=title, body=body),
        )

    def cancel(self, activity_id: int) -> None:
        db.delete_reminder(self._conn, activity_id)

    def pending(self) -> list[Reminder]:
        return db.list_reminders(self._conn)

    def pop_due(self, now: Optional[datetime] = None) -> list[Reminder]:
        """Remove and return every reminder whose fire time has passed."""
        due = db.list_reminders(self._conn, due_before=now or utc_now())
        for reminder in due:
            db.delete_reminder(self._conn, reminder.activity_id)
        return due
