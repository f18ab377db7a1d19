"""Completion ledger and streak calculator.

Completion records are keyed by ``(activity_id, day)`` where ``day`` is the
local calendar date.  Streaks and history grids are derived from the set of
recorded days on every query; nothing is cached.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Union

from chains import db
from chains.models import CompletionRecord, DayMarker

log = logging.getLogger(__name__)

_ONE_DAY = timedelta(days=1)

DayLike = Union[date, datetime]


def start_of_day(value: DayLike) -> date:
    """Normalise a timestamp to its local calendar day."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    return value


def is_next_day(first: DayLike, second: DayLike) -> bool:
    """True if *second* falls on the calendar day right after *first*."""
    return start_of_day(second) - start_of_day(first) == _ONE_DAY


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def streak_from_days(days: Iterable[date], today: date) -> int:
    """Count consecutive days ending today. Zero if today is missing."""
    done = set(days)
    streak = 0
    cursor = today
    while cursor in done:
        streak += 1
        cursor -= _ONE_DAY
    return streak


def longest_from_days(days: Iterable[date]) -> int:
    """Length of the longest run of consecutive days."""
    longest = 0
    run = 0
    previous: Optional[date] = None
    for day in sorted(set(days)):
        if previous is not None and is_next_day(previous, day):
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = day
    return longest


def history_from_days(
    days: Iterable[date], today: date, window: Optional[int] = None
) -> list[DayMarker]:
    """Day markers, oldest first, ending today.

    Without *window* the grid starts at the earliest completion; with it, the
    grid covers exactly the last *window* days.
    """
    done = set(days)
    if window is not None:
        first = today - timedelta(days=max(window, 1) - 1)
    else:
        first = min((d for d in done if d <= today), default=today)

    markers: list[DayMarker] = []
    cursor = first
    while cursor <= today:
        markers.append(DayMarker(day=cursor, done=cursor in done))
        cursor += _ONE_DAY
    return markers


# ---------------------------------------------------------------------------
# Ledger queries
# ---------------------------------------------------------------------------


def record_completion(
    conn: sqlite3.Connection,
    activity_id: int,
    day: DayLike,
    now: Optional[datetime] = None,
) -> CompletionRecord:
    """Record that an activity was completed on *day*.

    Idempotent: a second call for the same activity and day returns the
    existing record instead of inserting a duplicate.
    """
    normalised = start_of_day(day)
    existing = db.get_completion(conn, activity_id, normalised)
    if existing is not None:
        log.debug("Activity #%d already completed on %s", activity_id, normalised)
        return existing
    record = db.insert_completion(conn, activity_id, normalised, now=now)
    log.debug("Recorded completion of activity #%d on %s", activity_id, normalised)
    return record


def is_completed_today(
    conn: sqlite3.Connection, activity_id: int, now: DayLike
) -> bool:
    return db.get_completion(conn, activity_id, start_of_day(now)) is not None


def current_streak(conn: sqlite3.Connection, activity_id: int, now: DayLike) -> int:
    """Consecutive completed days ending today."""
    return streak_from_days(db.completion_days(conn, activity_id), start_of_day(now))


def longest_streak(conn: sqlite3.Connection, activity_id: int) -> int:
    return longest_from_days(db.completion_days(conn, activity_id))


def history(
    conn: sqlite3.Connection,
    activity_id: int,
    now: DayLike,
    days: Optional[int] = None,
) -> list[DayMarker]:
    """Completion grid for an activity, from its first completion through today."""
    return history_from_days(
        db.completion_days(conn, activity_id), start_of_day(now), window=days
    )
