"""Countdown state machine for a single activity.

Every function here is pure: it takes an activity plus an explicit ``now`` and
returns a new :class:`Activity`.  Remaining time is always re-derived from the
stored deadline (while running) or the stored remainder (while paused), so a
countdown survives the process exiting without any live ticking loop.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Iterable, Optional

from chains.errors import ConflictError, InvalidStateError
from chains.ledger import start_of_day
from chains.models import Activity, CompletionEvent, TimingState, as_utc

_STARTABLE = frozenset({TimingState.IDLE, TimingState.PAUSED})
_CANCELLABLE = frozenset({TimingState.RUNNING, TimingState.PAUSED})


def _transition(
    activity: Activity,
    state: TimingState,
    deadline: Optional[datetime] = None,
    paused_remaining: Optional[int] = None,
) -> Activity:
    """Return a copy of *activity* with new timing fields (re-validated)."""
    data = activity.model_dump()
    data.update(
        timing_state=state,
        deadline=deadline,
        paused_remaining_seconds=paused_remaining,
    )
    return Activity.model_validate(data)


def _require(activity: Activity, operation: str, allowed: Iterable[TimingState]) -> None:
    if activity.timing_state not in allowed:
        raise InvalidStateError(operation, activity.timing_state)


def compute_remaining(activity: Activity, now: datetime) -> int:
    """Seconds left on the countdown. Never negative.

    The deadline is an absolute instant, so *now* may be naive local time or
    aware; both are compared in UTC.
    """
    if activity.deadline is not None:  # running
        left = (activity.deadline - as_utc(now)).total_seconds()
        return max(math.ceil(left), 0)
    if activity.paused_remaining_seconds is not None:  # paused
        return max(activity.paused_remaining_seconds, 0)
    if activity.timing_state == TimingState.AWAITING_CONFIRMATION:
        return 0
    return activity.target_duration_seconds


def find_active(activities: Iterable[Activity]) -> Optional[Activity]:
    """Return the activity whose timer is running or awaiting confirmation."""
    for activity in activities:
        if activity.is_active:
            return activity
    return None


def start(
    activity: Activity, now: datetime, others: Iterable[Activity] = ()
) -> Activity:
    """Start (or restart from a pause) the countdown.

    Raises ConflictError if any other activity is running or awaiting
    confirmation; only one timer may be active at a time.
    """
    active = find_active(a for a in others if a.id != activity.id)
    if active is not None:
        raise ConflictError(active.id)
    _require(activity, "start", _STARTABLE)

    remaining = compute_remaining(activity, now)
    return _transition(
        activity, TimingState.RUNNING, deadline=as_utc(now) + timedelta(seconds=remaining)
    )


def resume(
    activity: Activity, now: datetime, others: Iterable[Activity] = ()
) -> Activity:
    """Continue a paused countdown from its stored remainder."""
    _require(activity, "resume", {TimingState.PAUSED})
    return start(activity, now, others)


def pause(activity: Activity, now: datetime) -> Activity:
    """Freeze a running countdown, storing the seconds left."""
    _require(activity, "pause", {TimingState.RUNNING})
    remaining = compute_remaining(activity, now)
    return _transition(activity, TimingState.PAUSED, paused_remaining=remaining)


def tick(activity: Activity, now: datetime) -> Activity:
    """Move a running activity to awaiting confirmation once it reaches zero."""
    _require(activity, "tick", {TimingState.RUNNING})
    if compute_remaining(activity, now) <= 0:
        return _transition(activity, TimingState.AWAITING_CONFIRMATION)
    return activity


def confirm(
    activity: Activity, did_complete: bool, now: datetime
) -> tuple[Activity, Optional[CompletionEvent]]:
    """Resolve a finished countdown.

    Returns the reset activity and, if the user completed it, the completion
    event for today. A declined attempt is discarded without a record.
    """
    _require(activity, "confirm", {TimingState.AWAITING_CONFIRMATION})
    event = None
    if did_complete:
        event = CompletionEvent(activity_id=activity.id, day=start_of_day(now))
    return _transition(activity, TimingState.IDLE), event


def cancel(activity: Activity, now: datetime) -> Activity:
    """Abandon a running or paused countdown."""
    _require(activity, "cancel", _CANCELLABLE)
    return _transition(activity, TimingState.IDLE)


def status_text(activity: Activity, completed_today: bool) -> str:
    """Short label for an activity row."""
    if completed_today:
        return "Completed today"
    if activity.timing_state == TimingState.AWAITING_CONFIRMATION:
        return "Finished, awaiting confirmation"
    if activity.timing_state in _CANCELLABLE:
        return "In progress"
    return "Not started"
