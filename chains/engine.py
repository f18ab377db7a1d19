"""The single authority that applies timer transitions and records completions.

All mutations go through an :class:`Engine`.  Each operation loads the
activity, applies a pure transition from :mod:`chains.timer`, persists the
result and then tells the reminder service.  Reminder failures are logged and
swallowed; everything else is raised as a :class:`~chains.errors.ChainsError`.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime
from typing import Callable, Optional

from chains import db, ledger, timer
from chains.errors import ConflictError, InvalidStateError, NotFoundError
from chains.models import (
    Activity,
    ActivityCreate,
    ActivitySummary,
    CompletionRecord,
    DayMarker,
    TimingState,
    utc_now,
)
from chains.reminders import (
    REMINDER_TITLE,
    NullReminders,
    ReminderService,
    reminder_body,
)

log = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class Engine:
    """Timer state machine plus completion ledger over one database."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        reminders: Optional[ReminderService] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.conn = conn
        self.reminders: ReminderService = reminders or NullReminders()
        self._clock = clock
        # Serialises mutations made through this engine.
        self._lock = threading.RLock()

    def now(self) -> datetime:
        return self._clock()

    # -- helpers -------------------------------------------------------------

    def _get(self, activity_id: int) -> Activity:
        activity = db.get_activity(self.conn, activity_id)
        if activity is None:
            raise NotFoundError(activity_id)
        return activity

    def _save(self, activity: Activity) -> Activity:
        log.debug(
            "Activity #%d -> %s", activity.id, activity.timing_state.value
        )
        return db.update_timing(self.conn, activity)

    def _apply(self, operation: str, transition: Callable[[], Activity]) -> Activity:
        try:
            return self._save(transition())
        except InvalidStateError as exc:
            log.warning("Rejected %s: %s", operation, exc)
            raise

    def _claim(
        self,
        operation: str,
        activity_id: int,
        now: datetime,
        transition: Callable[..., Activity],
    ) -> Activity:
        """Apply a start-like transition as one check-and-set.

        The thread lock covers this engine; the ``BEGIN IMMEDIATE``
        transaction covers other processes on the same database, and the
        ``idx_one_active_timer`` index rejects anything that slips past both.
        """
        with self._lock:
            try:
                with db.immediate(self.conn):
                    activity = self._get(activity_id)
                    others = db.list_activities(self.conn)
                    claimed = self._apply(
                        operation, lambda: transition(activity, now, others)
                    )
            except sqlite3.IntegrityError:
                active = self.active_activity()
                log.warning("Rejected %s: another timer is already active", operation)
                raise ConflictError(
                    active.id if active is not None else activity_id
                ) from None
        self._schedule_reminder(claimed, now)
        return claimed

    def _schedule_reminder(self, activity: Activity, now: datetime) -> None:
        if activity.deadline is None or timer.compute_remaining(activity, now) <= 0:
            return
        try:
            self.reminders.schedule(
                activity.id,
                activity.deadline,
                REMINDER_TITLE,
                reminder_body(activity.name),
            )
        except Exception:
            log.warning(
                "Could not schedule reminder for activity #%d", activity.id, exc_info=True
            )

    def _cancel_reminder(self, activity_id: int) -> None:
        try:
            self.reminders.cancel(activity_id)
        except Exception:
            log.warning(
                "Could not cancel reminder for activity #%d", activity_id, exc_info=True
            )

    # -- activities ------------------------------------------------------------

    def add_activity(self, activity_in: ActivityCreate) -> Activity:
        with self._lock:
            activity = db.add_activity(self.conn, activity_in, now=self.now())
        log.debug("Added activity #%d (%s)", activity.id, activity.name)
        return activity

    def get_activity(self, activity_id: int) -> Activity:
        return self._get(activity_id)

    def list_activities(self) -> list[Activity]:
        return db.list_activities(self.conn)

    def active_activity(self) -> Optional[Activity]:
        """The activity whose timer is running or awaiting confirmation."""
        active = db.list_activities(
            self.conn,
            states=[TimingState.RUNNING, TimingState.AWAITING_CONFIRMATION],
        )
        return active[0] if active else None

    def delete_activity(self, activity_id: int) -> None:
        """Delete an activity and its reminder. Completion history is kept."""
        with self._lock:
            self._get(activity_id)
            db.delete_activity(self.conn, activity_id)
        self._cancel_reminder(activity_id)
        log.debug("Deleted activity #%d", activity_id)

    # -- timer operations ----------------------------------------------------

    def remaining(self, activity_id: int, now: Optional[datetime] = None) -> int:
        return timer.compute_remaining(self._get(activity_id), now or self.now())

    def start(self, activity_id: int, now: Optional[datetime] = None) -> Activity:
        """Start the countdown. Raises ConflictError if another timer is active."""
        return self._claim("start", activity_id, now or self.now(), timer.start)

    def resume(self, activity_id: int, now: Optional[datetime] = None) -> Activity:
        return self._claim("resume", activity_id, now or self.now(), timer.resume)

    def pause(self, activity_id: int, now: Optional[datetime] = None) -> Activity:
        """Pause a running countdown.

        An activity whose deadline has already passed is settled to awaiting
        confirmation first, so pausing it is rejected.
        """
        now = now or self.now()
        with self._lock:
            activity = self._get(activity_id)
            if activity.timing_state == TimingState.RUNNING:
                settled = timer.tick(activity, now)
                if settled is not activity:
                    activity = self._save(settled)
            paused = self._apply("pause", lambda: timer.pause(activity, now))
        self._cancel_reminder(activity_id)
        return paused

    def tick(self, activity_id: int, now: Optional[datetime] = None) -> Activity:
        """Surface a finished countdown as awaiting confirmation."""
        now = now or self.now()
        with self._lock:
            activity = self._get(activity_id)
            try:
                ticked = timer.tick(activity, now)
            except InvalidStateError as exc:
                log.warning("Rejected tick: %s", exc)
                raise
            if ticked is activity:
                return activity
            return self._save(ticked)

    def settle(self, now: Optional[datetime] = None) -> list[Activity]:
        """Tick every running activity; returns those now awaiting confirmation."""
        now = now or self.now()
        finished = []
        for activity in db.list_activities(self.conn, states=[TimingState.RUNNING]):
            ticked = self.tick(activity.id, now)
            if ticked.timing_state == TimingState.AWAITING_CONFIRMATION:
                finished.append(ticked)
        return finished

    def confirm(
        self,
        activity_id: int,
        did_complete: bool,
        now: Optional[datetime] = None,
    ) -> tuple[Activity, Optional[CompletionRecord]]:
        """Resolve a finished countdown, recording today's completion if done."""
        now = now or self.now()
        record = None
        with self._lock:
            activity = self._get(activity_id)
            try:
                reset, event = timer.confirm(activity, did_complete, now)
            except InvalidStateError as exc:
                log.warning("Rejected confirm: %s", exc)
                raise
            if event is None:
                log.debug("Activity #%d attempt discarded", activity_id)
            else:
                record = ledger.record_completion(
                    self.conn, event.activity_id, event.day, now=now
                )
            reset = self._save(reset)
        self._cancel_reminder(activity_id)
        return reset, record

    def cancel(self, activity_id: int, now: Optional[datetime] = None) -> Activity:
        now = now or self.now()
        with self._lock:
            activity = self._get(activity_id)
            cancelled = self._apply("cancel", lambda: timer.cancel(activity, now))
        self._cancel_reminder(activity_id)
        return cancelled

    # -- ledger queries --------------------------------------------------------

    def is_completed_today(self, activity_id: int, now: Optional[datetime] = None) -> bool:
        return ledger.is_completed_today(self.conn, activity_id, now or self.now())

    def current_streak(self, activity_id: int, now: Optional[datetime] = None) -> int:
        return ledger.current_streak(self.conn, activity_id, now or self.now())

    def longest_streak(self, activity_id: int) -> int:
        return ledger.longest_streak(self.conn, activity_id)

    def history(
        self,
        activity_id: int,
        now: Optional[datetime] = None,
        days: Optional[int] = None,
    ) -> list[DayMarker]:
        return ledger.history(self.conn, activity_id, now or self.now(), days=days)

    def summary(self, activity_id: int, now: Optional[datetime] = None) -> ActivitySummary:
        return self._summarise(self._get(activity_id), now or self.now())

    def summaries(self, now: Optional[datetime] = None) -> list[ActivitySummary]:
        """One read model per activity for the list screen.

        Activities still to do today come first, completed ones last; each
        group is ordered by name.
        """
        now = now or self.now()
        rows = [self._summarise(a, now) for a in db.list_activities(self.conn)]
        return sorted(rows, key=lambda s: (s.completed_today, s.activity.name))

    def _summarise(self, activity: Activity, now: datetime) -> ActivitySummary:
        remaining = timer.compute_remaining(activity, now)
        completed = ledger.is_completed_today(self.conn, activity.id, now)
        return ActivitySummary(
            activity=activity,
            remaining_seconds=remaining,
            completed_today=completed,
            current_streak=ledger.current_streak(self.conn, activity.id, now),
            status_text=timer.status_text(activity, completed),
        )
