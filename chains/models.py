"""Pydantic models — single source of truth for all data types."""

from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def utc_now() -> datetime:
    """The current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Convert *value* to an aware UTC instant.

    Naive values are read as local wall-clock time; ``fold`` picks the side of
    a repeated hour.
    """
    return value.astimezone(timezone.utc)


class TimingState(str, enum.Enum):
    """Countdown states of an activity."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    AWAITING_CONFIRMATION = "awaiting_confirmation"


ACTIVE_STATES = frozenset({TimingState.RUNNING, TimingState.AWAITING_CONFIRMATION})


class Activity(BaseModel):
    """A named task with a target timer duration."""

    id: int
    name: str = Field(min_length=1)
    target_duration_seconds: int = Field(gt=0)
    timing_state: TimingState = TimingState.IDLE
    deadline: Optional[datetime] = None
    paused_remaining_seconds: Optional[int] = Field(default=None, ge=0)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("deadline")
    @classmethod
    def _deadline_in_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else None

    @model_validator(mode="after")
    def _check_timing_fields(self) -> Activity:
        running = self.timing_state == TimingState.RUNNING
        paused = self.timing_state == TimingState.PAUSED
        if (self.deadline is not None) != running:
            raise ValueError("deadline must be set exactly when the timer is running")
        if (self.paused_remaining_seconds is not None) != paused:
            raise ValueError(
                "paused_remaining_seconds must be set exactly when the timer is paused"
            )
        return self

    @property
    def is_active(self) -> bool:
        return self.timing_state in ACTIVE_STATES


class ActivityCreate(BaseModel):
    """Input model for creating a new activity."""

    name: str = Field(min_length=1, max_length=200)
    target_duration_seconds: int = Field(gt=0)


class CompletionRecord(BaseModel):
    """One "completed this activity on this calendar day" fact."""

    id: int
    activity_id: int
    day: date
    recorded_at: datetime = Field(default_factory=utc_now)


class CompletionEvent(BaseModel):
    """Emitted by the timer when the user confirms a finished countdown."""

    activity_id: int
    day: date


class DayMarker(BaseModel):
    """One cell of a completion history grid."""

    day: date
    done: bool = False


class ActivitySummary(BaseModel):
    """Read model for the list screen / status command."""

    activity: Activity
    remaining_seconds: int = Field(ge=0)
    completed_today: bool = False
    current_streak: int = Field(default=0, ge=0)
    status_text: str = ""


class Reminder(BaseModel):
    """A pending "timer finished" reminder."""

    activity_id: int
    fire_at: datetime
    title: str
    body: str

    @field_validator("fire_at")
    @classmethod
    def _fire_at_in_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class AppConfig(BaseModel):
    """Application configuration (persisted to ~/.config/chains/config.json)."""

    db_path: Optional[str] = None  # None = use default (~/.local/share/chains/)
    history_days: int = Field(default=14, gt=0, le=366)
