"""Engine error types."""

from __future__ import annotations

from chains.models import TimingState


class ChainsError(Exception):
    """Base class for all engine errors."""


class ConflictError(ChainsError):
    """Raised when starting a timer while another activity's timer is active."""

    def __init__(self, active_id: int) -> None:
        self.active_id = active_id
        super().__init__(f"activity #{active_id} already has an active timer")


class InvalidStateError(ChainsError):
    """Raised when an operation is not permitted from the current timing state."""

    def __init__(self, operation: str, state: TimingState) -> None:
        self.operation = operation
        self.state = state
        super().__init__(f"cannot {operation} while {state.value}")


class NotFoundError(ChainsError):
    """Raised when an activity id does not exist (e.g. it was deleted)."""

    def __init__(self, activity_id: int) -> None:
        self.activity_id = activity_id
        super().__init__(f"activity #{activity_id} not found")
