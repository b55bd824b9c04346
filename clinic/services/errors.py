"""Domain errors raised by the scheduling core.

Each failure mode has its own type so callers can tell "pick a date" apart
from "this day is full" and from "some moves went through, re-check".
"""

from datetime import date


class SchedulingError(Exception):
    """Base class for scheduling failures."""


class BookingValidationError(SchedulingError, ValueError):
    """Malformed input; nothing was written."""

    def __init__(self, message: str, appointment_ids: list[int] | None = None):
        super().__init__(message)
        self.message = message
        self.appointment_ids = appointment_ids or []


class CapacityExceededError(SchedulingError):
    """A target day is closed or would go over its cap."""

    def __init__(self, message: str, days: list[dict] | None = None):
        super().__init__(message)
        self.message = message
        self.days = days or []


class NotFoundError(SchedulingError):
    """The referenced record does not exist."""


class ConflictError(SchedulingError):
    """The store rejected a write because of a uniqueness conflict."""


class _BatchError(SchedulingError):
    def __init__(self, message: str, applied: list[dict], pending: list[int]):
        super().__init__(message)
        self.message = message
        self.applied = applied
        self.pending = pending


class PlacementNotFoundError(_BatchError):
    """Auto-spread ran out of horizon before every appointment was placed.

    Moves in ``applied`` stay in place; ``pending`` still sit on the source date.
    """

    def __init__(self, source_date: date, horizon_days: int, applied: list[dict], pending: list[int]):
        super().__init__(
            f'Could not place {len(pending)} appointment(s) from {source_date.isoformat()} '
            f'within {horizon_days} days.',
            applied,
            pending,
        )
        self.source_date = source_date
        self.horizon_days = horizon_days


class PartialBatchFailure(_BatchError):
    """A single move failed mid-batch; earlier moves are not rolled back."""

    def __init__(self, failed_id: int, reason: str, applied: list[dict], pending: list[int]):
        super().__init__(
            f'Rescheduling stopped at appointment {failed_id}: {reason}',
            applied,
            pending,
        )
        self.failed_id = failed_id
        self.reason = reason
