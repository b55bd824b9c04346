"""Moving a day's appointments onto later days without breaking daily caps.

Two modes share the same write path:

* auto-spread walks forward from the day after the source date and fills
  the nearest bookable day's remaining room before spilling to the next;
* manual pick takes an explicit target per appointment, validates the whole
  batch, then applies it.

Writes are one update per appointment. A failure mid-batch leaves earlier
moves in place and is reported as ``PartialBatchFailure``.
"""

import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta

from sqlalchemy.exc import SQLAlchemyError

from clinic.core import config
from clinic.models.appointment import STATUS_CANCELLED, STATUS_COMPLETED, STATUS_SCHEDULED, Appointment
from clinic.services.capacity import CapacityWindow, DayCapacity
from clinic.services.errors import (
    BookingValidationError,
    CapacityExceededError,
    NotFoundError,
    PartialBatchFailure,
    PlacementNotFoundError,
)
from clinic.services.repository import ClinicRepository

logger = logging.getLogger(__name__)

MODE_AUTO = 'auto'
MODE_MANUAL = 'manual'


@dataclass(frozen=True)
class Move:
    appointment_id: int
    from_date: date
    to_date: date

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class RescheduleResult:
    source_date: date
    moves: list[Move] = field(default_factory=list)
    warnings: list[DayCapacity] = field(default_factory=list)
    triage_writes: list[int] = field(default_factory=list)


def day_appointments(repository: ClinicRepository, campus_id: int, day: date) -> list[Appointment]:
    """Non-cancelled appointments on ``day`` in listing order."""
    return [
        appointment
        for appointment in repository.get_appointments(date_range=(day, day), campus_id=campus_id)
        if appointment.status != STATUS_CANCELLED
    ]


def unfinished_appointments(repository: ClinicRepository, campus_id: int, day: date) -> list[Appointment]:
    return [
        appointment
        for appointment in day_appointments(repository, campus_id, day)
        if appointment.status != STATUS_COMPLETED
    ]


def save_triage(repository: ClinicRepository, campus_id: int, day: date, completed_ids) -> list[int]:
    """Persist the completion checklist for ``day``.

    Checked appointments become ``completed``; unchecked ones that were
    ``completed`` go back to ``scheduled``. Rows already in the desired state
    are not written, so saving the same checklist twice writes nothing the
    second time. Returns the ids that were written.
    """
    completed = set(completed_ids)
    appointments = day_appointments(repository, campus_id, day)

    unknown = sorted(completed - {appointment.id for appointment in appointments})
    if unknown:
        raise BookingValidationError(
            f'{len(unknown)} checked appointment(s) are not on {day.isoformat()}.',
            unknown,
        )

    written: list[int] = []
    for appointment in appointments:
        if appointment.id in completed and appointment.status != STATUS_COMPLETED:
            repository.update_appointment(appointment.id, {'status': STATUS_COMPLETED})
            written.append(appointment.id)
        elif appointment.id not in completed and appointment.status == STATUS_COMPLETED:
            repository.update_appointment(appointment.id, {'status': STATUS_SCHEDULED})
            written.append(appointment.id)

    if written:
        logger.info('Triage for campus=%s date=%s updated %d appointment(s)', campus_id, day, len(written))
    return written


def _apply_moves(
    repository: ClinicRepository,
    source_date: date,
    plan: list[tuple[int, date]],
) -> list[Move]:
    applied: list[Move] = []

    for index, (appointment_id, target_date) in enumerate(plan):
        try:
            repository.update_appointment(
                appointment_id,
                {'appointment_date': target_date, 'status': STATUS_SCHEDULED},
            )
        except (NotFoundError, SQLAlchemyError) as exc:
            logger.exception(
                'Reschedule from %s stopped at appointment %s after %d move(s)',
                source_date,
                appointment_id,
                len(applied),
            )
            raise PartialBatchFailure(
                failed_id=appointment_id,
                reason=str(exc),
                applied=[move.as_dict() for move in applied],
                pending=[pending_id for pending_id, _ in plan[index + 1:]],
            ) from exc

        applied.append(Move(appointment_id=appointment_id, from_date=source_date, to_date=target_date))

    return applied


def plan_auto_spread(
    window: CapacityWindow,
    appointment_ids: list[int],
) -> tuple[list[tuple[int, date]], list[int]]:
    """Assign each id, in order, to the nearest day in ``window`` with room.

    Returns the plan and the ids that did not fit inside the window.
    """
    plan: list[tuple[int, date]] = []
    candidate = window.start

    for index, appointment_id in enumerate(appointment_ids):
        while candidate <= window.end and not window.has_capacity(candidate):
            candidate += timedelta(days=1)

        if candidate > window.end:
            return plan, list(appointment_ids[index:])

        plan.append((appointment_id, candidate))
        window.reserve(candidate)

    return plan, []


def auto_reschedule(
    repository: ClinicRepository,
    campus_id: int,
    source_date: date,
    appointment_ids: list[int],
    today: date | None = None,
    horizon_days: int | None = None,
) -> RescheduleResult:
    if not appointment_ids:
        raise BookingValidationError('No appointments to reschedule.')

    duplicates = sorted(appointment_id for appointment_id, count in Counter(appointment_ids).items() if count > 1)
    if duplicates:
        raise BookingValidationError('Each appointment can only be rescheduled once per request.', duplicates)

    today = today or date.today()
    horizon_days = horizon_days or config.RESCHEDULE_HORIZON_DAYS
    first_day = max(source_date, today) + timedelta(days=1)
    last_day = first_day + timedelta(days=horizon_days - 1)

    window = CapacityWindow(repository, campus_id, first_day, last_day)
    plan, unplaced = plan_auto_spread(window, list(appointment_ids))

    if unplaced:
        logger.warning(
            'No room for %d appointment(s) from campus=%s date=%s within %d days',
            len(unplaced),
            campus_id,
            source_date,
            horizon_days,
        )
        raise PlacementNotFoundError(source_date, horizon_days, applied=[], pending=unplaced)

    moves = _apply_moves(repository, source_date, plan)
    logger.info(
        'Auto-rescheduled %d appointment(s) from campus=%s date=%s onto %d day(s)',
        len(moves),
        campus_id,
        source_date,
        len({move.to_date for move in moves}),
    )
    return RescheduleResult(source_date=source_date, moves=moves)


def manual_reschedule(
    repository: ClinicRepository,
    campus_id: int,
    source_date: date,
    targets: dict[int, date | None],
    policy: str | None = None,
) -> RescheduleResult:
    policy = (policy or config.MANUAL_OVER_CAPACITY_POLICY).lower()
    if policy not in {config.MANUAL_POLICY_WARN, config.MANUAL_POLICY_BLOCK}:
        raise ValueError(f'Unknown over-capacity policy: {policy}')

    unfinished_ids = [appointment.id for appointment in unfinished_appointments(repository, campus_id, source_date)]
    if not unfinished_ids:
        raise BookingValidationError('No appointments to reschedule.')

    missing = [appointment_id for appointment_id in unfinished_ids if targets.get(appointment_id) is None]
    if missing:
        raise BookingValidationError(
            f'Please select a date for all {len(missing)} uncompleted appointment(s).',
            missing,
        )

    unknown = sorted(set(targets) - set(unfinished_ids))
    if unknown:
        raise BookingValidationError(
            f'{len(unknown)} appointment(s) are not awaiting reschedule on {source_date.isoformat()}.',
            unknown,
        )

    unchanged = [appointment_id for appointment_id in unfinished_ids if targets[appointment_id] == source_date]
    if unchanged:
        raise BookingValidationError('Target date must differ from the original date.', unchanged)

    per_day = Counter(targets[appointment_id] for appointment_id in unfinished_ids)
    window = CapacityWindow(repository, campus_id, min(per_day), max(per_day))

    over_capacity: list[DayCapacity] = []
    for target_date, incoming in sorted(per_day.items()):
        snapshot = window.day(target_date)
        would_be = DayCapacity(
            date=target_date,
            load=snapshot.load + incoming,
            capacity=snapshot.capacity,
            bookable=snapshot.bookable,
        )
        if not would_be.bookable or would_be.load > would_be.capacity:
            over_capacity.append(would_be)

    if over_capacity and policy == config.MANUAL_POLICY_BLOCK:
        raise CapacityExceededError(
            f'{len(over_capacity)} target date(s) are closed or over the booking limit.',
            [asdict(day) for day in over_capacity],
        )

    for day in over_capacity:
        logger.warning(
            'Manual reschedule puts campus=%s date=%s at %d/%d (bookable=%s)',
            campus_id,
            day.date,
            day.load,
            day.capacity,
            day.bookable,
        )

    plan = [(appointment_id, targets[appointment_id]) for appointment_id in unfinished_ids]
    moves = _apply_moves(repository, source_date, plan)
    return RescheduleResult(source_date=source_date, moves=moves, warnings=over_capacity)


def reschedule_day(
    repository: ClinicRepository,
    campus_id: int,
    source_date: date,
    completed_ids,
    mode: str = MODE_AUTO,
    targets: dict[int, date | None] | None = None,
    policy: str | None = None,
    today: date | None = None,
) -> RescheduleResult:
    """Save the completion checklist, then move everything left unchecked."""
    if mode not in {MODE_AUTO, MODE_MANUAL}:
        raise BookingValidationError(f'Unknown reschedule mode: {mode}')

    triage_writes = save_triage(repository, campus_id, source_date, completed_ids)

    if mode == MODE_MANUAL:
        result = manual_reschedule(repository, campus_id, source_date, targets or {}, policy=policy)
    else:
        move_ids = [appointment.id for appointment in unfinished_appointments(repository, campus_id, source_date)]
        result = auto_reschedule(repository, campus_id, source_date, move_ids, today=today)

    result.triage_writes = triage_writes
    return result
