"""Booking admission: field checks plus the daily capacity gate.

The capacity gate is a point-in-time read. Two requests racing for the last
place on a day can both pass it; the store has no counter that would stop
the second insert.
"""

import logging
import re
from dataclasses import asdict
from datetime import date

from clinic.models.appointment import (
    APPOINTMENT_STATUSES,
    APPOINTMENT_TYPES,
    CAPACITY_STATUSES,
    STATUS_SCHEDULED,
    Appointment,
)
from clinic.services.capacity import DayCapacity, day_capacity
from clinic.services.errors import BookingValidationError, CapacityExceededError, NotFoundError
from clinic.services.repository import ClinicRepository

logger = logging.getLogger(__name__)

TIME_SLOTS = (
    ('08:00', '10:00'),
    ('10:00', '12:00'),
    ('13:00', '15:00'),
    ('15:00', '17:00'),
)
WALK_IN_SLOT = ('08:00', '17:00')
MAX_NOTES_LENGTH = 600

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def normalize_email(value: str | None, required: bool = False) -> str | None:
    normalized = (value or '').strip().lower()
    if not normalized:
        if required:
            raise BookingValidationError('Please enter email address.')
        return None
    if not EMAIL_PATTERN.match(normalized):
        raise BookingValidationError('Please enter a valid email address.')
    return normalized


def normalize_appointment_type(value: str) -> str:
    normalized = (value or '').strip().lower()
    if normalized not in APPOINTMENT_TYPES:
        raise BookingValidationError('Invalid appointment type.')
    return normalized


def slot_end_time(start_time: str) -> str:
    for slot_start, slot_end in TIME_SLOTS:
        if slot_start == start_time:
            return slot_end
    raise BookingValidationError('Please select one of the available time slots.')


def check_admission(
    repository: ClinicRepository,
    campus_id: int,
    day: date,
    today: date | None = None,
    reject_past: bool = True,
) -> DayCapacity:
    """Raise unless ``day`` can take one more booking right now."""
    today = today or date.today()
    if reject_past and day < today:
        raise BookingValidationError('Appointments cannot be booked in the past.')

    snapshot = day_capacity(repository, campus_id, day)
    if not snapshot.bookable:
        raise CapacityExceededError('The clinic is not accepting bookings on this date.', [asdict(snapshot)])
    if snapshot.is_full:
        raise CapacityExceededError('This date is fully booked. Please select another date.', [asdict(snapshot)])

    return snapshot


def book_appointment(
    repository: ClinicRepository,
    *,
    campus_id: int,
    appointment_date: date,
    appointment_type: str,
    patient_name: str,
    patient_phone: str,
    patient_email: str | None = None,
    start_time: str | None = None,
    patient_id: int | None = None,
    notes: str | None = None,
    walk_in: bool = False,
    department: str | None = None,
    today: date | None = None,
) -> Appointment:
    name = (patient_name or '').strip()
    if not name:
        raise BookingValidationError('Please enter patient name.' if walk_in else 'Please enter your full name.')

    phone = (patient_phone or '').strip()
    if not phone:
        raise BookingValidationError('Please enter contact number.' if walk_in else 'Please enter your contact number.')

    email = normalize_email(patient_email, required=walk_in)
    normalized_type = normalize_appointment_type(appointment_type)

    if walk_in:
        start, end = WALK_IN_SLOT
    else:
        start = (start_time or '').strip()
        end = slot_end_time(start)

    cleaned_notes = (notes or '').strip()
    if len(cleaned_notes) > MAX_NOTES_LENGTH:
        raise BookingValidationError(f'Notes must be {MAX_NOTES_LENGTH} characters or fewer.')
    if walk_in:
        header = 'Walk-in'
        if department and department.strip():
            header = f'{header} | Department: {department.strip()}'
        cleaned_notes = f'{header}\n{cleaned_notes}' if cleaned_notes else header

    # Staff may record walk-ins on past days.
    snapshot = check_admission(repository, campus_id, appointment_date, today=today, reject_past=not walk_in)

    appointment = repository.create_appointment({
        'patient_id': patient_id,
        'campus_id': campus_id,
        'appointment_date': appointment_date,
        'start_time': start,
        'end_time': end,
        'appointment_type': normalized_type,
        'status': STATUS_SCHEDULED,
        'notes': cleaned_notes or None,
        'patient_name': name,
        'patient_email': email,
        'patient_phone': phone,
    })
    logger.info(
        'Booked appointment id=%s campus=%s date=%s (%d/%d before insert)',
        appointment.id,
        campus_id,
        appointment_date,
        snapshot.load,
        snapshot.capacity,
    )
    return appointment


def change_status(repository: ClinicRepository, appointment_id: int, new_status: str) -> Appointment:
    """Set an appointment's status.

    Moving a cancelled or no-show appointment back onto the books takes a
    place on its day again, so it goes through the capacity gate first.
    """
    normalized = (new_status or '').strip().lower()
    if normalized not in APPOINTMENT_STATUSES:
        raise BookingValidationError('Invalid appointment status.')

    appointment = repository.get_appointment(appointment_id)
    if appointment is None:
        raise NotFoundError(f'Appointment {appointment_id} not found.')

    if normalized in CAPACITY_STATUSES and appointment.status not in CAPACITY_STATUSES:
        check_admission(repository, appointment.campus_id, appointment.appointment_date, reject_past=False)

    return repository.update_appointment(appointment_id, {'status': normalized})
