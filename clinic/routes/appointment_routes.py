from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic.core import config
from clinic.models.appointment import APPOINTMENT_STATUSES
from clinic.routes.common import (
    database_unavailable,
    ensure_database_ready,
    get_db,
    require_staff,
    scheduling_http_error,
)
from clinic.services.admission import (
    MAX_NOTES_LENGTH,
    book_appointment,
    change_status,
    normalize_appointment_type,
    normalize_email,
)
from clinic.services.capacity import booking_counts
from clinic.services.errors import SchedulingError
from clinic.services.notifications import OutboxEmailSender, send_booking_confirmation
from clinic.services.repository import SqlAlchemyRepository

router = APIRouter(tags=['appointments'])

MAX_COUNT_RANGE_DAYS = 120


class CreateAppointmentRequest(BaseModel):
    campus_id: int
    appointment_date: date
    appointment_type: str
    start_time: str
    patient_name: str
    patient_phone: str
    patient_email: str | None = None
    patient_id: int | None = None
    notes: str | None = None

    @field_validator('appointment_type')
    @classmethod
    def validate_appointment_type(cls, value: str) -> str:
        return normalize_appointment_type(value)

    @field_validator('patient_email')
    @classmethod
    def validate_patient_email(cls, value: str | None) -> str | None:
        return normalize_email(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_NOTES_LENGTH} characters or fewer.')

        return normalized


class CreateWalkInRequest(BaseModel):
    campus_id: int
    appointment_date: date
    appointment_type: str
    patient_name: str
    patient_phone: str
    patient_email: str
    department: str | None = None
    notes: str | None = None

    @field_validator('appointment_type')
    @classmethod
    def validate_appointment_type(cls, value: str) -> str:
        return normalize_appointment_type(value)

    @field_validator('patient_email')
    @classmethod
    def validate_patient_email(cls, value: str) -> str:
        return normalize_email(value, required=True)


class UpdateStatusRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in APPOINTMENT_STATUSES:
            raise ValueError('Invalid appointment status.')
        return normalized


class AppointmentResponse(BaseModel):
    id: int
    campus_id: int
    patient_id: int | None = None
    appointment_date: date
    start_time: str
    end_time: str
    appointment_type: str
    status: str
    notes: str | None = None
    patient_name: str | None = None
    patient_email: str | None = None
    patient_phone: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class BookingCountResponse(BaseModel):
    date: date
    count: int


def _confirm_booking(repository: SqlAlchemyRepository, db: Session, appointment) -> None:
    if config.SEND_BOOKING_CONFIRMATIONS:
        send_booking_confirmation(repository, OutboxEmailSender(db), appointment)


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    staff_email: str = Query(...),
    campus_id: int | None = Query(default=None),
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias='status'),
    db: Session = Depends(get_db),
):
    require_staff(staff_email, 'view booked appointments')

    if (start is None) != (end is None):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Provide both start and end, or neither.',
        )

    ensure_database_ready()

    try:
        return SqlAlchemyRepository(db).get_appointments(
            date_range=(start, end) if start and end else None,
            campus_id=campus_id,
            status=status_filter,
        )
    except SQLAlchemyError as exc:
        raise database_unavailable(None, exc) from exc


@router.get('/booking-counts', response_model=list[BookingCountResponse])
def list_booking_counts(
    campus_id: int = Query(...),
    start: date = Query(...),
    end: date = Query(...),
    db: Session = Depends(get_db),
):
    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='End date must not be before start date.',
        )
    if (end - start).days > MAX_COUNT_RANGE_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Date range can span at most {MAX_COUNT_RANGE_DAYS} days.',
        )

    ensure_database_ready()

    try:
        counts = booking_counts(SqlAlchemyRepository(db), campus_id, start, end)
    except SQLAlchemyError as exc:
        raise database_unavailable(None, exc) from exc

    return [BookingCountResponse(date=day, count=count) for day, count in sorted(counts.items())]


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, db: Session = Depends(get_db)):
    ensure_database_ready()
    repository = SqlAlchemyRepository(db)

    try:
        appointment = book_appointment(
            repository,
            campus_id=data.campus_id,
            appointment_date=data.appointment_date,
            appointment_type=data.appointment_type,
            start_time=data.start_time,
            patient_name=data.patient_name,
            patient_phone=data.patient_phone,
            patient_email=data.patient_email,
            patient_id=data.patient_id,
            notes=data.notes,
        )
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db, exc) from exc

    _confirm_booking(repository, db, appointment)
    return appointment


@router.post('/walk-in', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_walk_in(
    data: CreateWalkInRequest,
    staff_email: str = Query(...),
    db: Session = Depends(get_db),
):
    require_staff(staff_email, 'book walk-in appointments')
    ensure_database_ready()
    repository = SqlAlchemyRepository(db)

    try:
        appointment = book_appointment(
            repository,
            campus_id=data.campus_id,
            appointment_date=data.appointment_date,
            appointment_type=data.appointment_type,
            patient_name=data.patient_name,
            patient_phone=data.patient_phone,
            patient_email=data.patient_email,
            notes=data.notes,
            walk_in=True,
            department=data.department,
        )
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db, exc) from exc

    _confirm_booking(repository, db, appointment)
    return appointment


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateStatusRequest,
    staff_email: str = Query(...),
    db: Session = Depends(get_db),
):
    require_staff(staff_email, 'change appointment status')
    ensure_database_ready()

    try:
        return change_status(SqlAlchemyRepository(db), appointment_id, data.status)
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db, exc) from exc


@router.delete('/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: int,
    staff_email: str = Query(...),
    db: Session = Depends(get_db),
):
    require_staff(staff_email, 'delete appointments')
    ensure_database_ready()

    try:
        SqlAlchemyRepository(db).delete_appointment(appointment_id)
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db, exc) from exc
