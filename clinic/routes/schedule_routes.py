from datetime import date, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic.core import config
from clinic.models.booking_setting import BookingSetting
from clinic.models.day_override import DayOverride
from clinic.models.schedule_config import ScheduleConfig
from clinic.routes.common import (
    database_unavailable,
    ensure_database_ready,
    get_db,
    require_staff,
    scheduling_http_error,
)
from clinic.services.calendar import holiday_set
from clinic.services.capacity import CapacityWindow
from clinic.services.errors import SchedulingError
from clinic.services.notifications import OutboxEmailSender, send_bulk_reminders
from clinic.services.repository import SqlAlchemyRepository
from clinic.services.rescheduling import MODE_AUTO, MODE_MANUAL, reschedule_day, save_triage

router = APIRouter(tags=['schedule'])

MAX_CALENDAR_RANGE_DAYS = 120


class DayCapacityResponse(BaseModel):
    date: date
    load: int
    capacity: int
    bookable: bool
    remaining: int
    is_full: bool

    class Config:
        from_attributes = True


class BookingSettingRequest(BaseModel):
    max_bookings_per_day: int = Field(ge=1)


class BookingSettingResponse(BaseModel):
    campus_id: int
    max_bookings_per_day: int
    is_default: bool = False


class ScheduleConfigRequest(BaseModel):
    include_saturday: bool = False
    include_sunday: bool = False
    holiday_dates: list[date] = Field(default_factory=list)


class ScheduleConfigResponse(BaseModel):
    campus_id: int
    include_saturday: bool
    include_sunday: bool
    holiday_dates: list[date]


class DayOverrideRequest(BaseModel):
    max_bookings: int = Field(ge=0)
    is_closed: bool = False
    notes: str = ''

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str) -> str:
        return (value or '').strip()


class DayOverrideResponse(BaseModel):
    id: int
    campus_id: int
    override_date: date
    max_bookings: int
    is_closed: bool
    notes: str | None = ''

    class Config:
        from_attributes = True


class TriageRequest(BaseModel):
    completed_ids: list[int] = Field(default_factory=list)


class TriageResponse(BaseModel):
    updated_ids: list[int]


class RescheduleRequest(BaseModel):
    completed_ids: list[int] = Field(default_factory=list)
    mode: str = MODE_AUTO
    targets: dict[int, date | None] = Field(default_factory=dict)
    over_capacity_policy: str | None = None

    @field_validator('mode')
    @classmethod
    def validate_mode(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {MODE_AUTO, MODE_MANUAL}:
            raise ValueError('Mode must be auto or manual.')
        return normalized

    @field_validator('over_capacity_policy')
    @classmethod
    def validate_policy(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in {config.MANUAL_POLICY_WARN, config.MANUAL_POLICY_BLOCK}:
            raise ValueError('Over-capacity policy must be warn or block.')
        return normalized


class MoveResponse(BaseModel):
    appointment_id: int
    from_date: date
    to_date: date


class RescheduleResponse(BaseModel):
    source_date: date
    moves: list[MoveResponse]
    warnings: list[DayCapacityResponse]
    triage_writes: list[int]


class ReminderTemplate(BaseModel):
    subject: str
    body: str


class ReminderRequest(BaseModel):
    target_date: str = 'tomorrow'
    template: ReminderTemplate | None = None


class ReminderResponse(BaseModel):
    target_date: date
    sent: int
    skipped: int
    failed: int
    message: str


def resolve_target_date(value: str, today: date | None = None) -> date:
    today = today or date.today()
    normalized = (value or '').strip().lower()
    if normalized == 'today':
        return today
    if normalized == 'tomorrow':
        return today + timedelta(days=1)
    try:
        return date.fromisoformat(normalized)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Target date must be today, tomorrow, or YYYY-MM-DD.',
        ) from exc


def _day_response(day) -> DayCapacityResponse:
    return DayCapacityResponse(
        date=day.date,
        load=day.load,
        capacity=day.capacity,
        bookable=day.bookable,
        remaining=day.remaining,
        is_full=day.is_full,
    )


def _check_range(start: date, end: date) -> None:
    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='End date must not be before start date.',
        )
    if (end - start).days > MAX_CALENDAR_RANGE_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Date range can span at most {MAX_CALENDAR_RANGE_DAYS} days.',
        )


@router.get('/campuses/{campus_id}/calendar', response_model=list[DayCapacityResponse])
def get_capacity_calendar(
    campus_id: int,
    start: date = Query(...),
    end: date = Query(...),
    db: Session = Depends(get_db),
):
    _check_range(start, end)
    ensure_database_ready()

    try:
        window = CapacityWindow(SqlAlchemyRepository(db), campus_id, start, end)
        return [_day_response(day) for day in window.days()]
    except SQLAlchemyError as exc:
        raise database_unavailable(None, exc) from exc


@router.get('/campuses/{campus_id}/booking-setting', response_model=BookingSettingResponse)
def get_booking_setting(campus_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        setting = SqlAlchemyRepository(db).get_booking_setting(campus_id)
    except SQLAlchemyError as exc:
        raise database_unavailable(None, exc) from exc

    if setting is None:
        return BookingSettingResponse(
            campus_id=campus_id,
            max_bookings_per_day=config.DEFAULT_MAX_BOOKINGS_PER_DAY,
            is_default=True,
        )
    return BookingSettingResponse(campus_id=campus_id, max_bookings_per_day=setting.max_bookings_per_day)


@router.put('/campuses/{campus_id}/booking-setting', response_model=BookingSettingResponse)
def update_booking_setting(
    campus_id: int,
    data: BookingSettingRequest,
    staff_email: str = Query(...),
    db: Session = Depends(get_db),
):
    require_staff(staff_email, 'change booking limits')
    ensure_database_ready()
    repository = SqlAlchemyRepository(db)

    try:
        setting = repository.get_booking_setting(campus_id) or BookingSetting(campus_id=campus_id)
        setting.max_bookings_per_day = data.max_bookings_per_day
        repository.save(setting)
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db, exc) from exc

    return BookingSettingResponse(campus_id=campus_id, max_bookings_per_day=setting.max_bookings_per_day)


@router.get('/campuses/{campus_id}/config', response_model=ScheduleConfigResponse)
def get_schedule_config(campus_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        schedule_config = SqlAlchemyRepository(db).get_schedule_config(campus_id)
    except SQLAlchemyError as exc:
        raise database_unavailable(None, exc) from exc

    if schedule_config is None:
        return ScheduleConfigResponse(
            campus_id=campus_id,
            include_saturday=False,
            include_sunday=False,
            holiday_dates=[],
        )
    return ScheduleConfigResponse(
        campus_id=campus_id,
        include_saturday=schedule_config.include_saturday,
        include_sunday=schedule_config.include_sunday,
        holiday_dates=sorted(holiday_set(schedule_config)),
    )


@router.put('/campuses/{campus_id}/config', response_model=ScheduleConfigResponse)
def update_schedule_config(
    campus_id: int,
    data: ScheduleConfigRequest,
    staff_email: str = Query(...),
    db: Session = Depends(get_db),
):
    require_staff(staff_email, 'change the clinic schedule')
    ensure_database_ready()
    repository = SqlAlchemyRepository(db)
    holidays = sorted(set(data.holiday_dates))

    try:
        schedule_config = repository.get_schedule_config(campus_id) or ScheduleConfig(campus_id=campus_id)
        schedule_config.include_saturday = data.include_saturday
        schedule_config.include_sunday = data.include_sunday
        schedule_config.holiday_dates = [holiday.isoformat() for holiday in holidays]
        repository.save(schedule_config)
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db, exc) from exc

    return ScheduleConfigResponse(
        campus_id=campus_id,
        include_saturday=data.include_saturday,
        include_sunday=data.include_sunday,
        holiday_dates=holidays,
    )


@router.get('/campuses/{campus_id}/day-overrides', response_model=list[DayOverrideResponse])
def list_day_overrides(
    campus_id: int,
    start: date = Query(...),
    end: date = Query(...),
    db: Session = Depends(get_db),
):
    _check_range(start, end)
    ensure_database_ready()

    try:
        overrides = SqlAlchemyRepository(db).get_day_overrides(campus_id, start, end)
    except SQLAlchemyError as exc:
        raise database_unavailable(None, exc) from exc

    return [overrides[day] for day in sorted(overrides)]


@router.put('/campuses/{campus_id}/day-overrides/{override_date}', response_model=DayOverrideResponse)
def upsert_day_override(
    campus_id: int,
    override_date: date,
    data: DayOverrideRequest,
    staff_email: str = Query(...),
    db: Session = Depends(get_db),
):
    require_staff(staff_email, 'change day settings')
    ensure_database_ready()
    repository = SqlAlchemyRepository(db)

    try:
        override = repository.get_day_override(campus_id, override_date) or DayOverride(
            campus_id=campus_id,
            override_date=override_date,
        )
        override.max_bookings = data.max_bookings
        override.is_closed = data.is_closed
        override.notes = data.notes
        return repository.save(override)
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db, exc) from exc


@router.delete('/campuses/{campus_id}/day-overrides/{override_date}', status_code=status.HTTP_204_NO_CONTENT)
def delete_day_override(
    campus_id: int,
    override_date: date,
    staff_email: str = Query(...),
    db: Session = Depends(get_db),
):
    require_staff(staff_email, 'change day settings')
    ensure_database_ready()
    repository = SqlAlchemyRepository(db)

    try:
        override = repository.get_day_override(campus_id, override_date)
        if override is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Day override not found.',
            )
        repository.remove(override)
    except SQLAlchemyError as exc:
        raise database_unavailable(db, exc) from exc


@router.post('/campuses/{campus_id}/days/{day}/triage', response_model=TriageResponse)
def save_day_triage(
    campus_id: int,
    day: date,
    data: TriageRequest,
    staff_email: str = Query(...),
    db: Session = Depends(get_db),
):
    require_staff(staff_email, 'mark appointments as completed')
    ensure_database_ready()

    try:
        updated_ids = save_triage(SqlAlchemyRepository(db), campus_id, day, data.completed_ids)
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db, exc) from exc

    return TriageResponse(updated_ids=updated_ids)


@router.post('/campuses/{campus_id}/days/{day}/reschedule', response_model=RescheduleResponse)
def reschedule_appointments(
    campus_id: int,
    day: date,
    data: RescheduleRequest,
    staff_email: str = Query(...),
    db: Session = Depends(get_db),
):
    require_staff(staff_email, 'reschedule appointments')
    ensure_database_ready()

    try:
        result = reschedule_day(
            SqlAlchemyRepository(db),
            campus_id,
            day,
            data.completed_ids,
            mode=data.mode,
            targets=data.targets,
            policy=data.over_capacity_policy,
        )
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db, exc) from exc

    return RescheduleResponse(
        source_date=result.source_date,
        moves=[MoveResponse(**move.as_dict()) for move in result.moves],
        warnings=[_day_response(warning) for warning in result.warnings],
        triage_writes=result.triage_writes,
    )


@router.post('/campuses/{campus_id}/reminders', response_model=ReminderResponse)
def send_reminders(
    campus_id: int,
    data: ReminderRequest,
    staff_email: str = Query(...),
    db: Session = Depends(get_db),
):
    require_staff(staff_email, 'send reminders')
    target_date = resolve_target_date(data.target_date)
    ensure_database_ready()

    try:
        summary = send_bulk_reminders(
            SqlAlchemyRepository(db),
            OutboxEmailSender(db),
            target_date,
            campus_id,
            template_override=data.template.model_dump() if data.template else None,
        )
    except SQLAlchemyError as exc:
        raise database_unavailable(db, exc) from exc

    return ReminderResponse(
        target_date=target_date,
        sent=summary.sent,
        skipped=summary.skipped,
        failed=summary.failed,
        message=summary.message,
    )
