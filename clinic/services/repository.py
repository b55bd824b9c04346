"""Storage adapter the scheduling core talks to.

The core only ever sees ``ClinicRepository``; ``SqlAlchemyRepository`` is the
implementation backed by the application's database session.
"""

from datetime import date
from typing import Any, Protocol

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from clinic.models.appointment import CAPACITY_STATUSES, Appointment
from clinic.models.booking_setting import BookingSetting
from clinic.models.day_override import DayOverride
from clinic.models.notification import EmailTemplate
from clinic.models.schedule_config import ScheduleConfig
from clinic.services.errors import ConflictError, NotFoundError


class ClinicRepository(Protocol):
    def get_appointments(
        self,
        date_range: tuple[date, date] | None = None,
        campus_id: int | None = None,
        status: str | None = None,
    ) -> list[Appointment]: ...

    def get_appointment(self, appointment_id: int) -> Appointment | None: ...

    def create_appointment(self, fields: dict[str, Any]) -> Appointment: ...

    def update_appointment(self, appointment_id: int, fields: dict[str, Any]) -> Appointment: ...

    def delete_appointment(self, appointment_id: int) -> None: ...

    def count_bookings(self, campus_id: int, start: date, end: date) -> dict[date, int]: ...

    def get_booking_setting(self, campus_id: int) -> BookingSetting | None: ...

    def get_day_override(self, campus_id: int, day: date) -> DayOverride | None: ...

    def get_day_overrides(self, campus_id: int, start: date, end: date) -> dict[date, DayOverride]: ...

    def get_schedule_config(self, campus_id: int) -> ScheduleConfig | None: ...

    def get_email_template(self, campus_id: int, template_type: str) -> EmailTemplate | None: ...


class SqlAlchemyRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_appointments(
        self,
        date_range: tuple[date, date] | None = None,
        campus_id: int | None = None,
        status: str | None = None,
    ) -> list[Appointment]:
        query = self.db.query(Appointment)

        if campus_id is not None:
            query = query.filter(Appointment.campus_id == campus_id)
        if status is not None:
            query = query.filter(Appointment.status == status)
        if date_range is not None:
            start, end = date_range
            query = query.filter(
                Appointment.appointment_date >= start,
                Appointment.appointment_date <= end,
            )

        return query.order_by(
            Appointment.appointment_date.asc(),
            Appointment.start_time.asc(),
            Appointment.id.asc(),
        ).all()

    def get_appointment(self, appointment_id: int) -> Appointment | None:
        return self.db.query(Appointment).filter(Appointment.id == appointment_id).first()

    def create_appointment(self, fields: dict[str, Any]) -> Appointment:
        appointment = Appointment(**fields)
        try:
            self.db.add(appointment)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError('Appointment conflicts with an existing record.') from exc
        except SQLAlchemyError:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        return appointment

    def update_appointment(self, appointment_id: int, fields: dict[str, Any]) -> Appointment:
        appointment = self.get_appointment(appointment_id)
        if appointment is None:
            raise NotFoundError(f'Appointment {appointment_id} not found.')

        for name, value in fields.items():
            setattr(appointment, name, value)

        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        return appointment

    def delete_appointment(self, appointment_id: int) -> None:
        appointment = self.get_appointment(appointment_id)
        if appointment is None:
            raise NotFoundError(f'Appointment {appointment_id} not found.')

        try:
            self.db.delete(appointment)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def count_bookings(self, campus_id: int, start: date, end: date) -> dict[date, int]:
        rows = self.db.query(Appointment.appointment_date, func.count(Appointment.id)).filter(
            Appointment.campus_id == campus_id,
            Appointment.status.in_(CAPACITY_STATUSES),
            Appointment.appointment_date >= start,
            Appointment.appointment_date <= end,
        ).group_by(Appointment.appointment_date).all()

        return {booked_date: count for booked_date, count in rows}

    def get_booking_setting(self, campus_id: int) -> BookingSetting | None:
        return self.db.query(BookingSetting).filter(BookingSetting.campus_id == campus_id).first()

    def get_day_override(self, campus_id: int, day: date) -> DayOverride | None:
        return self.db.query(DayOverride).filter(
            DayOverride.campus_id == campus_id,
            DayOverride.override_date == day,
        ).first()

    def get_day_overrides(self, campus_id: int, start: date, end: date) -> dict[date, DayOverride]:
        overrides = self.db.query(DayOverride).filter(
            DayOverride.campus_id == campus_id,
            DayOverride.override_date >= start,
            DayOverride.override_date <= end,
        ).all()

        return {override.override_date: override for override in overrides}

    def get_schedule_config(self, campus_id: int) -> ScheduleConfig | None:
        return self.db.query(ScheduleConfig).filter(ScheduleConfig.campus_id == campus_id).first()

    def get_email_template(self, campus_id: int, template_type: str) -> EmailTemplate | None:
        return self.db.query(EmailTemplate).filter(
            EmailTemplate.campus_id == campus_id,
            EmailTemplate.template_type == template_type,
        ).first()

    def save(self, record: Any) -> Any:
        """Insert or update a configuration row and return it refreshed."""
        try:
            self.db.add(record)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError('Record conflicts with an existing row.') from exc
        except SQLAlchemyError:
            self.db.rollback()
            raise

        self.db.refresh(record)
        return record

    def remove(self, record: Any) -> None:
        try:
            self.db.delete(record)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
