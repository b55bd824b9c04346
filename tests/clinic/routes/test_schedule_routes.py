from datetime import date
from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from clinic.models.appointment import Appointment
from clinic.models.notification import PendingEmail
from clinic.routes.schedule_routes import (
    BookingSettingRequest,
    DayOverrideRequest,
    ReminderRequest,
    RescheduleRequest,
    ScheduleConfigRequest,
    TriageRequest,
    delete_day_override,
    get_booking_setting,
    get_capacity_calendar,
    get_schedule_config,
    list_day_overrides,
    reschedule_appointments,
    resolve_target_date,
    save_day_triage,
    send_reminders,
    update_booking_setting,
    update_schedule_config,
    upsert_day_override,
)
from clinic.services.repository import SqlAlchemyRepository

# 2030-01-07 is a Monday, safely after today for the allocator's start day.
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)
WEDNESDAY = date(2030, 1, 9)
SATURDAY = date(2030, 1, 12)
STAFF_EMAIL = 'nurse@clinic.edu'


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch):
    monkeypatch.setattr('clinic.routes.schedule_routes.ensure_database_ready', lambda: None)


def _dates_by_id(clinic_db) -> dict[int, date]:
    clinic_db.expire_all()
    return {row.id: row.appointment_date for row in clinic_db.query(Appointment).all()}


def test_resolve_target_date_accepts_keywords_and_iso_dates() -> None:
    assert resolve_target_date('today', today=MONDAY) == MONDAY
    assert resolve_target_date(' Tomorrow ', today=MONDAY) == TUESDAY
    assert resolve_target_date('2030-01-09', today=MONDAY) == WEDNESDAY

    with pytest.raises(HTTPException) as exception_info:
        resolve_target_date('next week', today=MONDAY)
    assert exception_info.value.status_code == 400


def test_reschedule_request_validates_mode_and_policy() -> None:
    request = RescheduleRequest(mode=' MANUAL ', over_capacity_policy='Block', targets={'3': '2030-01-08'})

    assert request.mode == 'manual'
    assert request.over_capacity_policy == 'block'
    assert request.targets == {3: TUESDAY}

    with pytest.raises(ValidationError):
        RescheduleRequest(mode='random')
    with pytest.raises(ValidationError):
        RescheduleRequest(over_capacity_policy='ignore')


def test_booking_setting_falls_back_to_default_then_persists(clinic_db) -> None:
    default = get_booking_setting(1, db=clinic_db)

    assert (default.max_bookings_per_day, default.is_default) == (50, True)

    update_booking_setting(1, BookingSettingRequest(max_bookings_per_day=12), staff_email=STAFF_EMAIL, db=clinic_db)
    stored = get_booking_setting(1, db=clinic_db)

    assert (stored.max_bookings_per_day, stored.is_default) == (12, False)


def test_booking_setting_rejects_non_positive_limit() -> None:
    with pytest.raises(ValidationError):
        BookingSettingRequest(max_bookings_per_day=0)


def test_update_booking_setting_requires_staff(clinic_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        update_booking_setting(
            1,
            BookingSettingRequest(max_bookings_per_day=12),
            staff_email='student@example.edu',
            db=clinic_db,
        )

    assert exception_info.value.status_code == 403


def test_schedule_config_round_trips_sorted_unique_holidays(clinic_db) -> None:
    request = ScheduleConfigRequest(include_saturday=True, holiday_dates=[WEDNESDAY, TUESDAY, WEDNESDAY])

    update_schedule_config(1, request, staff_email=STAFF_EMAIL, db=clinic_db)
    stored = get_schedule_config(1, db=clinic_db)

    assert stored.include_saturday is True
    assert stored.include_sunday is False
    assert stored.holiday_dates == [TUESDAY, WEDNESDAY]


def test_schedule_config_reads_holidays_stored_as_dates_or_strings(clinic_db, monkeypatch) -> None:
    stored = SimpleNamespace(include_saturday=False, include_sunday=True, holiday_dates=[WEDNESDAY, '2030-01-08'])
    monkeypatch.setattr(SqlAlchemyRepository, 'get_schedule_config', lambda self, campus_id: stored)

    response = get_schedule_config(1, db=clinic_db)

    assert response.include_sunday is True
    assert response.holiday_dates == [TUESDAY, WEDNESDAY]


def test_capacity_calendar_reflects_config_and_overrides(clinic_db, set_daily_limit, make_appointment) -> None:
    set_daily_limit(2)
    make_appointment(MONDAY)
    make_appointment(MONDAY)
    upsert_day_override(1, TUESDAY, DayOverrideRequest(max_bookings=5), staff_email=STAFF_EMAIL, db=clinic_db)
    upsert_day_override(
        1,
        WEDNESDAY,
        DayOverrideRequest(max_bookings=5, is_closed=True, notes=' Foundation Day '),
        staff_email=STAFF_EMAIL,
        db=clinic_db,
    )

    days = {day.date: day for day in get_capacity_calendar(1, start=MONDAY, end=SATURDAY, db=clinic_db)}

    assert len(days) == 6
    assert (days[MONDAY].load, days[MONDAY].capacity, days[MONDAY].is_full) == (2, 2, True)
    assert days[TUESDAY].capacity == 5
    assert days[WEDNESDAY].bookable is False
    assert days[SATURDAY].bookable is False


def test_capacity_calendar_rejects_reversed_range(clinic_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_capacity_calendar(1, start=TUESDAY, end=MONDAY, db=clinic_db)

    assert exception_info.value.status_code == 400


def test_day_override_upsert_list_and_delete(clinic_db) -> None:
    created = upsert_day_override(
        1,
        TUESDAY,
        DayOverrideRequest(max_bookings=8, notes='  Flu shots  '),
        staff_email=STAFF_EMAIL,
        db=clinic_db,
    )
    created_id, created_notes = created.id, created.notes

    updated = upsert_day_override(1, TUESDAY, DayOverrideRequest(max_bookings=4), staff_email=STAFF_EMAIL, db=clinic_db)

    assert created_notes == 'Flu shots'
    assert (updated.id, updated.max_bookings, updated.notes) == (created_id, 4, '')
    assert [row.max_bookings for row in list_day_overrides(1, start=MONDAY, end=WEDNESDAY, db=clinic_db)] == [4]

    delete_day_override(1, TUESDAY, staff_email=STAFF_EMAIL, db=clinic_db)

    assert list_day_overrides(1, start=MONDAY, end=WEDNESDAY, db=clinic_db) == []
    with pytest.raises(HTTPException) as exception_info:
        delete_day_override(1, TUESDAY, staff_email=STAFF_EMAIL, db=clinic_db)
    assert exception_info.value.status_code == 404


def test_save_day_triage_marks_completed(clinic_db, make_appointment) -> None:
    first = make_appointment(MONDAY)
    second = make_appointment(MONDAY)

    response = save_day_triage(
        1,
        MONDAY,
        TriageRequest(completed_ids=[first.id]),
        staff_email=STAFF_EMAIL,
        db=clinic_db,
    )

    assert response.updated_ids == [first.id]
    clinic_db.expire_all()
    assert clinic_db.get(Appointment, second.id).status == 'scheduled'


def test_save_day_triage_rejects_ids_from_another_day(clinic_db, make_appointment) -> None:
    stray = make_appointment(TUESDAY)

    with pytest.raises(HTTPException) as exception_info:
        save_day_triage(1, MONDAY, TriageRequest(completed_ids=[stray.id]), staff_email=STAFF_EMAIL, db=clinic_db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['appointment_ids'] == [stray.id]


def test_auto_reschedule_spreads_unfinished_appointments(clinic_db, set_daily_limit, make_appointment) -> None:
    set_daily_limit(2)
    first = make_appointment(MONDAY)
    second = make_appointment(MONDAY)
    finished = make_appointment(MONDAY)
    make_appointment(TUESDAY)

    response = reschedule_appointments(
        1,
        MONDAY,
        RescheduleRequest(completed_ids=[finished.id]),
        staff_email=STAFF_EMAIL,
        db=clinic_db,
    )

    assert response.triage_writes == [finished.id]
    assert [(move.appointment_id, move.to_date) for move in response.moves] == [
        (first.id, TUESDAY),
        (second.id, WEDNESDAY),
    ]
    dates = _dates_by_id(clinic_db)
    assert dates[finished.id] == MONDAY
    assert (dates[first.id], dates[second.id]) == (TUESDAY, WEDNESDAY)


def test_manual_reschedule_blocks_over_capacity_target(clinic_db, set_daily_limit, make_appointment) -> None:
    set_daily_limit(1)
    appointment = make_appointment(MONDAY)
    make_appointment(TUESDAY)

    with pytest.raises(HTTPException) as exception_info:
        reschedule_appointments(
            1,
            MONDAY,
            RescheduleRequest(mode='manual', targets={appointment.id: TUESDAY}, over_capacity_policy='block'),
            staff_email=STAFF_EMAIL,
            db=clinic_db,
        )

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail['error'] == 'capacity_exceeded'
    assert _dates_by_id(clinic_db)[appointment.id] == MONDAY


def test_manual_reschedule_warns_and_moves_by_default(clinic_db, set_daily_limit, make_appointment) -> None:
    set_daily_limit(1)
    appointment = make_appointment(MONDAY)
    make_appointment(TUESDAY)

    response = reschedule_appointments(
        1,
        MONDAY,
        RescheduleRequest(mode='manual', targets={appointment.id: TUESDAY}),
        staff_email=STAFF_EMAIL,
        db=clinic_db,
    )

    assert [warning.date for warning in response.warnings] == [TUESDAY]
    assert _dates_by_id(clinic_db)[appointment.id] == TUESDAY


def test_send_reminders_queues_outbox_rows(clinic_db, make_appointment) -> None:
    make_appointment(TUESDAY, patient_email='ana@example.edu')
    make_appointment(TUESDAY, patient_email='')

    response = send_reminders(
        1,
        ReminderRequest(target_date=TUESDAY.isoformat()),
        staff_email=STAFF_EMAIL,
        db=clinic_db,
    )

    assert (response.target_date, response.sent, response.skipped, response.failed) == (TUESDAY, 1, 1, 0)
    assert [row.to_email for row in clinic_db.query(PendingEmail).all()] == ['ana@example.edu']
