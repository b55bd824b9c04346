import os
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from clinic.database import Base  # noqa: E402
from clinic.models import appointment, booking_setting, campus, day_override, notification, schedule_config  # noqa: E402,F401
from clinic.models.appointment import Appointment  # noqa: E402
from clinic.models.booking_setting import BookingSetting  # noqa: E402
from clinic.models.campus import Campus  # noqa: E402
from clinic.services.repository import SqlAlchemyRepository  # noqa: E402

CAMPUS_ID = 1


@pytest.fixture
def clinic_db():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    db.add(Campus(id=CAMPUS_ID, name='Main Campus'))
    db.commit()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def repository(clinic_db):
    return SqlAlchemyRepository(clinic_db)


@pytest.fixture
def set_daily_limit(clinic_db):
    def _set(limit: int, campus_id: int = CAMPUS_ID) -> BookingSetting:
        setting = BookingSetting(campus_id=campus_id, max_bookings_per_day=limit)
        clinic_db.add(setting)
        clinic_db.commit()
        return setting

    return _set


@pytest.fixture
def make_appointment(clinic_db):
    def _make(
        appointment_date: date,
        status: str = 'scheduled',
        campus_id: int = CAMPUS_ID,
        start_time: str = '08:00',
        patient_email: str | None = 'student@example.edu',
        patient_name: str | None = 'Test Student',
    ) -> Appointment:
        end_times = {'08:00': '10:00', '10:00': '12:00', '13:00': '15:00', '15:00': '17:00'}
        record = Appointment(
            campus_id=campus_id,
            appointment_date=appointment_date,
            start_time=start_time,
            end_time=end_times.get(start_time, '17:00'),
            appointment_type='consultation',
            status=status,
            patient_name=patient_name,
            patient_email=patient_email,
            patient_phone='09170000000',
        )
        clinic_db.add(record)
        clinic_db.commit()
        clinic_db.refresh(record)
        return record

    return _make
