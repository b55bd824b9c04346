"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String
from clinic.database import Base

STATUS_SCHEDULED = "scheduled"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_NO_SHOW = "no_show"
APPOINTMENT_STATUSES = (STATUS_SCHEDULED, STATUS_COMPLETED, STATUS_CANCELLED, STATUS_NO_SHOW)

# A day that already happened keeps its completed visits on the books.
CAPACITY_STATUSES = (STATUS_SCHEDULED, STATUS_COMPLETED)

APPOINTMENT_TYPES = ("physical_exam", "consultation", "dental")


class Appointment(Base):
    """Represents a booked clinic visit on a given date."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, nullable=True)
    campus_id = Column(Integer, ForeignKey("campuses.id"), nullable=False, index=True)
    appointment_date = Column(Date, nullable=False, index=True)
    start_time = Column(String, nullable=False)
    end_time = Column(String, nullable=False)
    appointment_type = Column(String, nullable=False)
    status = Column(String, nullable=False, default=STATUS_SCHEDULED)
    notes = Column(String)
    patient_name = Column(String)
    patient_email = Column(String)
    patient_phone = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
