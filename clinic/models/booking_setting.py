"""Booking setting model definitions."""

from sqlalchemy import Column, ForeignKey, Integer
from clinic.database import Base


class BookingSetting(Base):
    """Campus-wide daily booking cap."""
    __tablename__ = "booking_settings"

    id = Column(Integer, primary_key=True)
    campus_id = Column(Integer, ForeignKey("campuses.id"), nullable=False, unique=True)
    max_bookings_per_day = Column(Integer, nullable=False, default=50)
