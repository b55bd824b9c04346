"""Day override model definitions."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, String, UniqueConstraint
from clinic.database import Base


class DayOverride(Base):
    """Per-date exception to a campus's capacity or open/closed status."""
    __tablename__ = "day_overrides"
    __table_args__ = (UniqueConstraint("campus_id", "override_date", name="uq_day_overrides_campus_date"),)

    id = Column(Integer, primary_key=True)
    campus_id = Column(Integer, ForeignKey("campuses.id"), nullable=False, index=True)
    override_date = Column(Date, nullable=False)
    max_bookings = Column(Integer, nullable=False, default=50)
    is_closed = Column(Boolean, nullable=False, default=False)
    notes = Column(String, default="")
