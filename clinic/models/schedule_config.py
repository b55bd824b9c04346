"""Schedule configuration model definitions."""

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer
from clinic.database import Base


class ScheduleConfig(Base):
    """Weekend toggles and holiday list for a campus."""
    __tablename__ = "schedule_config"

    id = Column(Integer, primary_key=True)
    campus_id = Column(Integer, ForeignKey("campuses.id"), nullable=False, unique=True)
    include_saturday = Column(Boolean, nullable=False, default=False)
    include_sunday = Column(Boolean, nullable=False, default=False)
    # ISO date strings
    holiday_dates = Column(JSON, nullable=False, default=list)
