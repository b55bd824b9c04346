"""Campus model definitions."""

from sqlalchemy import Column, Integer, String
from clinic.database import Base


class Campus(Base):
    """Represents a physical clinic location."""
    __tablename__ = "campuses"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    address = Column(String)
