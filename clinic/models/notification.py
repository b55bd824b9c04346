"""Email template and outbox model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from clinic.database import Base

TEMPLATE_REMINDER = "reminder"
TEMPLATE_CONFIRMATION = "confirmation"


class EmailTemplate(Base):
    """Campus-specific subject/body text for patient emails."""
    __tablename__ = "email_templates"
    __table_args__ = (UniqueConstraint("campus_id", "template_type", name="uq_email_templates_campus_type"),)

    id = Column(Integer, primary_key=True)
    campus_id = Column(Integer, ForeignKey("campuses.id"), nullable=False)
    template_type = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    body = Column(String, nullable=False)


class PendingEmail(Base):
    """Outgoing email waiting for the delivery worker."""
    __tablename__ = "pending_emails"

    id = Column(Integer, primary_key=True)
    to_email = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    body = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, default=datetime.utcnow)
