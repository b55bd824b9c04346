"""Patient emails: booking confirmations and bulk day reminders.

Delivery is not done here. ``OutboxEmailSender`` queues rows in
``pending_emails`` for whatever worker owns the transport. Send failures are
counted and logged; they never undo the booking or reschedule that
triggered them.
"""

import html
import logging
from dataclasses import dataclass
from datetime import date
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic.core import config
from clinic.models.appointment import STATUS_SCHEDULED, Appointment
from clinic.models.notification import TEMPLATE_CONFIRMATION, TEMPLATE_REMINDER, PendingEmail
from clinic.services.admission import EMAIL_PATTERN
from clinic.services.repository import ClinicRepository

logger = logging.getLogger(__name__)

APPOINTMENT_TYPE_LABELS = {
    'physical_exam': 'Physical Examination',
    'consultation': 'Consultation',
    'dental': 'Dental',
}
DEFAULT_PATIENT_NAME = 'Valued Patient'


class EmailSender(Protocol):
    def send(self, to: str, subject: str, body: str) -> None: ...


class OutboxEmailSender:
    def __init__(self, db: Session):
        self.db = db

    def send(self, to: str, subject: str, body: str) -> None:
        try:
            self.db.add(PendingEmail(to_email=to, subject=subject, body=body, status='pending'))
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise


@dataclass
class ReminderSummary:
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    message: str = ''


def format_appointment_date(day: date) -> str:
    return f'{day.strftime("%A, %B")} {day.day}, {day.year}'


def render_placeholders(text: str, name: str, date_label: str, type_label: str) -> str:
    return (
        text.replace('{{name}}', name)
        .replace('{{date}}', date_label)
        .replace('{{type}}', type_label)
    )


def _wrap_body(inner_html: str) -> str:
    clinic_name = html.escape(config.CLINIC_DISPLAY_NAME)
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
        f'<h1 style="color: #7B1113; font-size: 22px;">{clinic_name}</h1>'
        f'{inner_html}'
        '<p style="color: #6b7280; font-size: 12px;">This is an automated message. Please do not reply.</p>'
        '</div>'
    )


def _default_message(template_type: str, name: str, date_label: str, type_label: str) -> tuple[str, str]:
    clinic_name = config.CLINIC_DISPLAY_NAME
    details = (
        f'<p><strong>Date:</strong> {html.escape(date_label)}</p>'
        f'<p><strong>Type:</strong> {html.escape(type_label)}</p>'
        '<p><strong>Service:</strong> First come, first served</p>'
    )

    if template_type == TEMPLATE_CONFIRMATION:
        subject = f'Appointment Booking Confirmation - {clinic_name}'
        inner = (
            f'<p>Dear <strong>{html.escape(name)}</strong>,</p>'
            '<p>Your appointment has been successfully booked!</p>'
            f'{details}'
            '<p>Please arrive on time. If you need to cancel, please do so at least 24 hours in advance.</p>'
        )
    else:
        subject = f'Appointment Reminder - {date_label} | {clinic_name}'
        inner = (
            f'<p>Hello <strong>{html.escape(name)}</strong>,</p>'
            '<p>This is a friendly reminder about your upcoming appointment.</p>'
            f'{details}'
            '<p>Please arrive 10-15 minutes early and bring a valid ID. '
            'If you need to reschedule, please contact the clinic as soon as possible.</p>'
        )

    return subject, _wrap_body(inner)


def build_message(
    appointment: Appointment,
    template_type: str,
    template: dict | None = None,
) -> tuple[str, str]:
    name = appointment.patient_name or DEFAULT_PATIENT_NAME
    date_label = format_appointment_date(appointment.appointment_date)
    type_label = APPOINTMENT_TYPE_LABELS.get(appointment.appointment_type, 'Consultation')

    if template and template.get('subject') and template.get('body'):
        subject = render_placeholders(template['subject'], name, date_label, type_label)
        body = render_placeholders(html.escape(template['body']), html.escape(name), date_label, type_label)
        return subject, _wrap_body(f'<p>{body.replace(chr(10), "<br>")}</p>')

    return _default_message(template_type, name, date_label, type_label)


def _campus_template(repository: ClinicRepository, campus_id: int, template_type: str) -> dict | None:
    stored = repository.get_email_template(campus_id, template_type)
    if stored is None:
        return None
    return {'subject': stored.subject, 'body': stored.body}


def has_deliverable_email(appointment: Appointment) -> bool:
    return bool(appointment.patient_email and EMAIL_PATTERN.match(appointment.patient_email.strip()))


def send_bulk_reminders(
    repository: ClinicRepository,
    sender: EmailSender,
    target_date: date,
    campus_id: int,
    template_override: dict | None = None,
) -> ReminderSummary:
    appointments = repository.get_appointments(
        date_range=(target_date, target_date),
        campus_id=campus_id,
        status=STATUS_SCHEDULED,
    )
    if not appointments:
        return ReminderSummary(message='No scheduled appointments found')

    template = template_override or _campus_template(repository, campus_id, TEMPLATE_REMINDER)
    summary = ReminderSummary()

    for appointment in appointments:
        if not has_deliverable_email(appointment):
            summary.skipped += 1
            continue

        subject, body = build_message(appointment, TEMPLATE_REMINDER, template)
        try:
            sender.send(appointment.patient_email.strip(), subject, body)
        except Exception:
            logger.exception('Reminder for appointment %s could not be queued', appointment.id)
            summary.failed += 1
            continue

        summary.sent += 1

    summary.message = f'Sent {summary.sent} reminder(s)'
    logger.info(
        'Reminders for campus=%s date=%s: sent=%d skipped=%d failed=%d',
        campus_id,
        target_date,
        summary.sent,
        summary.skipped,
        summary.failed,
    )
    return summary


def send_booking_confirmation(
    repository: ClinicRepository,
    sender: EmailSender,
    appointment: Appointment,
) -> bool:
    if not has_deliverable_email(appointment):
        return False

    try:
        template = _campus_template(repository, appointment.campus_id, TEMPLATE_CONFIRMATION)
        subject, body = build_message(appointment, TEMPLATE_CONFIRMATION, template)
        sender.send(appointment.patient_email.strip(), subject, body)
    except Exception:
        logger.exception('Confirmation for appointment %s could not be queued', appointment.id)
        return False

    return True
