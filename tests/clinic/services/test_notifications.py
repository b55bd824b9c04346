from datetime import date

from sqlalchemy.exc import OperationalError

from clinic.models.notification import EmailTemplate, PendingEmail
from clinic.services.notifications import (
    OutboxEmailSender,
    build_message,
    format_appointment_date,
    send_booking_confirmation,
    send_bulk_reminders,
)

TUESDAY = date(2026, 1, 6)


class RecordingSender:
    def __init__(self, fail_for: set[str] | None = None):
        self.fail_for = fail_for or set()
        self.sent: list[tuple[str, str, str]] = []

    def send(self, to: str, subject: str, body: str) -> None:
        if to in self.fail_for:
            raise RuntimeError('mailbox unavailable')
        self.sent.append((to, subject, body))


def test_format_appointment_date_is_long_form() -> None:
    assert format_appointment_date(TUESDAY) == 'Tuesday, January 6, 2026'


def test_bulk_reminders_count_sent_skipped_and_failed(repository, make_appointment) -> None:
    make_appointment(TUESDAY, patient_email='ok@example.edu')
    make_appointment(TUESDAY, patient_email='broken@example.edu')
    make_appointment(TUESDAY, patient_email=None)
    make_appointment(TUESDAY, patient_email='completed@example.edu', status='completed')
    sender = RecordingSender(fail_for={'broken@example.edu'})

    summary = send_bulk_reminders(repository, sender, TUESDAY, 1)

    assert (summary.sent, summary.skipped, summary.failed) == (1, 1, 1)
    assert [to for to, _, _ in sender.sent] == ['ok@example.edu']


def test_bulk_reminders_with_no_appointments(repository) -> None:
    summary = send_bulk_reminders(repository, RecordingSender(), TUESDAY, 1)

    assert (summary.sent, summary.skipped, summary.failed) == (0, 0, 0)
    assert summary.message == 'No scheduled appointments found'


def test_bulk_reminders_prefer_override_then_campus_template(clinic_db, repository, make_appointment) -> None:
    make_appointment(TUESDAY, patient_name='Ana')
    clinic_db.add(EmailTemplate(campus_id=1, template_type='reminder', subject='See you {{date}}', body='Hi {{name}}'))
    clinic_db.commit()

    campus_sender = RecordingSender()
    send_bulk_reminders(repository, campus_sender, TUESDAY, 1)
    override_sender = RecordingSender()
    send_bulk_reminders(repository, override_sender, TUESDAY, 1, {'subject': '{{type}} for {{name}}', 'body': 'x'})

    assert campus_sender.sent[0][1] == 'See you Tuesday, January 6, 2026'
    assert 'Hi Ana' in campus_sender.sent[0][2]
    assert override_sender.sent[0][1] == 'Consultation for Ana'


def test_default_confirmation_message_mentions_patient(make_appointment) -> None:
    appointment = make_appointment(TUESDAY, patient_name='<Ana>')

    subject, body = build_message(appointment, 'confirmation')

    assert subject.startswith('Appointment Booking Confirmation')
    assert '&lt;Ana&gt;' in body


def test_outbox_sender_queues_pending_email(clinic_db, repository, make_appointment) -> None:
    appointment = make_appointment(TUESDAY, patient_email='ana@example.edu')

    assert send_booking_confirmation(repository, OutboxEmailSender(clinic_db), appointment) is True

    queued = clinic_db.query(PendingEmail).all()
    assert [(row.to_email, row.status) for row in queued] == [('ana@example.edu', 'pending')]


def test_confirmation_failure_is_reported_not_raised(repository, make_appointment) -> None:
    appointment = make_appointment(TUESDAY, patient_email='ana@example.edu')

    assert send_booking_confirmation(repository, RecordingSender(fail_for={'ana@example.edu'}), appointment) is False


def test_confirmation_template_lookup_failure_is_reported_not_raised(repository, make_appointment, monkeypatch) -> None:
    appointment = make_appointment(TUESDAY, patient_email='ana@example.edu')
    sender = RecordingSender()

    def broken_template_lookup(campus_id, template_type):
        raise OperationalError('SELECT email_templates', {}, Exception('connection reset'))

    monkeypatch.setattr(repository, 'get_email_template', broken_template_lookup)

    assert send_booking_confirmation(repository, sender, appointment) is False
    assert sender.sent == []
