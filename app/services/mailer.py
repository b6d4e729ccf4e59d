"""
Email delivery for notifications

Every notification row starts with email_status PENDING. Running
`flask send-notification-emails` picks up a batch, claims each row
(PENDING -> SENDING) so two senders never mail the same row, hands the
message to the configured backend and records SENT, FAILED or SKIPPED.

Backends (EMAIL_BACKEND):
- console: logs the message and keeps it in `outbox` (development, tests)
- smtp: sends through Flask-Mail using the MAIL_* settings
"""

import logging
from collections import Counter
from datetime import datetime, timezone
from smtplib import SMTPException

from flask_mail import Message
from markupsafe import escape

from app import db
from app.models.notification import (
    Notification, EMAIL_STATUS_FAILED, EMAIL_STATUS_PENDING, EMAIL_STATUS_SENDING,
    EMAIL_STATUS_SENT, EMAIL_STATUS_SKIPPED
)

logger = logging.getLogger(__name__)

EMAIL_SUBJECTS = {
    'submitted': 'New Timesheet Submitted',
    'resubmitted': 'Timesheet Resubmitted',
    'manager_approved': 'Timesheet Approved',
    'manager_rejected': 'Timesheet Rejected',
    'needs_clarification': 'Clarification Requested',
    'clarification_resubmitted': 'Clarification Provided',
    'paid': 'Payment Sent',
}


class ConsoleEmailBackend:
    name = 'console'

    def __init__(self):
        self.outbox = []

    def send(self, to, subject, text, html=None):
        self.outbox.append({'to': to, 'subject': subject, 'text': text, 'html': html})
        logger.info(f"[console email] to={to} subject={subject!r}\n{text}")


class SmtpEmailBackend:
    name = 'smtp'

    def __init__(self, mail, sender=None):
        self.mail = mail
        self.sender = sender

    def send(self, to, subject, text, html=None):
        self.mail.send(Message(subject=subject, recipients=[to], body=text, html=html, sender=self.sender))


class NotificationMailer:

    def __init__(self, backend, batch_size=10, product_name='Timesheet Portal'):
        self.backend = backend
        self.batch_size = batch_size
        self.product_name = product_name

    @classmethod
    def from_config(cls, config, mail):
        backend_name = (config.get('EMAIL_BACKEND') or 'console').lower()
        if backend_name == 'smtp':
            backend = SmtpEmailBackend(mail, sender=config.get('MAIL_DEFAULT_SENDER'))
        else:
            if backend_name != 'console':
                logger.warning(f"Unknown EMAIL_BACKEND {backend_name!r}, using console")
            backend = ConsoleEmailBackend()
        return cls(
            backend,
            batch_size=config.get('NOTIFICATION_EMAIL_BATCH_SIZE', 10),
            product_name=config.get('EMAIL_PRODUCT_NAME', 'Timesheet Portal')
        )

    def send_pending(self, limit=None):
        """Deliver one batch of pending emails, oldest first; returns counts per outcome"""
        pending = Notification.query.filter_by(
            email_enabled=True, email_status=EMAIL_STATUS_PENDING
        ).order_by(Notification.created_at).limit(limit or self.batch_size).all()

        outcomes = Counter()
        for notification in pending:
            outcome = self.deliver(notification)
            if outcome:
                outcomes[outcome] += 1

        if pending:
            logger.info(f"Notification emails via {self.backend.name}: {dict(outcomes)}")
        return {status: outcomes[status] for status in (EMAIL_STATUS_SENT, EMAIL_STATUS_FAILED, EMAIL_STATUS_SKIPPED)}

    def deliver(self, notification):
        """Send a single notification; None when another sender already claimed it"""
        recipient = notification.user
        if recipient is None or not recipient.email or not recipient.is_active:
            self._finish(notification, EMAIL_STATUS_SKIPPED, 'No active recipient with an email address')
            return EMAIL_STATUS_SKIPPED

        if not self._claim(notification.id):
            logger.info(f"Notification {notification.id} already claimed, skipping")
            return None

        subject, text, html = self.compose(notification, recipient)
        try:
            self.backend.send(recipient.email, subject, text, html)
        except (SMTPException, OSError) as e:
            logger.error(f"Email for notification {notification.id} to {recipient.email} failed: {e}")
            self._finish(notification, EMAIL_STATUS_FAILED, str(e)[:1000])
            return EMAIL_STATUS_FAILED

        self._finish(notification, EMAIL_STATUS_SENT)
        return EMAIL_STATUS_SENT

    def compose(self, notification, recipient):
        subject = f"[{self.product_name}] {EMAIL_SUBJECTS.get(notification.event_type, 'Notification')}"
        name = recipient.full_name or 'there'
        message = notification.message or notification.title or ''

        text = f"Hi {name},\n\n{message}\n\n"
        if notification.action_url:
            text += f"View details: {notification.action_url}\n\n"
        text += f"---\n{self.product_name}\nThis is an automated notification. Please do not reply to this email.\n"

        html = f"<p>Hi {escape(name)},</p>\n<p>{escape(message)}</p>\n"
        if notification.action_url:
            html += f'<p><a href="{escape(notification.action_url)}">View details</a></p>\n'
        html += '<p style="font-size: 12px; color: #6b7280;">This is an automated notification. Please do not reply to this email.</p>'
        return subject, text, html

    def _claim(self, notification_id):
        claimed = Notification.query.filter_by(
            id=notification_id, email_status=EMAIL_STATUS_PENDING
        ).update({'email_status': EMAIL_STATUS_SENDING}, synchronize_session=False)
        db.session.commit()
        return claimed == 1

    def _finish(self, notification, status, error=None):
        notification.email_status = status
        notification.email_error = error
        if status == EMAIL_STATUS_SENT:
            notification.emailed_at = datetime.now(timezone.utc)
        db.session.commit()
