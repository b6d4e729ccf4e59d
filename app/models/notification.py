from app import db
import uuid
from datetime import datetime, timezone

NOTIFICATION_EVENTS = (
    'submitted',
    'resubmitted',
    'manager_approved',
    'manager_rejected',
    'needs_clarification',
    'clarification_resubmitted',
    'paid',
)

# Email delivery lifecycle: PENDING -> SENDING -> SENT | FAILED, or SKIPPED
EMAIL_STATUS_PENDING = 'PENDING'
EMAIL_STATUS_SENDING = 'SENDING'
EMAIL_STATUS_SENT = 'SENT'
EMAIL_STATUS_FAILED = 'FAILED'
EMAIL_STATUS_SKIPPED = 'SKIPPED'

class Notification(db.Model):
    """In-app notification about a submission event, optionally mirrored by email"""
    __tablename__ = 'notifications'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.String(36), db.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False, index=True)
    submission_id = db.Column(db.String(36), db.ForeignKey('submissions.id', ondelete='CASCADE'))

    # Content
    event_type = db.Column(db.String(50), nullable=False)  # see NOTIFICATION_EVENTS
    title = db.Column(db.String(255))
    message = db.Column(db.Text)
    action_url = db.Column(db.String(500))

    is_read = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    # Email delivery
    email_enabled = db.Column(db.Boolean, nullable=False, default=True)
    email_status = db.Column(db.String(20), nullable=False, default=EMAIL_STATUS_PENDING, index=True)
    email_error = db.Column(db.Text)
    emailed_at = db.Column(db.DateTime(timezone=True))

    submission = db.relationship(
        'Submission',
        backref=db.backref('notifications', lazy='dynamic', passive_deletes=True)
    )

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'submission_id': self.submission_id,
            'event_type': self.event_type,
            'title': self.title,
            'message': self.message,
            'action_url': self.action_url,
            'is_read': self.is_read,
            'email_status': self.email_status,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<Notification {self.id}>'
