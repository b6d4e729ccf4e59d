from app import db
import uuid
from datetime import datetime, timezone

class Submission(db.Model):
    """Monthly timesheet submission for one contractor and work period"""
    __tablename__ = 'submissions'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    contractor_user_id = db.Column(db.String(36), db.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False, index=True)
    manager_id = db.Column(db.String(36), db.ForeignKey('profiles.id', ondelete='SET NULL'))
    project_id = db.Column(db.String(36), db.ForeignKey('projects.id', ondelete='SET NULL'))
    project_name = db.Column(db.String(255))

    # Period
    work_period = db.Column(db.String(7), nullable=False, index=True)  # YYYY-MM
    period_start = db.Column(db.Date)
    period_end = db.Column(db.Date)
    excluded_dates = db.Column(db.JSON, default=list)

    # Hours & Description
    regular_hours = db.Column(db.Numeric(8, 2), default=0)
    overtime_hours = db.Column(db.Numeric(8, 2), default=0)
    overtime_description = db.Column(db.Text)
    description = db.Column(db.Text)

    # Rates captured at submission time
    rate_type = db.Column(db.String(20), default='hourly')
    regular_rate = db.Column(db.Numeric(12, 2))
    overtime_rate = db.Column(db.Numeric(12, 2))
    total_amount = db.Column(db.Numeric(12, 2), default=0)

    # Workflow
    status = db.Column(db.String(40), nullable=False, default='pending_manager', index=True)
    rejection_reason = db.Column(db.Text)
    admin_note = db.Column(db.Text)
    manager_note = db.Column(db.Text)
    submitted_at = db.Column(db.DateTime(timezone=True))
    approved_at = db.Column(db.DateTime(timezone=True))
    paid_at = db.Column(db.DateTime(timezone=True))

    # Invoice
    invoice_number = db.Column(db.String(50), unique=True)
    invoice_status = db.Column(db.String(20))  # 'GENERATED', 'FAILED'
    invoice_path = db.Column(db.String(500))
    invoice_generated_at = db.Column(db.DateTime(timezone=True))
    invoice_error = db.Column(db.Text)

    # Timestamps
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # Relationships
    manager = db.relationship('Profile', foreign_keys=[manager_id])
    project = db.relationship('Project')
    payments = db.relationship('Payment', backref='submission', lazy='dynamic', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'contractor_user_id': self.contractor_user_id,
            'manager_id': self.manager_id,
            'project_id': self.project_id,
            'project_name': self.project_name,
            'work_period': self.work_period,
            'period_start': self.period_start.isoformat() if self.period_start else None,
            'period_end': self.period_end.isoformat() if self.period_end else None,
            'excluded_dates': list(self.excluded_dates or []),
            'regular_hours': float(self.regular_hours or 0),
            'overtime_hours': float(self.overtime_hours or 0),
            'overtime_description': self.overtime_description,
            'description': self.description,
            'rate_type': self.rate_type,
            'regular_rate': float(self.regular_rate) if self.regular_rate is not None else None,
            'overtime_rate': float(self.overtime_rate) if self.overtime_rate is not None else None,
            'total_amount': float(self.total_amount or 0),
            'status': self.status,
            'rejection_reason': self.rejection_reason,
            'admin_note': self.admin_note,
            'manager_note': self.manager_note,
            'submitted_at': self.submitted_at.isoformat() if self.submitted_at else None,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
            'invoice_number': self.invoice_number,
            'invoice_status': self.invoice_status,
            'invoice_generated_at': self.invoice_generated_at.isoformat() if self.invoice_generated_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<Submission {self.work_period} {self.status}>'


class Payment(db.Model):
    """Payment recorded when an admin marks a submission paid"""
    __tablename__ = 'payments'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    submission_id = db.Column(db.String(36), db.ForeignKey('submissions.id', ondelete='CASCADE'), nullable=False)
    admin_id = db.Column(db.String(36), db.ForeignKey('profiles.id', ondelete='SET NULL'))
    contractor_id = db.Column(db.String(36), db.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(20), default='completed')
    paid_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            'id': self.id,
            'submission_id': self.submission_id,
            'admin_id': self.admin_id,
            'contractor_id': self.contractor_id,
            'amount': float(self.amount),
            'status': self.status,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None
        }

    def __repr__(self):
        return f'<Payment {self.submission_id} {self.amount}>'
