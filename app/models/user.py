from app import db
import uuid
from datetime import datetime, timezone

USER_ROLES = ('unassigned', 'contractor', 'manager', 'admin')

class Profile(db.Model):
    """Portal user profile; the id matches the auth provider's subject claim"""
    __tablename__ = 'profiles'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Profile Info
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(200), nullable=False)
    role = db.Column(db.Enum(*USER_ROLES, name='user_role_enum'), nullable=False, default='unassigned')

    # System Access
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    invited_at = db.Column(db.DateTime(timezone=True))
    activated_at = db.Column(db.DateTime(timezone=True))

    # Timestamps
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # Relationships
    contract = db.relationship('Contractor', foreign_keys='Contractor.contractor_id', backref='profile', uselist=False, cascade='all, delete-orphan')
    contractor_profile = db.relationship('ContractorProfile', backref='user', uselist=False, cascade='all, delete-orphan')
    submissions = db.relationship('Submission', foreign_keys='Submission.contractor_user_id', backref='contractor', lazy='dynamic', cascade='all, delete-orphan')
    notifications = db.relationship('Notification', backref='user', lazy='dynamic', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'role': self.role,
            'is_active': self.is_active,
            'invited_at': self.invited_at.isoformat() if self.invited_at else None,
            'activated_at': self.activated_at.isoformat() if self.activated_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<Profile {self.email}>'
