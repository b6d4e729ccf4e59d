from app import db
import uuid
from datetime import datetime, timezone

class UserInvitation(db.Model):
    """Pre-registration created by an admin before the user first signs in"""
    __tablename__ = 'user_invitations'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='unassigned')
    contract_start = db.Column(db.Date)
    contract_end = db.Column(db.Date)

    created_by = db.Column(db.String(36), db.ForeignKey('profiles.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    used_at = db.Column(db.DateTime(timezone=True))

    @property
    def full_name(self):
        return f'{self.first_name} {self.last_name}'.strip()

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'role': self.role,
            'contract_start': self.contract_start.isoformat() if self.contract_start else None,
            'contract_end': self.contract_end.isoformat() if self.contract_end else None,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'used_at': self.used_at.isoformat() if self.used_at else None
        }

    def __repr__(self):
        return f'<UserInvitation {self.email}>'
