from app import db
import uuid
from datetime import datetime, timezone

CALENDAR_ENTRY_TYPES = ('holiday', 'time_off')
APPLIES_TO_TYPES = ('ALL', 'ROLES')

class CalendarEntry(db.Model):
    """Company holiday or time-off period"""
    __tablename__ = 'calendar_entries'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(20), nullable=False, default='holiday')
    description = db.Column(db.Text)
    start_date = db.Column(db.Date, nullable=False, index=True)
    end_date = db.Column(db.Date, nullable=False)

    # Audience
    countries = db.Column(db.JSON, default=list)
    applies_to_type = db.Column(db.String(10), nullable=False, default='ALL')
    applies_to_roles = db.Column(db.JSON, default=list)

    created_by = db.Column(db.String(36), db.ForeignKey('profiles.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    def applies_to_role(self, role):
        if self.applies_to_type == 'ALL':
            return True
        return role in (self.applies_to_roles or [])

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'description': self.description,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'countries': list(self.countries or []),
            'applies_to_type': self.applies_to_type,
            'applies_to_roles': list(self.applies_to_roles or []),
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<CalendarEntry {self.name} {self.start_date}>'
