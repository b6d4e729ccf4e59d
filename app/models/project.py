from app import db
import uuid
from datetime import datetime, timezone

class Project(db.Model):
    """Client project contractors log their hours against"""
    __tablename__ = 'projects'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = db.Column(db.String(255), nullable=False)
    client = db.Column(db.String(255))
    description = db.Column(db.Text)
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    manager_id = db.Column(db.String(36), db.ForeignKey('profiles.id', ondelete='SET NULL'))
    is_enabled = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    manager = db.relationship('Profile', foreign_keys=[manager_id])
    assignments = db.relationship('ProjectAssignment', backref='project', lazy='dynamic', cascade='all, delete-orphan')

    def to_dict(self, include_assignments=False):
        data = {
            'id': self.id,
            'name': self.name,
            'client': self.client,
            'description': self.description,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'manager_id': self.manager_id,
            'manager_name': self.manager.full_name if self.manager else None,
            'is_enabled': self.is_enabled,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }
        if include_assignments:
            data['contractors'] = [a.to_dict() for a in self.assignments]
        return data

    def __repr__(self):
        return f'<Project {self.name}>'


class ProjectAssignment(db.Model):
    __tablename__ = 'project_assignments'
    __table_args__ = (
        db.UniqueConstraint('project_id', 'contractor_id', name='uq_project_assignment'),
    )

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = db.Column(db.String(36), db.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    contractor_id = db.Column(db.String(36), db.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False)
    assigned_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    contractor = db.relationship('Profile')

    def to_dict(self):
        return {
            'id': self.id,
            'project_id': self.project_id,
            'contractor_id': self.contractor_id,
            'contractor_name': self.contractor.full_name if self.contractor else None,
            'contractor_email': self.contractor.email if self.contractor else None,
            'assigned_at': self.assigned_at.isoformat() if self.assigned_at else None
        }

    def __repr__(self):
        return f'<ProjectAssignment {self.project_id} {self.contractor_id}>'
