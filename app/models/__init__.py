"""
SQLAlchemy Models Package

This package contains all database models organized by domain:
- Core Models: Profile, Contractor, ContractorProfile
- Timesheets: Submission, Payment
- Projects: Project, ProjectAssignment
- Calendar: CalendarEntry
- Communication: Notification
- Access: UserInvitation
"""

# Core Models
from app.models.user import Profile
from app.models.contractor import Contractor, ContractorProfile

# Timesheet Models
from app.models.submission import Submission, Payment

# Project Models
from app.models.project import Project, ProjectAssignment

# Calendar Models
from app.models.calendar import CalendarEntry

# Communication Models
from app.models.notification import Notification

# Access Models
from app.models.invitation import UserInvitation

__all__ = [
    # Core Models
    'Profile',
    'Contractor',
    'ContractorProfile',
    # Timesheets
    'Submission',
    'Payment',
    # Projects
    'Project',
    'ProjectAssignment',
    # Calendar
    'CalendarEntry',
    # Communication
    'Notification',
    # Access
    'UserInvitation',
]
