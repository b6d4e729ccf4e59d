"""Helper utility functions"""
import calendar
import re
from datetime import date, datetime
from flask import current_app, request
from app import db
from app.errors import ValidationError

WORK_PERIOD_PATTERN = re.compile(r'^(\d{4})-(\d{2})$')

def camel_to_snake(name):
    """Convert camelCase to snake_case"""
    # Insert an underscore before any uppercase letter that follows a lowercase letter or digit
    s1 = re.sub('(.)([A-Z][a-z]+)', r'\1_\2', name)
    # Insert an underscore before any uppercase letter that follows a lowercase letter
    return re.sub('([a-z0-9])([A-Z])', r'\1_\2', s1).lower()

def normalize_keys(data):
    """
    Convert a request payload from frontend camelCase to snake_case.

    Frontend format: { "workPeriod": "2026-02", "overtimeHours": 10 }
    Service format:  { "work_period": "2026-02", "overtime_hours": 10 }
    """
    if not isinstance(data, dict):
        return {}
    return {camel_to_snake(key): value for key, value in data.items()}

def get_json_body():
    """Request JSON as a dict; a missing or malformed body is an empty payload"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}

def parse_date(value, field, required=False):
    """Parse an ISO YYYY-MM-DD date from a payload field"""
    if value in (None, ''):
        if required:
            raise ValidationError(f'{field} is required')
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f'{field} must be a date in YYYY-MM-DD format')

def parse_work_period(value):
    """Validate a YYYY-MM work period and return (period, first_day, last_day)"""
    match = WORK_PERIOD_PATTERN.match((value or '').strip()) if isinstance(value, str) else None
    if not match:
        raise ValidationError('Work period must be in YYYY-MM format')
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12 or year < 1900:
        raise ValidationError('Work period must be a valid month')
    last_day = calendar.monthrange(year, month)[1]
    return f'{year:04d}-{month:02d}', date(year, month, 1), date(year, month, last_day)

def validate_date_range(start, end, start_field='start_date', end_field='end_date'):
    if start and end and start > end:
        raise ValidationError(f'{start_field} must be on or before {end_field}')

def get_pagination_args(default_per_page=None):
    page = request.args.get('page', 1, type=int)
    per_page = request.args.get('per_page', default_per_page or current_app.config.get('POSTS_PER_PAGE', 20), type=int)
    return max(page, 1), min(max(per_page, 1), 100)

def create_notification(user_id, event_type, title, message, submission_id=None, action_url=None):
    """Queue an in-app notification (and its email); the caller commits the session"""
    from app.models.notification import Notification

    if not user_id:
        return None

    base_url = (current_app.config.get('PORTAL_BASE_URL') or '').rstrip('/')
    if action_url is None and submission_id and base_url:
        action_url = f'{base_url}/submissions/{submission_id}'

    notification = Notification(
        user_id=user_id,
        submission_id=submission_id,
        event_type=event_type,
        title=title,
        message=message,
        action_url=action_url,
        email_enabled=bool(current_app.config.get('NOTIFICATION_EMAILS_ENABLED', True))
    )
    db.session.add(notification)
    return notification
