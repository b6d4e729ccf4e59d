from datetime import date, timedelta
from flask import Blueprint, request, jsonify, current_app
from app import db
from app.errors import ValidationError
from app.models.calendar import CalendarEntry, CALENDAR_ENTRY_TYPES, APPLIES_TO_TYPES
from app.models.user import Profile, USER_ROLES
from app.utils.auth import require_auth, require_role
from app.utils.helpers import get_json_body, normalize_keys, parse_date, parse_work_period, validate_date_range

bp = Blueprint('calendar', __name__)

DEFAULT_UPCOMING_DAYS = 90

def _apply_entry_fields(entry, data):
    """Validate a create/update payload onto an entry"""
    if 'name' in data or entry.name is None:
        name = (data.get('name') or '').strip()
        if not name:
            raise ValidationError('Name is required')
        entry.name = name

    if 'type' in data or entry.type is None:
        entry_type = (data.get('type') or 'holiday').strip().lower()
        if entry_type not in CALENDAR_ENTRY_TYPES:
            raise ValidationError(f'type must be one of: {", ".join(CALENDAR_ENTRY_TYPES)}')
        entry.type = entry_type

    if 'description' in data:
        entry.description = (data['description'] or '').strip() or None

    if 'start_date' in data or entry.start_date is None:
        entry.start_date = parse_date(data.get('start_date'), 'start_date', required=True)
    if 'end_date' in data or entry.end_date is None:
        entry.end_date = parse_date(data.get('end_date') or entry.start_date, 'end_date', required=True)
    validate_date_range(entry.start_date, entry.end_date)

    if 'countries' in data:
        countries = data['countries'] or []
        if not isinstance(countries, list) or not all(isinstance(c, str) for c in countries):
            raise ValidationError('countries must be a list of country names')
        entry.countries = [c.strip() for c in countries if c.strip()]

    if 'applies_to_type' in data or entry.applies_to_type is None:
        applies_to_type = (data.get('applies_to_type') or 'ALL').strip().upper()
        if applies_to_type not in APPLIES_TO_TYPES:
            raise ValidationError('applies_to_type must be ALL or ROLES')
        entry.applies_to_type = applies_to_type

    if 'applies_to_roles' in data:
        roles = data['applies_to_roles'] or []
        if not isinstance(roles, list):
            raise ValidationError('applies_to_roles must be a list')
        entry.applies_to_roles = [str(r).strip().lower() for r in roles]

    if entry.applies_to_type == 'ROLES':
        roles = entry.applies_to_roles or []
        if not roles:
            raise ValidationError('applies_to_roles is required when applies_to_type is ROLES')
        unknown = [r for r in roles if r not in USER_ROLES]
        if unknown:
            raise ValidationError(f'Unknown roles: {", ".join(unknown)}')
    else:
        entry.applies_to_roles = []

def _visible_to(entries, user):
    if user['role'] == 'admin':
        return entries
    return [e for e in entries if e.applies_to_role(user['role'])]

@bp.route('/', methods=['GET'])
@require_auth
def get_entries():
    """
    Calendar entries overlapping a month or date range
    ---
    tags:
      - Calendar
    parameters:
      - in: query
        name: month
        schema:
          type: string
          example: "2026-02"
      - in: query
        name: start
        schema:
          type: string
          format: date
      - in: query
        name: end
        schema:
          type: string
          format: date
    security:
      - Bearer: []
    responses:
      200:
        description: Entries ordered by start date
    """
    if request.args.get('start') or request.args.get('end'):
        start = parse_date(request.args.get('start'), 'start', required=True)
        end = parse_date(request.args.get('end'), 'end', required=True)
        validate_date_range(start, end, 'start', 'end')
    else:
        month = request.args.get('month') or date.today().strftime('%Y-%m')
        _, start, end = parse_work_period(month)

    entries = CalendarEntry.query.filter(
        CalendarEntry.start_date <= end,
        CalendarEntry.end_date >= start
    ).order_by(CalendarEntry.start_date).all()

    return jsonify({'entries': [e.to_dict() for e in _visible_to(entries, request.current_user)]}), 200

@bp.route('/upcoming', methods=['GET'])
@require_auth
def get_upcoming_entries():
    """Entries starting or still running within the next N days"""
    days = request.args.get('days', DEFAULT_UPCOMING_DAYS, type=int)
    if days < 0:
        raise ValidationError('days must be zero or greater')
    today = date.today()

    entries = CalendarEntry.query.filter(
        CalendarEntry.end_date >= today,
        CalendarEntry.start_date <= today + timedelta(days=days)
    ).order_by(CalendarEntry.start_date).all()

    return jsonify({'entries': [e.to_dict() for e in _visible_to(entries, request.current_user)]}), 200

@bp.route('/', methods=['POST'])
@require_role('admin')
def create_entry():
    """Create a holiday or time-off entry"""
    data = normalize_keys(get_json_body())
    entry = CalendarEntry(created_by=request.current_user['id'])
    _apply_entry_fields(entry, data)

    try:
        db.session.add(entry)
        db.session.commit()
        current_app.logger.info(f"Calendar entry created: {entry.name} ({entry.start_date} - {entry.end_date})")
        return jsonify(entry.to_dict()), 201
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error creating calendar entry: {str(e)}')
        return jsonify({'error': 'Failed to create calendar entry', 'message': 'An unexpected error occurred'}), 500

@bp.route('/<entry_id>', methods=['PUT'])
@require_role('admin')
def update_entry(entry_id):
    """Update a calendar entry"""
    entry = CalendarEntry.query.get_or_404(entry_id)
    data = normalize_keys(get_json_body())

    try:
        _apply_entry_fields(entry, data)
        db.session.commit()
        return jsonify(entry.to_dict()), 200
    except ValidationError:
        db.session.rollback()
        raise
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error updating calendar entry {entry_id}: {str(e)}')
        return jsonify({'error': 'Failed to update calendar entry', 'message': 'An unexpected error occurred'}), 500

@bp.route('/<entry_id>', methods=['DELETE'])
@require_role('admin')
def delete_entry(entry_id):
    """Delete a calendar entry"""
    entry = CalendarEntry.query.get_or_404(entry_id)
    db.session.delete(entry)
    db.session.commit()
    return jsonify({'message': 'Calendar entry deleted successfully'}), 200

@bp.route('/<entry_id>/affected-count', methods=['GET'])
@require_role('admin')
def get_affected_count(entry_id):
    """Number of active users an entry applies to"""
    entry = CalendarEntry.query.get_or_404(entry_id)
    query = Profile.query.filter(Profile.is_active.is_(True))
    if entry.applies_to_type == 'ROLES':
        query = query.filter(Profile.role.in_(entry.applies_to_roles or []))
    return jsonify({'entry_id': entry.id, 'affected_count': query.count()}), 200
