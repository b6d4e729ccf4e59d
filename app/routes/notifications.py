from flask import Blueprint, request, jsonify
from app import db
from app.errors import NotFoundError, ValidationError
from app.models.notification import Notification, NOTIFICATION_EVENTS
from app.utils.auth import require_auth
from app.utils.helpers import get_pagination_args

bp = Blueprint('notifications', __name__)

def _inbox(unread_only=False):
    """Notifications addressed to the signed-in user"""
    query = Notification.query.filter_by(user_id=request.current_user['id'])
    if unread_only:
        query = query.filter_by(is_read=False)
    return query

@bp.route('/', methods=['GET'])
@require_auth
def get_notifications():
    """
    Inbox for the current user, newest first
    ---
    tags:
      - Notifications
    parameters:
      - in: query
        name: unread_only
        schema:
          type: boolean
      - in: query
        name: event_type
        schema:
          type: string
          enum: [submitted, resubmitted, manager_approved, manager_rejected, needs_clarification, clarification_resubmitted, paid]
      - in: query
        name: submission_id
        schema:
          type: string
    security:
      - Bearer: []
    responses:
      200:
        description: Paginated notifications
    """
    page, per_page = get_pagination_args(default_per_page=50)
    query = _inbox(unread_only=request.args.get('unread_only', 'false').lower() == 'true')

    event_type = request.args.get('event_type')
    if event_type:
        if event_type not in NOTIFICATION_EVENTS:
            raise ValidationError(f'event_type must be one of: {", ".join(NOTIFICATION_EVENTS)}')
        query = query.filter_by(event_type=event_type)
    if request.args.get('submission_id'):
        query = query.filter_by(submission_id=request.args['submission_id'])

    pagination = query.order_by(Notification.created_at.desc()).paginate(
        page=page, per_page=per_page, error_out=False
    )

    return jsonify({
        'notifications': [n.to_dict() for n in pagination.items],
        'total': pagination.total,
        'page': page,
        'per_page': per_page,
        'pages': pagination.pages
    }), 200

@bp.route('/<notification_id>/read', methods=['PUT'])
@require_auth
def mark_notification_read(notification_id):
    notification = _inbox().filter_by(id=notification_id).first()
    # Someone else's notification looks the same as a missing one
    if notification is None:
        raise NotFoundError('Notification not found')

    notification.is_read = True
    db.session.commit()
    return jsonify(notification.to_dict()), 200

@bp.route('/read-all', methods=['PUT'])
@require_auth
def mark_all_read():
    updated = _inbox(unread_only=True).update({'is_read': True}, synchronize_session=False)
    db.session.commit()
    return jsonify({'message': 'All notifications marked as read', 'updated': updated}), 200

@bp.route('/unread-count', methods=['GET'])
@require_auth
def get_unread_count():
    """Badge count for the notification bell"""
    return jsonify({'unread_count': _inbox(unread_only=True).count()}), 200
