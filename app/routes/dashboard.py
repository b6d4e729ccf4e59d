from collections import Counter
from datetime import datetime, timezone
from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import func
from app import db
from app.models.contractor import Contractor
from app.models.submission import Payment
from app.models.user import Profile
from app.utils.auth import require_role
from app.utils.workflow import SubmissionStatus

bp = Blueprint('dashboard', __name__)

RECENT_SUBMISSIONS = 5

@bp.route('/admin', methods=['GET'])
@require_role('admin')
def get_admin_dashboard():
    """
    Admin metrics
    ---
    tags:
      - Dashboard
    security:
      - Bearer: []
    responses:
      200:
        description: Contractor count, queue sizes and this month's payouts
    """
    repository = current_app.extensions['submission_repository']
    submissions = repository.list_submissions(request.current_user)
    counts = Counter(s['status'] for s in submissions)

    month_start = datetime.now(timezone.utc).replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    paid_this_month = db.session.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
        Payment.paid_at >= month_start
    ).scalar()

    active_contractors = Profile.query.filter_by(role='contractor', is_active=True).count()

    return jsonify({
        'total_active_contractors': active_contractors,
        'pending_manager_count': counts[SubmissionStatus.PENDING_MANAGER.value],
        'awaiting_payment_count': counts[SubmissionStatus.AWAITING_ADMIN_PAYMENT.value],
        'total_paid_this_month': float(paid_this_month or 0)
    }), 200

@bp.route('/manager', methods=['GET'])
@require_role('manager')
def get_manager_dashboard():
    """Team size, status breakdown and the approval queue for the current manager"""
    repository = current_app.extensions['submission_repository']
    submissions = repository.list_submissions(request.current_user)
    counts = Counter(s['status'] for s in submissions)

    team_size = Contractor.query.filter_by(manager_id=request.current_user['id']).count()

    return jsonify({
        'team_size': team_size,
        'status_counts': {status.value: counts[status.value] for status in SubmissionStatus},
        'pending_approvals': [s for s in submissions if s['status'] == SubmissionStatus.PENDING_MANAGER.value],
        'recent_submissions': submissions[:RECENT_SUBMISSIONS]
    }), 200
