from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import func, or_
from app import db
from app.errors import ConflictError, ValidationError
from app.models.contractor import Contractor
from app.models.invitation import UserInvitation
from app.models.user import Profile, USER_ROLES
from app.utils.auth import require_auth, require_role
from app.utils.helpers import get_json_body, get_pagination_args, parse_date, validate_date_range

bp = Blueprint('users', __name__)

def _email_taken(email):
    email = email.lower()
    if Profile.query.filter(func.lower(Profile.email) == email).first():
        return True
    return UserInvitation.query.filter(func.lower(UserInvitation.email) == email).first() is not None

@bp.route('/', methods=['POST'])
@require_role('admin')
def pre_register_user():
    """
    Pre-register a user before their first sign-in
    ---
    tags:
      - Users
    security:
      - Bearer: []
    requestBody:
      required: true
      content:
        application/json:
          schema:
            type: object
            required:
              - firstName
              - lastName
              - email
              - role
            properties:
              firstName:
                type: string
              lastName:
                type: string
              email:
                type: string
              role:
                type: string
                enum: [unassigned, contractor, manager, admin]
              contractStartDate:
                type: string
                format: date
              contractEndDate:
                type: string
                format: date
    responses:
      201:
        description: Invitation created
      400:
        description: Validation failed
      409:
        description: Email already registered
    """
    data = get_json_body()

    first_name = (data.get('firstName') or '').strip()
    last_name = (data.get('lastName') or '').strip()
    email = (data.get('email') or '').strip().lower()
    role = (data.get('role') or '').strip().lower()

    missing = [name for name, value in (
        ('firstName', first_name), ('lastName', last_name), ('email', email), ('role', role)
    ) if not value]
    if missing:
        raise ValidationError(f'Missing required fields: {", ".join(missing)}')

    domain = current_app.config['CORPORATE_EMAIL_DOMAIN'].lower()
    if '@' not in email or not email.endswith(f'@{domain}'):
        raise ValidationError(f'Email must be a @{domain} address')
    if role not in USER_ROLES:
        raise ValidationError(f'Role must be one of: {", ".join(USER_ROLES)}')

    contract_start = contract_end = None
    if role == 'contractor':
        contract_start = parse_date(data.get('contractStartDate'), 'contractStartDate', required=True)
        contract_end = parse_date(data.get('contractEndDate'), 'contractEndDate', required=True)
        validate_date_range(contract_start, contract_end, 'contractStartDate', 'contractEndDate')

    if _email_taken(email):
        raise ConflictError('A user with this email already exists')

    try:
        invitation = UserInvitation(
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=role,
            contract_start=contract_start,
            contract_end=contract_end,
            created_by=request.current_user['id']
        )
        db.session.add(invitation)
        db.session.commit()
        current_app.logger.info(f"Pre-registered {email} as {role}")
        return jsonify({'message': 'User pre-registered successfully', 'invitation': invitation.to_dict()}), 201
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error pre-registering {email}: {str(e)}')
        return jsonify({'error': 'Failed to pre-register user', 'message': 'An unexpected error occurred'}), 500

@bp.route('/', methods=['GET'])
@require_role('admin')
def get_users():
    """Get all users"""
    page, per_page = get_pagination_args()
    role = request.args.get('role')
    search = (request.args.get('search') or '').strip()

    query = Profile.query
    if role:
        query = query.filter_by(role=role)
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(Profile.full_name.ilike(pattern), Profile.email.ilike(pattern)))

    pagination = query.order_by(Profile.full_name).paginate(page=page, per_page=per_page, error_out=False)

    return jsonify({
        'users': [user.to_dict() for user in pagination.items],
        'total': pagination.total,
        'page': page,
        'per_page': per_page,
        'pages': pagination.pages
    }), 200

@bp.route('/me', methods=['GET'])
@require_auth
def get_me():
    """Get current authenticated user"""
    profile = request.current_user['profile']
    data = profile.to_dict()
    if profile.contract is not None:
        data['contract'] = profile.contract.to_dict()
    return jsonify(data), 200

@bp.route('/<user_id>/role', methods=['PUT'])
@require_role('admin')
def update_user_role(user_id):
    """Change a user's role (admin only)"""
    user = Profile.query.get_or_404(user_id)
    role = (get_json_body().get('role') or '').strip().lower()

    if role not in USER_ROLES:
        raise ValidationError(f'Role must be one of: {", ".join(USER_ROLES)}')
    if user.id == request.current_user['id']:
        raise ValidationError('You cannot change your own role')

    try:
        previous = user.role
        user.role = role
        if role == 'contractor' and user.contract is None:
            db.session.add(Contractor(contractor_id=user.id))
        db.session.commit()
        current_app.extensions['submission_repository'].cache.invalidate()
        current_app.logger.info(f"Role for {user.email} changed from {previous} to {role}")
        return jsonify(user.to_dict()), 200
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error updating role for {user_id}: {str(e)}')
        return jsonify({'error': 'Failed to update role', 'message': 'An unexpected error occurred'}), 500

@bp.route('/<user_id>/enabled', methods=['PUT'])
@require_role('admin')
def set_user_enabled(user_id):
    """Enable or disable a user's access (admin only)"""
    user = Profile.query.get_or_404(user_id)
    enabled = get_json_body().get('enabled')

    if not isinstance(enabled, bool):
        raise ValidationError('enabled must be true or false')
    if user.id == request.current_user['id'] and not enabled:
        raise ValidationError('You cannot disable your own account')

    user.is_active = enabled
    db.session.commit()
    current_app.logger.info(f"User {user.email} {'enabled' if enabled else 'disabled'}")
    return jsonify(user.to_dict()), 200

@bp.route('/invitations', methods=['GET'])
@require_role('admin')
def get_invitations():
    """List pre-registrations"""
    pending_only = request.args.get('pending_only', 'false').lower() == 'true'
    query = UserInvitation.query
    if pending_only:
        query = query.filter(UserInvitation.used_at.is_(None))
    invitations = query.order_by(UserInvitation.created_at.desc()).all()
    return jsonify({'invitations': [i.to_dict() for i in invitations]}), 200

@bp.route('/invitations/<invitation_id>', methods=['DELETE'])
@require_role('admin')
def delete_invitation(invitation_id):
    """Delete an invitation that has not been used yet"""
    invitation = UserInvitation.query.get_or_404(invitation_id)
    if invitation.used_at is not None:
        raise ConflictError('This invitation has already been used')

    try:
        db.session.delete(invitation)
        db.session.commit()
        return jsonify({'message': 'Invitation deleted successfully'}), 200
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error deleting invitation {invitation_id}: {str(e)}')
        return jsonify({'error': 'Failed to delete invitation', 'message': 'An unexpected error occurred'}), 500
