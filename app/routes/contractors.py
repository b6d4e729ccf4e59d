from decimal import Decimal, InvalidOperation
from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import or_
from app import db
from app.errors import NotFoundError, ValidationError
from app.models.contractor import Contractor, ContractorProfile
from app.models.user import Profile
from app.utils.auth import require_role
from app.utils.calculations import PAY_TYPE_FIXED, PAY_TYPE_HOURLY
from app.utils.helpers import get_json_body, get_pagination_args, normalize_keys, parse_date, validate_date_range

bp = Blueprint('contractors', __name__)

CONTRACT_TEXT_FIELDS = ('position', 'department', 'default_project_name')
RATE_FIELDS = ('hourly_rate', 'overtime_rate', 'fixed_rate')

def _invalidate_submissions():
    current_app.extensions['submission_repository'].cache.invalidate()

def _get_contractor_profile(contractor_id):
    profile = db.session.get(Profile, contractor_id)
    if profile is None or profile.role != 'contractor':
        raise NotFoundError('Contractor not found')
    return profile

def _get_or_create_contract(profile):
    if profile.contract is None:
        profile.contract = Contractor(contractor_id=profile.id)
    return profile.contract

def _parse_rate(value, field):
    if value in (None, ''):
        return None
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a number')
    if not rate.is_finite() or rate < 0:
        raise ValidationError(f'{field} must be zero or greater')
    return rate

def _directory_entry(profile):
    data = profile.to_dict()
    data['contract'] = profile.contract.to_dict() if profile.contract else None
    return data

@bp.route('/', methods=['GET'])
@require_role('admin')
def get_contractors():
    """
    Employee directory
    ---
    tags:
      - Contractors
    parameters:
      - in: query
        name: search
        schema:
          type: string
      - in: query
        name: page
        schema:
          type: integer
      - in: query
        name: per_page
        schema:
          type: integer
    security:
      - Bearer: []
    responses:
      200:
        description: Paginated contractors with their contract terms
    """
    page, per_page = get_pagination_args()
    search = (request.args.get('search') or '').strip()

    query = Profile.query.filter_by(role='contractor')
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(Profile.full_name.ilike(pattern), Profile.email.ilike(pattern)))

    pagination = query.order_by(Profile.full_name).paginate(page=page, per_page=per_page, error_out=False)

    return jsonify({
        'contractors': [_directory_entry(p) for p in pagination.items],
        'total': pagination.total,
        'page': page,
        'per_page': per_page,
        'pages': pagination.pages
    }), 200

@bp.route('/<contractor_id>/contract', methods=['GET'])
@require_role('admin')
def get_contract(contractor_id):
    """Get a contractor's contract terms"""
    profile = _get_contractor_profile(contractor_id)
    contract = profile.contract
    return jsonify(contract.to_dict() if contract else {'contractor_id': profile.id}), 200

@bp.route('/<contractor_id>/contract', methods=['PUT'])
@require_role('admin')
def update_contract(contractor_id):
    """Update a contractor's dates, rates and position"""
    profile = _get_contractor_profile(contractor_id)
    data = normalize_keys(get_json_body())

    try:
        contract = _get_or_create_contract(profile)

        if 'contract_start' in data:
            contract.contract_start = parse_date(data['contract_start'], 'contract_start')
        if 'contract_end' in data:
            contract.contract_end = parse_date(data['contract_end'], 'contract_end')
        validate_date_range(contract.contract_start, contract.contract_end, 'contract_start', 'contract_end')

        for field in RATE_FIELDS:
            if field in data:
                setattr(contract, field, _parse_rate(data[field], field))

        if 'rate_type' in data:
            rate_type = (data['rate_type'] or '').strip().lower()
            if rate_type not in (PAY_TYPE_HOURLY, PAY_TYPE_FIXED):
                raise ValidationError('rate_type must be hourly or fixed')
            contract.rate_type = rate_type

        for field in CONTRACT_TEXT_FIELDS:
            if field in data:
                setattr(contract, field, (data[field] or '').strip() or None)

        if 'is_active' in data:
            contract.is_active = bool(data['is_active'])

        db.session.commit()
        current_app.logger.info(f"Contract updated for {profile.email}")
        return jsonify(contract.to_dict()), 200
    except ValidationError:
        db.session.rollback()
        raise
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error updating contract for {contractor_id}: {str(e)}')
        return jsonify({'error': 'Failed to update contract', 'message': 'An unexpected error occurred'}), 500

@bp.route('/<contractor_id>/manager', methods=['PUT'])
@require_role('admin')
def assign_manager(contractor_id):
    """Assign or clear a contractor's reporting manager"""
    profile = _get_contractor_profile(contractor_id)
    manager_id = normalize_keys(get_json_body()).get('manager_id')

    if manager_id:
        manager = db.session.get(Profile, manager_id)
        if manager is None or manager.role != 'manager':
            raise ValidationError('Selected user is not a manager')

    contract = _get_or_create_contract(profile)
    contract.manager_id = manager_id or None
    db.session.commit()
    _invalidate_submissions()
    current_app.logger.info(f"Manager for {profile.email} set to {manager_id}")
    return jsonify(contract.to_dict()), 200

@bp.route('/me/profile', methods=['GET'])
@require_role('contractor')
def get_my_profile():
    """Personal and banking details used on invoices"""
    details = db.session.get(ContractorProfile, request.current_user['id'])
    if details is None:
        return jsonify({'user_id': request.current_user['id']}), 200
    return jsonify(details.to_dict()), 200

@bp.route('/me/profile', methods=['PUT'])
@require_role('contractor')
def update_my_profile():
    """Update personal and banking details"""
    data = normalize_keys(get_json_body())
    user_id = request.current_user['id']

    try:
        details = db.session.get(ContractorProfile, user_id)
        if details is None:
            details = ContractorProfile(user_id=user_id)
            db.session.add(details)

        for field in ContractorProfile.EDITABLE_FIELDS:
            if field in data:
                value = data[field]
                setattr(details, field, value.strip() if isinstance(value, str) and value.strip() else None)

        db.session.commit()
        return jsonify(details.to_dict()), 200
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error updating contractor profile {user_id}: {str(e)}')
        return jsonify({'error': 'Failed to update profile', 'message': 'An unexpected error occurred'}), 500

@bp.route('/team', methods=['GET'])
@require_role('manager')
def get_team():
    """Contractors reporting to the current manager"""
    contracts = Contractor.query.filter_by(manager_id=request.current_user['id']).all()
    return jsonify({'team': [_directory_entry(c.profile) for c in contracts]}), 200

@bp.route('/available', methods=['GET'])
@require_role('manager', 'admin')
def get_available_contractors():
    """Contractors without a reporting manager"""
    profiles = Profile.query.outerjoin(
        Contractor, Contractor.contractor_id == Profile.id
    ).filter(
        Profile.role == 'contractor',
        Profile.is_active.is_(True),
        Contractor.manager_id.is_(None)
    ).order_by(Profile.full_name).all()
    return jsonify({'contractors': [_directory_entry(p) for p in profiles]}), 200

@bp.route('/team/<contractor_id>', methods=['POST'])
@require_role('manager')
def add_to_team(contractor_id):
    """Add an unassigned contractor to the current manager's team"""
    profile = _get_contractor_profile(contractor_id)
    contract = _get_or_create_contract(profile)
    if contract.manager_id and contract.manager_id != request.current_user['id']:
        raise ValidationError('Contractor already reports to another manager')

    contract.manager_id = request.current_user['id']
    db.session.commit()
    _invalidate_submissions()
    return jsonify(_directory_entry(profile)), 200

@bp.route('/team/<contractor_id>', methods=['DELETE'])
@require_role('manager')
def remove_from_team(contractor_id):
    """Remove a contractor from the current manager's team"""
    profile = _get_contractor_profile(contractor_id)
    if profile.contract is None or profile.contract.manager_id != request.current_user['id']:
        raise NotFoundError('Contractor is not on your team')

    profile.contract.manager_id = None
    db.session.commit()
    _invalidate_submissions()
    return jsonify({'message': 'Contractor removed from team'}), 200
