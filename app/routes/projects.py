from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import or_
from app import db
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models.project import Project, ProjectAssignment
from app.models.user import Profile
from app.utils.auth import require_role
from app.utils.helpers import get_json_body, get_pagination_args, normalize_keys, parse_date, validate_date_range

bp = Blueprint('projects', __name__)

SORT_COLUMNS = {
    'name': Project.name,
    'client': Project.client,
    'start_date': Project.start_date,
    'created_at': Project.created_at,
}

def _apply_project_fields(project, data):
    if 'name' in data:
        name = (data['name'] or '').strip()
        if not name:
            raise ValidationError('Project name is required')
        project.name = name
    for field in ('client', 'description'):
        if field in data:
            setattr(project, field, (data[field] or '').strip() or None)
    if 'start_date' in data:
        project.start_date = parse_date(data['start_date'], 'start_date')
    if 'end_date' in data:
        project.end_date = parse_date(data['end_date'], 'end_date')
    validate_date_range(project.start_date, project.end_date)

@bp.route('/', methods=['GET'])
@require_role('admin')
def get_projects():
    """
    List projects
    ---
    tags:
      - Projects
    parameters:
      - in: query
        name: search
        schema:
          type: string
      - in: query
        name: enabled
        schema:
          type: boolean
      - in: query
        name: sort
        schema:
          type: string
          enum: [name, client, start_date, created_at]
      - in: query
        name: order
        schema:
          type: string
          enum: [asc, desc]
    security:
      - Bearer: []
    responses:
      200:
        description: Paginated projects
    """
    page, per_page = get_pagination_args()
    search = (request.args.get('search') or '').strip()
    enabled = request.args.get('enabled')
    sort_column = SORT_COLUMNS.get(request.args.get('sort', 'name'), Project.name)
    descending = request.args.get('order', 'asc').lower() == 'desc'

    query = Project.query
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(Project.name.ilike(pattern), Project.client.ilike(pattern)))
    if enabled is not None:
        query = query.filter(Project.is_enabled.is_(enabled.lower() == 'true'))

    query = query.order_by(sort_column.desc() if descending else sort_column.asc())
    pagination = query.paginate(page=page, per_page=per_page, error_out=False)

    return jsonify({
        'projects': [p.to_dict() for p in pagination.items],
        'total': pagination.total,
        'page': page,
        'per_page': per_page,
        'pages': pagination.pages
    }), 200

@bp.route('/mine', methods=['GET'])
@require_role('contractor')
def get_my_projects():
    """Enabled projects the current contractor is assigned to"""
    projects = Project.query.join(ProjectAssignment).filter(
        ProjectAssignment.contractor_id == request.current_user['id'],
        Project.is_enabled.is_(True)
    ).order_by(Project.name).all()
    return jsonify({'projects': [p.to_dict() for p in projects]}), 200

@bp.route('/<project_id>', methods=['GET'])
@require_role('admin')
def get_project(project_id):
    """Get project by ID"""
    project = Project.query.get_or_404(project_id)
    return jsonify(project.to_dict(include_assignments=True)), 200

@bp.route('/', methods=['POST'])
@require_role('admin')
def create_project():
    """Create project"""
    data = normalize_keys(get_json_body())
    if not (data.get('name') or '').strip():
        raise ValidationError('Project name is required')

    project = Project(is_enabled=bool(data.get('is_enabled', True)))
    _apply_project_fields(project, data)

    try:
        db.session.add(project)
        db.session.commit()
        current_app.logger.info(f"Project created: {project.name}")
        return jsonify(project.to_dict()), 201
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error creating project: {str(e)}')
        return jsonify({'error': 'Failed to create project', 'message': 'An unexpected error occurred'}), 500

@bp.route('/<project_id>', methods=['PUT'])
@require_role('admin')
def update_project(project_id):
    """Update project"""
    project = Project.query.get_or_404(project_id)
    data = normalize_keys(get_json_body())

    try:
        _apply_project_fields(project, data)
        db.session.commit()
        return jsonify(project.to_dict()), 200
    except ValidationError:
        db.session.rollback()
        raise
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error updating project {project_id}: {str(e)}')
        return jsonify({'error': 'Failed to update project', 'message': 'An unexpected error occurred'}), 500

@bp.route('/<project_id>/enabled', methods=['PUT'])
@require_role('admin')
def set_project_enabled(project_id):
    """Enable or disable a project"""
    project = Project.query.get_or_404(project_id)
    enabled = get_json_body().get('enabled')
    if not isinstance(enabled, bool):
        raise ValidationError('enabled must be true or false')

    project.is_enabled = enabled
    db.session.commit()
    return jsonify(project.to_dict()), 200

@bp.route('/<project_id>/contractors', methods=['GET'])
@require_role('admin')
def get_project_contractors(project_id):
    """Contractors assigned to a project"""
    project = Project.query.get_or_404(project_id)
    return jsonify({'contractors': [a.to_dict() for a in project.assignments]}), 200

@bp.route('/<project_id>/contractors', methods=['POST'])
@require_role('admin')
def assign_contractor(project_id):
    """Assign a contractor to a project"""
    project = Project.query.get_or_404(project_id)
    contractor_id = normalize_keys(get_json_body()).get('contractor_id')

    contractor = db.session.get(Profile, contractor_id) if contractor_id else None
    if contractor is None or contractor.role != 'contractor':
        raise ValidationError('A valid contractor_id is required')
    if ProjectAssignment.query.filter_by(project_id=project.id, contractor_id=contractor.id).first():
        raise ConflictError('Contractor is already assigned to this project')

    assignment = ProjectAssignment(project_id=project.id, contractor_id=contractor.id)
    db.session.add(assignment)
    db.session.commit()
    current_app.logger.info(f"Assigned {contractor.email} to project {project.name}")
    return jsonify(assignment.to_dict()), 201

@bp.route('/<project_id>/contractors/<contractor_id>', methods=['DELETE'])
@require_role('admin')
def remove_contractor(project_id, contractor_id):
    """Remove a contractor from a project"""
    assignment = ProjectAssignment.query.filter_by(project_id=project_id, contractor_id=contractor_id).first()
    if assignment is None:
        raise NotFoundError('Assignment not found')

    db.session.delete(assignment)
    db.session.commit()
    return jsonify({'message': 'Contractor removed from project'}), 200

@bp.route('/<project_id>/manager', methods=['PUT'])
@require_role('admin')
def set_project_manager(project_id):
    """Set or clear the project's manager"""
    project = Project.query.get_or_404(project_id)
    manager_id = normalize_keys(get_json_body()).get('manager_id') or None

    if manager_id:
        manager = db.session.get(Profile, manager_id)
        if manager is None or manager.role != 'manager':
            raise ValidationError('Selected user is not a manager')

    project.manager_id = manager_id
    db.session.commit()
    return jsonify(project.to_dict()), 200
