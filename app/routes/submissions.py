from flask import Blueprint, request, jsonify, current_app
from app.utils.auth import require_auth, require_role
from app.utils.helpers import get_json_body, normalize_keys

bp = Blueprint('submissions', __name__)

def _repository():
    return current_app.extensions['submission_repository']

def _invoice_service():
    return current_app.extensions['invoice_service']

@bp.route('/', methods=['GET'])
@require_auth
def get_submissions():
    """
    List submissions visible to the current user
    ---
    tags:
      - Submissions
    parameters:
      - in: query
        name: status
        schema:
          type: string
          enum: [PENDING_MANAGER, REJECTED_CONTRACTOR, CLARIFICATION_REQUESTED, AWAITING_ADMIN_PAYMENT, PAID]
        description: Filter by canonical status
      - in: query
        name: search
        schema:
          type: string
        description: Match contractor name, email, project or description
      - in: query
        name: limit
        schema:
          type: integer
    security:
      - Bearer: []
    responses:
      200:
        description: Submissions, newest first
      401:
        description: Unauthorized
    """
    submissions = _repository().list_submissions(
        request.current_user,
        status=request.args.get('status'),
        search=request.args.get('search'),
        limit=request.args.get('limit', type=int)
    )
    return jsonify({'submissions': submissions, 'total': len(submissions)}), 200

@bp.route('/submitted-periods', methods=['GET'])
@require_role('contractor')
def get_submitted_periods():
    """Work periods the current contractor has already submitted"""
    periods = _repository().submitted_periods(request.current_user['id'])
    return jsonify({'periods': periods}), 200

@bp.route('/', methods=['POST'])
@require_role('contractor')
def create_submission():
    """
    Submit hours for a work period
    ---
    tags:
      - Submissions
    security:
      - Bearer: []
    requestBody:
      required: true
      content:
        application/json:
          schema:
            type: object
            required:
              - workPeriod
              - hoursSubmitted
              - description
            properties:
              workPeriod:
                type: string
                example: "2026-02"
              hoursSubmitted:
                type: number
              overtimeHours:
                type: number
              overtimeDescription:
                type: string
              description:
                type: string
              excludedDates:
                type: array
                items:
                  type: string
                  format: date
              projectId:
                type: string
    responses:
      201:
        description: Submission created
      400:
        description: Validation failed
      409:
        description: A submission already exists for this work period
    """
    draft = normalize_keys(get_json_body())
    submission = _repository().create_submission(request.current_user, draft)
    return jsonify(submission), 201

@bp.route('/<submission_id>', methods=['GET'])
@require_auth
def get_submission(submission_id):
    """Get submission details, including the actions available to the caller"""
    return jsonify(_repository().get_submission(submission_id, request.current_user)), 200

@bp.route('/<submission_id>', methods=['PUT'])
@require_role('contractor')
def resubmit_submission(submission_id):
    """Edit and resubmit a pending or rejected submission"""
    updates = normalize_keys(get_json_body())
    submission = _repository().resubmit_submission(submission_id, request.current_user, updates)
    return jsonify(submission), 200

@bp.route('/<submission_id>', methods=['DELETE'])
@require_role('contractor')
def delete_submission(submission_id):
    """Delete a submission that has not been approved or paid"""
    _repository().delete_submission(submission_id, request.current_user)
    return jsonify({'message': 'Submission deleted successfully'}), 200

@bp.route('/<submission_id>/actions', methods=['POST'])
@require_auth
def apply_action(submission_id):
    """
    Perform a workflow action (approve, reject, pay, ...)
    ---
    tags:
      - Submissions
    security:
      - Bearer: []
    requestBody:
      required: true
      content:
        application/json:
          schema:
            type: object
            required:
              - action
            properties:
              action:
                type: string
                enum: [RESUBMIT, APPROVE, REJECT, RESPOND_RESUBMIT, RESPOND_REJECT, PAY, REQUEST_CLARIFICATION]
              note:
                type: string
    responses:
      200:
        description: Updated submission
      400:
        description: Missing note or unknown action
      403:
        description: Submission outside the caller's scope
      409:
        description: Action not allowed from the current status
    """
    data = normalize_keys(get_json_body())
    action = data.pop('action', None)
    note = data.pop('note', None)
    submission = _repository().apply_action(submission_id, request.current_user, action, note=note, updates=data)
    return jsonify(submission), 200

@bp.route('/<submission_id>/invoice', methods=['GET'])
@require_auth
def get_submission_invoice(submission_id):
    """
    Signed download URL for the submission's invoice PDF
    ---
    tags:
      - Invoices
    security:
      - Bearer: []
    responses:
      200:
        description: Signed URL
      401:
        description: Missing or expired session
      403:
        description: Not the owner, the owner's manager or an admin
      404:
        description: Submission not found
      500:
        description: Invoice generation failed
    """
    submission = _repository().get_visible_record(submission_id, request.current_user)
    data = _invoice_service().get_invoice_url(submission)
    return jsonify({'status': 'success', 'data': data}), 200

@bp.route('/<submission_id>/regenerate-invoice', methods=['POST'])
@require_auth
def regenerate_invoice(submission_id):
    """Rebuild the invoice PDF and return a fresh signed URL"""
    submission = _repository().get_visible_record(submission_id, request.current_user)
    data = _invoice_service().get_invoice_url(submission, force=True)
    current_app.logger.info(f"Invoice regenerated for submission {submission_id} by {request.current_user['id']}")
    return jsonify({'status': 'success', 'data': data}), 200
