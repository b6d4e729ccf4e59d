from io import BytesIO
from flask import Blueprint, request, jsonify, current_app, send_file
from app.errors import NotFoundError
from app.services.invoices import LocalInvoiceStorage
from app.utils.auth import require_auth

bp = Blueprint('invoices', __name__)

@bp.route('/<submission_id>', methods=['GET'])
@require_auth
def get_invoice(submission_id):
    """
    Signed download URL for a submission's invoice (legacy path)
    ---
    tags:
      - Invoices
    parameters:
      - in: path
        name: submission_id
        required: true
        schema:
          type: string
    security:
      - Bearer: []
    responses:
      200:
        description: Signed URL
        content:
          application/json:
            schema:
              type: object
              properties:
                status:
                  type: string
                data:
                  type: object
                  properties:
                    url:
                      type: string
                    expiresIn:
                      type: integer
                    invoiceNumber:
                      type: string
      401:
        description: Missing or expired session
      403:
        description: Forbidden
      404:
        description: Submission not found
      500:
        description: Invoice generation failed
    """
    repository = current_app.extensions['submission_repository']
    service = current_app.extensions['invoice_service']

    submission = repository.get_visible_record(submission_id, request.current_user)
    data = service.get_invoice_url(submission)
    return jsonify({'status': 'success', 'data': data}), 200

@bp.route('/files/<token>', methods=['GET'])
def download_invoice_file(token):
    """Serve a locally stored invoice PDF; the signed token is the credential"""
    service = current_app.extensions['invoice_service']
    if not isinstance(service.storage, LocalInvoiceStorage):
        raise NotFoundError('Invoice file not found')

    filename, content = service.storage.open_token(token, max_age=service.url_ttl_seconds)
    return send_file(
        BytesIO(content),
        mimetype='application/pdf',
        as_attachment=False,
        download_name=filename
    )
