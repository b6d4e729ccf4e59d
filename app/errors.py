"""Error taxonomy shared by services and routes"""
from flask import jsonify


class PortalError(Exception):
    """Base error carrying an HTTP status and a user-facing message"""
    status_code = 500
    error = 'Internal server error'

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'error': self.error, 'message': self.message}


class ValidationError(PortalError):
    status_code = 400
    error = 'Validation failed'


class AuthenticationError(PortalError):
    status_code = 401
    error = 'Unauthorized'


class AuthorizationError(PortalError):
    status_code = 403
    error = 'Forbidden'


class NotFoundError(PortalError):
    status_code = 404
    error = 'Not found'


class ConflictError(PortalError):
    status_code = 409
    error = 'Conflict'


class DuplicatePeriodError(ConflictError):
    error = 'Duplicate work period'


class StatusMismatchError(ConflictError):
    error = 'Invalid status'


class InvoiceGenerationError(PortalError):
    status_code = 500
    error = 'Invoice generation failed'


def register_error_handlers(app):
    @app.errorhandler(PortalError)
    def handle_portal_error(err):
        if err.status_code >= 500:
            app.logger.error(f'{err.error}: {err.message}')
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(404)
    def handle_not_found(err):
        return jsonify({'error': 'Not found', 'message': 'The requested resource was not found'}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(err):
        return jsonify({'error': 'Method not allowed', 'message': str(err.description)}), 405
