# backend/middleware/errors.py

import logging

from flask import jsonify, request, current_app
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import RequestEntityTooLarge

from models import db, ValidationError

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """A request that breaks a business rule, rendered as {"error": message}"""

    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class UploadError(Exception):
    """Raised when an uploaded file is missing, too large or of the wrong type"""

    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def is_production():
    return current_app.config.get('ENVIRONMENT') == 'production'


def error_response(message, status_code):
    return jsonify({'error': message}), status_code


def not_found(resource):
    return error_response(f'{resource} not found', 404)


def forbidden(message='Not authorized'):
    return error_response(message, 403)


def validation_error(error):
    return jsonify({
        'error': 'Validation error',
        'message': error.message,
        'details': error.details
    }), 400


def integrity_error(error):
    logger.warning(f"Integrity error: {error.orig}")
    body = {'error': 'Unique constraint error'}
    if not is_production():
        body['message'] = str(error.orig)
    return jsonify(body), 400


def upload_error(error):
    return jsonify({'error': 'File upload error', 'message': error.message}), error.status_code


def server_error(message, exc):
    """500 response exposing the raw error outside production"""
    body = {'error': message}
    if not is_production():
        body['message'] = str(exc)
    return jsonify(body), 500


def handle_write_errors(exc, message):
    """Roll back and map a failed write to the right response"""
    db.session.rollback()
    if isinstance(exc, ValidationError):
        return validation_error(exc)
    if isinstance(exc, IntegrityError):
        return integrity_error(exc)
    if isinstance(exc, UploadError):
        return upload_error(exc)
    if isinstance(exc, ApiError):
        return error_response(exc.message, exc.status_code)
    logger.error(f"{message}: {str(exc)}")
    return server_error(message, exc)


def register_error_handlers(app):
    """JSON responses for errors raised outside the route try/except blocks"""

    @app.errorhandler(ValidationError)
    def handle_validation_error(error):
        db.session.rollback()
        return validation_error(error)

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error):
        db.session.rollback()
        return integrity_error(error)

    @app.errorhandler(UploadError)
    def handle_upload_error(error):
        return upload_error(error)

    @app.errorhandler(ApiError)
    def handle_api_error(error):
        db.session.rollback()
        return error_response(error.message, error.status_code)

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(error):
        return jsonify({
            'error': 'File upload error',
            'message': 'Upload exceeds the maximum allowed size'
        }), 413

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({'error': 'Bad request', 'message': getattr(error, 'description', None)}), 400

    @app.errorhandler(404)
    def route_not_found(error):
        return jsonify({'error': 'Route not found', 'path': request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'error': 'Method Not Allowed',
            'message': f'The method {request.method} is not allowed for endpoint {request.path}',
            'allowed_methods': list(error.valid_methods) if getattr(error, 'valid_methods', None) else None
        }), 405

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        app.logger.error(f"Internal server error: {error}")
        message = 'Internal server error'
        if not is_production():
            original = getattr(error, 'original_exception', None)
            message = str(original or error)
        return jsonify({'error': message}), 500
