"""API exception types and the JSON error handlers that render them."""
from flask import jsonify
from werkzeug.exceptions import HTTPException
from shared.validation import ValidationError
from .models import db
import logging

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Error carrying an HTTP status code and a client-safe message."""
    status_code = 400

    def __init__(self, message, status_code=None, details=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self):
        payload = {'error': self.message}
        if self.details:
            payload.update(self.details)
        return payload


class AuthenticationError(ApiError):
    status_code = 401


class ForbiddenError(ApiError):
    status_code = 403


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    status_code = 409


class TooManyRequestsError(ApiError):
    status_code = 429


def register_error_handlers(app):
    """Render every error as {'error': message} with a matching status code."""

    @app.errorhandler(ApiError)
    def handle_api_error(error):
        log_func = logger.warning if error.status_code < 500 else logger.error
        log_func(f"API Error ({error.status_code}): {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(ValidationError)
    def handle_validation_error(error):
        logger.warning(f"Validation error: {error}")
        return jsonify({'error': str(error)}), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Resource not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(413)
    def payload_too_large(error):
        return jsonify({'error': 'Uploaded file is too large'}), 413

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        logger.warning(f"Rate limit exceeded: {getattr(error, 'description', error)}")
        return jsonify({
            'error': 'Too many requests',
            'limit': str(getattr(error, 'description', '')),
        }), 429

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({'error': error.description or error.name}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.error(f"Unhandled exception: {error}", exc_info=True)
        db.session.rollback()
        return jsonify({'error': 'Internal server error'}), 500
