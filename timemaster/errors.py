import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class APIError(Exception):
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BadRequest(APIError):
    status_code = 400


class Unauthorized(APIError):
    status_code = 401


class Forbidden(APIError):
    status_code = 403


class NotFound(APIError):
    status_code = 404


class ConflictError(APIError):
    status_code = 409


def error_response(message, status_code):
    return jsonify({'status': 'error', 'message': message}), status_code


def register_error_handlers(app):
    @app.errorhandler(APIError)
    def handle_api_error(e):
        return error_response(e.message, e.status_code)

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return error_response(e.description, e.code)

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        logger.error(f"Unhandled error: {e}", exc_info=True)
        return error_response('An unexpected error occurred.', 500)
