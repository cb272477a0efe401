"""
Shared blueprint helpers.

Every API blueprint maps the service exception hierarchy the same way:
    ValidationError → 400, NotFoundError → 404, werkzeug HTTP errors keep
    their status, anything else → 500
The 500 body is generic; the underlying error is only logged.
"""

import logging

from flask import request
from werkzeug.exceptions import HTTPException

from taskflow.core.exceptions import NotFoundError, ValidationError
from taskflow.utils.errors import E, api_error, code_for_status, validation_code

logger = logging.getLogger(__name__)


def register_error_handlers(bp):
    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(validation_code(error.details), str(error), details=error.details)

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return api_error(code_for_status(error.code), error.description or error.name, status=error.code)
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")


def int_or_none(value):
    """Coerce a JSON/query value to int; None when absent or not a whole number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
