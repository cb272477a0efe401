"""JSON error bodies shared by every API blueprint.

    {"success": false, "error": "<message>", "code": "ERR_...", "details": {...}}

``details`` is omitted when empty. The HTTP status follows from the code
unless overridden.
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Machine-readable error codes."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"   # 400, a required field is missing
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"     # 400, a field has a bad value
    BAD_REQUEST = "ERR_BAD_REQUEST"                   # 400, malformed request
    NOT_FOUND = "ERR_NOT_FOUND"                       # 404
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"     # 405
    RATE_LIMITED = "ERR_RATE_LIMITED"                 # 429
    REQUEST_REJECTED = "ERR_REQUEST_REJECTED"         # any other 4xx
    SCAN_FAILED = "ERR_SCAN_FAILED"                   # 500, a reminder scan trigger failed as a whole
    INTERNAL = "ERR_INTERNAL"                         # 500


_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.BAD_REQUEST: 400,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.RATE_LIMITED: 429,
    E.REQUEST_REJECTED: 400,
    E.SCAN_FAILED: 500,
    E.INTERNAL: 500,
}

_STATUS_CODES: dict[int, str] = {
    400: E.BAD_REQUEST,
    404: E.NOT_FOUND,
    405: E.METHOD_NOT_ALLOWED,
    429: E.RATE_LIMITED,
}


def validation_code(details: dict | None) -> str:
    """REQUIRED when every reported field is simply missing, INVALID otherwise."""
    if details and all(v == "required" for v in details.values()):
        return E.VALIDATION_REQUIRED
    return E.VALIDATION_INVALID


def code_for_status(status: int) -> str:
    """Error code for an HTTP status raised through werkzeug (``abort`` and friends)."""
    if status in _STATUS_CODES:
        return _STATUS_CODES[status]
    return E.REQUEST_REJECTED if status < 500 else E.INTERNAL


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a Flask view or error handler."""
    body: dict = {"success": False, "error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _DEFAULT_STATUS.get(code, 400)
