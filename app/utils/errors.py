"""Standardised API error responses.

Usage
-----
    from app.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Ticket not found")
    return api_error(E.VALIDATION_REQUIRED, "workflow_id is required")

Service exceptions (``app.core.exceptions``) are turned into the same body
shape by the handlers registered in ``register_error_handlers``.
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from app.core.exceptions import PersistenceError, ServiceError
from app.models import db

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    PRECONDITION = "ERR_PRECONDITION"

    # Auth – HTTP 401 / 403
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.PRECONDITION: 400,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(app):
    """Map service exceptions and HTTP errors to JSON bodies app-wide."""

    @app.errorhandler(PersistenceError)
    def _handle_persistence(error: PersistenceError):
        logger.error("Persistence error on %s %s: %s", request.method, request.path, error.message)
        return api_error(E.DATABASE, "Internal server error")

    @app.errorhandler(ServiceError)
    def _handle_service_error(error: ServiceError):
        db.session.rollback()
        return api_error(
            error.code, error.message, status=error.status_code, details=error.details,
        )

    @app.errorhandler(HTTPException)
    def _handle_http(error: HTTPException):
        if error.code == 404:
            return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})
        if error.code == 405:
            return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)
        if error.code == 429:
            return api_error(
                E.VALIDATION_INVALID, "Too many requests", status=429,
                details={"retry_after": error.description},
            )
        return api_error(E.VALIDATION_INVALID, error.description or error.name, status=error.code)

    @app.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        logger.exception("Unexpected error endpoint=%s", request.endpoint)
        db.session.rollback()
        return api_error(E.INTERNAL, "Internal server error")
