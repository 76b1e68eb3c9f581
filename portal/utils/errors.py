"""Standardised API responses.

Usage
-----
    from portal.utils.errors import api_error, api_success, E

    return api_success(project.to_dict(), "Project created", status=201)
    return api_error(E.NOT_FOUND, "Project not found")

Services raise ``portal.core.exceptions`` types; ``register_error_handlers``
maps them onto the same envelope for every blueprint.
"""

from __future__ import annotations

import logging

from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from portal.core.exceptions import ConflictError, NotFoundError, PermissionDenied, ValidationError

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    FILE_TOO_LARGE = "ERR_FILE_TOO_LARGE"

    # Authentication – HTTP 401
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_STATE = "ERR_CONFLICT_STATE"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.FILE_TOO_LARGE: 413,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.INTERNAL: 500,
}


def api_success(data=None, message: str = "OK", *, status: int = 200, **extra):
    """Return a standard JSON success response: ``{success, message, data}``."""
    body = {"success": True, "message": message, "data": data}
    body.update(extra)
    return jsonify(body), status


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
        HTTP status override. Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, limits, ...).
    """
    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "success": False,
        "message": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(bp) -> None:
    """Map service exceptions to JSON envelopes on a blueprint (or the app)."""

    @bp.errorhandler(ValidationError)
    def _validation(exc):
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details or None)

    @bp.errorhandler(NotFoundError)
    def _not_found(exc):
        return api_error(E.NOT_FOUND, str(exc))

    @bp.errorhandler(PermissionDenied)
    def _forbidden(exc):
        return api_error(E.FORBIDDEN, str(exc))

    @bp.errorhandler(ConflictError)
    def _conflict(exc):
        return api_error(E.CONFLICT_STATE, str(exc))

    @bp.errorhandler(RequestEntityTooLarge)
    def _too_large(exc):
        limit = current_app.config.get("MAX_UPLOAD_BYTES")
        return api_error(E.FILE_TOO_LARGE, "Uploaded file is too large", details={"max_size": limit})


def register_app_error_handlers(app) -> None:
    """App-wide handlers: domain errors, HTTP errors and the 500 fallback."""
    register_error_handlers(app)

    @app.errorhandler(HTTPException)
    def _http(exc):
        if exc.code == 413:
            limit = current_app.config.get("MAX_UPLOAD_BYTES")
            return api_error(E.FILE_TOO_LARGE, "Uploaded file is too large",
                             status=413, details={"max_size": limit})
        return api_error(f"ERR_HTTP_{exc.code}", exc.description or exc.name, status=exc.code)

    @app.errorhandler(Exception)
    def _unhandled(exc):
        logger.exception("Unhandled error: %s", exc)
        if current_app.config.get("DEBUG") or current_app.config.get("TESTING"):
            return api_error(E.INTERNAL, "Internal server error", details={"error": str(exc)})
        return api_error(E.INTERNAL, "Internal server error")
