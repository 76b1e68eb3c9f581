"""
Project Approval Portal
Authentication & Authorization Middleware.

Identity is established upstream (SSO gateway). The gateway forwards the
resolved user on every API request:

    X-User-Id    — numeric id of a row in ``users``
    X-User-Role  — admin | user (advisory; the stored role wins)

Provides:
    - ``init_auth(app)``: before_request hook resolving ``g.current_user``
    - ``require_role`` decorator for admin-only endpoints
    - ``current_user()`` accessor for blueprints
"""

import functools
import logging
from dataclasses import dataclass

from flask import g, request

from portal.models import db
from portal.models.auth import USER_ROLES, User
from portal.utils.errors import E, api_error

logger = logging.getLogger(__name__)

_PUBLIC_PATHS = ("/api/v1/health",)


@dataclass(frozen=True)
class CurrentUser:
    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _resolve_user():
    raw_id = request.headers.get("X-User-Id", "").strip()
    if not raw_id:
        return None, api_error(E.UNAUTHENTICATED, "Authentication required. Provide X-User-Id header.")
    try:
        user_id = int(raw_id)
    except ValueError:
        return None, api_error(E.UNAUTHENTICATED, "Invalid X-User-Id header")

    user = db.session.get(User, user_id)
    if user is None:
        logger.warning("Unknown user id in X-User-Id: %s", user_id)
        return None, api_error(E.UNAUTHENTICATED, "Unknown user")

    claimed = request.headers.get("X-User-Role", "").strip().lower()
    if claimed and claimed in USER_ROLES and claimed != user.role:
        logger.warning("Role header '%s' ignored for user %s (stored role '%s')",
                       claimed, user.id, user.role)
    return CurrentUser(id=user.id, role=user.role), None


def current_user() -> CurrentUser:
    return g.current_user


def require_role(role: str):
    """
    Decorator: restrict an endpoint to a role.

    Usage:
        @bp.route(...)
        @require_role("admin")
        def delete_project(pid): ...
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return api_error(E.UNAUTHENTICATED, "Authentication required")
            if user.role != role:
                logger.warning(
                    "Access denied: role '%s' tried to access '%s'-level endpoint %s",
                    user.role, role, request.path,
                )
                return api_error(E.FORBIDDEN, "Insufficient permissions")
            return f(*args, **kwargs)
        return decorated
    return decorator


def init_auth(app):
    """
    Install authentication middleware on the Flask app.

    - Resolves the current user for every /api/v1/* request
    - Skips the health check and CORS pre-flight
    """
    @app.before_request
    def _before_request_auth():
        if not request.path.startswith("/api/v1/"):
            return None
        if request.path in _PUBLIC_PATHS or request.method == "OPTIONS":
            return None

        user, error = _resolve_user()
        if error:
            return error
        g.current_user = user
        return None

    logger.info("Auth middleware installed")
