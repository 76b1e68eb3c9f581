"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in portal/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from portal.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

UPLOAD_LIMIT = "20/minute"
WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def rate_limit_key():
    """Limit per authenticated user when known, else per remote IP."""
    user = getattr(g, "current_user", None)
    if user is not None:
        return f"user:{user.id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per user, falling back to remote IP):
        - Documents (uploads):   20/minute
        - Review/admin routes:   60/minute
        - Read-focused routes:   200/minute
        - Health check:          exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("documents")
    if bp:
        limiter.limit(UPLOAD_LIMIT, key_func=rate_limit_key)(bp)

    for bp_name in ("projects", "requirements"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, key_func=rate_limit_key)(bp)

    for bp_name in ("stages", "notifications"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — documents: %s, write: %s, read: %s",
        UPLOAD_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
