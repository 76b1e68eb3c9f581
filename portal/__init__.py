"""
Project Approval Portal
Flask Application Factory.

Usage:
    from portal import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from portal.auth import init_auth
from portal.config import config
from portal.middleware.logging_config import configure_logging
from portal.middleware.rate_limiter import init_rate_limits
from portal.middleware.timing import init_request_timing
from portal.models import db
from portal.utils.errors import E, api_error, register_app_error_handlers

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine  # noqa: E402


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def create_app(config_name=None, **overrides):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        overrides:   Extra config values applied after the config class.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])
    app.config.update(overrides)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing + authentication ──────────────────────────────────
    init_request_timing(app)
    init_auth(app)

    # ── Request guard (Content-Type for mutating API calls) ──────────────
    @app.before_request
    def _guard_request():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if "multipart/form-data" in ct or "json" in ct:
                return None
            if request.content_length:
                abort(415, description="Content-Type must be application/json")
        return None

    # ── Import all models so create_all / Alembic see them ───────────────
    from portal.models import auth as _auth_models                  # noqa: F401
    from portal.models import project as _project_models            # noqa: F401
    from portal.models import document as _document_models          # noqa: F401
    from portal.models import requirement as _requirement_models    # noqa: F401
    from portal.models import notification as _notification_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)

    # ── Blueprints ───────────────────────────────────────────────────────
    from portal.blueprints.document_bp import document_bp
    from portal.blueprints.health_bp import health_bp
    from portal.blueprints.notification_bp import notification_bp
    from portal.blueprints.project_bp import project_bp
    from portal.blueprints.requirement_bp import requirement_bp
    from portal.blueprints.stage_bp import stage_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(document_bp)
    app.register_blueprint(requirement_bp)
    app.register_blueprint(stage_bp)
    app.register_blueprint(notification_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    register_app_error_handlers(app)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error("ERR_RATE_LIMITED", "Too many requests", status=429,
                         details={"retry_after": e.description})

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("create-admin")
    def create_admin_cmd():
        """Create the reviewer account named by ADMIN_EMAIL if missing."""
        from portal.models.auth import User

        email = app.config.get("ADMIN_EMAIL")
        if not email:
            logger.error("ADMIN_EMAIL is not set")
            return
        if User.query.filter_by(email=email).first():
            logger.info("Admin %s already exists", email)
            return
        db.session.add(User(email=email, full_name="Reviewer", role="admin"))
        db.session.commit()
        logger.info("Admin %s created", email)

    return app
