"""
Configuration classes for the portal's app factory, keyed by ``APP_ENV``.

Every setting can be overridden from the environment.
"""

import os
import secrets
import tempfile

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


def _env_flag(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).lower() == "true"


def _database_url(default=None):
    # SQLAlchemy 2 only accepts the postgresql:// scheme
    raw = os.getenv("DATABASE_URL", "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else default


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", secrets.token_hex(32))
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_size": 5, "pool_recycle": 300}

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", os.path.join(basedir, "uploads"))
    MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
    # Room for multipart framing around the largest accepted file
    MAX_CONTENT_LENGTH = MAX_UPLOAD_BYTES + 512 * 1024

    # Reviewer alerts; every admin user receives them when unset
    ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
    NOTIFICATIONS_ENABLED = _env_flag("NOTIFICATIONS_ENABLED")
    PORTAL_URL = os.getenv("PORTAL_URL", "http://localhost:5000")

    # Without MAIL_SERVER emails are only recorded in the email log
    MAIL_SERVER = os.getenv("MAIL_SERVER")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = _env_flag("MAIL_USE_TLS")
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "noreply@approval-portal.local")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(
        f"sqlite:///{os.path.join(basedir, 'instance', 'approval_portal_dev.db')}"
    )


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    # In-memory SQLite uses a StaticPool, which takes no pool sizing
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    UPLOAD_FOLDER = os.path.join(tempfile.gettempdir(), "approval_portal_test_uploads")
    ADMIN_EMAIL = "reviewers@approval-portal.test"


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        **Config.SQLALCHEMY_ENGINE_OPTIONS,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    def __init__(self):
        missing = [name for name in ("DATABASE_URL", "SECRET_KEY") if not os.getenv(name)]
        if missing:
            raise RuntimeError(f"Production requires {', '.join(missing)} to be set")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
