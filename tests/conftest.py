"""
Shared pytest fixtures for the Project Approval Portal test suite.

Provides:
    - app: Flask application (session-scoped, temporary upload folder)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - admin / owner / other_user: committed User rows
    - project: fresh project owned by ``owner``
    - upload: helper that ingests a document through the upload service
"""

import pytest

from portal import create_app
from portal.auth import CurrentUser
from portal.models import db as _db
from portal.models.auth import User


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    upload_dir = tmp_path_factory.mktemp("uploads")
    return create_app("testing", UPLOAD_FOLDER=str(upload_dir))


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users ────────────────────────────────────────────────────────────────


def _make_user(email, role="user", full_name=None):
    user = User(email=email, full_name=full_name or email.split("@")[0].title(), role=role)
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def admin():
    return _make_user("reviewer@university.test", role="admin", full_name="Rita Reviewer")


@pytest.fixture()
def owner():
    return _make_user("owner@university.test", full_name="Omar Owner")


@pytest.fixture()
def other_user():
    return _make_user("someone@university.test", full_name="Sam Else")


def _as_user(user):
    """CurrentUser value for calling services directly."""
    return CurrentUser(id=user.id, role=user.role)


def _headers_for(user):
    """Gateway headers for API calls."""
    return {"X-User-Id": str(user.id), "X-User-Role": user.role}


# ── Domain fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def project(owner):
    from portal.services.project_service import create_project
    return create_project("Campus Wi-Fi Upgrade", "Replace access points in all buildings", owner.id)


@pytest.fixture()
def upload():
    """Upload ``data`` as ``filename`` for a requirement, acting as ``user``."""
    from portal.services.upload_service import upload_document

    def _upload(project, stage_name, requirement_id, user, filename="evidence.pdf",
                data=b"%PDF-1.4 test document"):
        return upload_document(
            project.id, stage_name, requirement_id,
            filename=filename, data=data, user=_as_user(user),
        )

    return _upload


@pytest.fixture()
def as_user():
    return _as_user


@pytest.fixture()
def auth_headers():
    return _headers_for
