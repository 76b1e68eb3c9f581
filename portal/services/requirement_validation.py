"""
Requirement Validation Store.

Persists the review status of every (project, stage, requirement) key.

Design decisions:
    - A missing row means ``pending``; rows are created on first write.
    - ``upsert_status`` is the only writer of status. It validates the value
      before touching the session and absorbs a duplicate-key race on insert
      by retrying as an update, so concurrent first writes never surface.
    - The store flushes but never commits. The calling operation owns the
      transaction boundary.
    - The table is provisioned lazily. ``ensure_validation_table`` runs at the
      start of every store operation and hits the database at most once per
      process once the table is known to exist.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from portal.core.exceptions import ValidationError
from portal.models import db
from portal.models.requirement import VALIDATION_STATUSES, RequirementValidation

logger = logging.getLogger(__name__)

_table_ready = False
_table_lock = threading.Lock()


# ── Provisioning ─────────────────────────────────────────────────────────────


def ensure_validation_table() -> None:
    """Create ``requirement_validations`` if it does not exist yet."""
    global _table_ready
    if _table_ready:
        return
    with _table_lock:
        if _table_ready:
            return
        if not sa.inspect(db.engine).has_table(RequirementValidation.__tablename__):
            RequirementValidation.__table__.create(bind=db.engine, checkfirst=True)
            logger.info("Provisioned table %s", RequirementValidation.__tablename__)
        _table_ready = True


def reset_table_guard() -> None:
    """Forget that the table was provisioned (next access re-checks)."""
    global _table_ready
    with _table_lock:
        _table_ready = False


# ── Reads ────────────────────────────────────────────────────────────────────


def get_validation(project_id: int, stage_name: str, requirement_id: str) -> RequirementValidation | None:
    ensure_validation_table()
    return db.session.execute(
        select(RequirementValidation).where(
            RequirementValidation.project_id == project_id,
            RequirementValidation.stage_name == stage_name,
            RequirementValidation.requirement_id == requirement_id,
        )
    ).scalar_one_or_none()


def get_status(project_id: int, stage_name: str, requirement_id: str) -> str:
    validation = get_validation(project_id, stage_name, requirement_id)
    return validation.status if validation else "pending"


def get_by_project(project_id: int) -> list[RequirementValidation]:
    ensure_validation_table()
    return list(db.session.execute(
        select(RequirementValidation)
        .where(RequirementValidation.project_id == project_id)
        .order_by(RequirementValidation.stage_name, RequirementValidation.requirement_id)
    ).scalars())


def count_approved(project_id: int, stage_name: str, requirement_ids) -> int:
    """Number of the given requirements whose status is ``approved``."""
    ensure_validation_table()
    ids = list(requirement_ids)
    if not ids:
        return 0
    return db.session.execute(
        select(func.count(RequirementValidation.id)).where(
            RequirementValidation.project_id == project_id,
            RequirementValidation.stage_name == stage_name,
            RequirementValidation.requirement_id.in_(ids),
            RequirementValidation.status == "approved",
        )
    ).scalar_one()


# ── Writes ───────────────────────────────────────────────────────────────────


def _apply(validation: RequirementValidation, status, comments, reviewer_id) -> None:
    validation.status = status
    validation.admin_comments = comments
    validation.reviewed_by = reviewer_id
    validation.reviewed_at = datetime.now(timezone.utc) if reviewer_id else None


def upsert_status(
    project_id: int,
    stage_name: str,
    requirement_id: str,
    status: str,
    comments: str | None = None,
    reviewer_id: int | None = None,
) -> RequirementValidation:
    """Insert or update the validation for one requirement key.

    Raises:
        ValidationError: ``status`` is not one of the four validation states.
    """
    if status not in VALIDATION_STATUSES:
        raise ValidationError(
            f"Invalid validation status: {status!r}",
            details={"status": f"must be one of {', '.join(VALIDATION_STATUSES)}"},
        )
    ensure_validation_table()

    validation = get_validation(project_id, stage_name, requirement_id)
    if validation is not None:
        _apply(validation, status, comments, reviewer_id)
        db.session.flush()
        return validation

    try:
        with db.session.begin_nested():
            validation = RequirementValidation(
                project_id=project_id,
                stage_name=stage_name,
                requirement_id=requirement_id,
            )
            _apply(validation, status, comments, reviewer_id)
            db.session.add(validation)
    except IntegrityError:
        # Another writer inserted the same key first; last write wins.
        logger.info(
            "Validation insert raced, retrying as update",
            extra={"project_id": project_id, "stage": stage_name, "requirement_id": requirement_id},
        )
        validation = get_validation(project_id, stage_name, requirement_id)
        if validation is None:
            raise
        _apply(validation, status, comments, reviewer_id)

    db.session.flush()
    return validation


def set_current_document(project_id: int, stage_name: str, requirement_id: str,
                         document_id: int | None) -> RequirementValidation:
    """Point the requirement at a document, creating a pending row if needed."""
    validation = get_validation(project_id, stage_name, requirement_id)
    if validation is None:
        validation = upsert_status(project_id, stage_name, requirement_id, "pending")
    validation.current_document_id = document_id
    db.session.flush()
    return validation
