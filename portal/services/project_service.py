"""
Project lifecycle service.

Creation, lookup, soft delete / restore / permanent purge and dashboard
counters. Creating a project also creates its five stage records.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import case, func, select

from portal.core.exceptions import ConflictError, NotFoundError, PermissionDenied, ValidationError
from portal.models import db
from portal.models.document import Document
from portal.models.project import PROJECT_STATUSES, Project, ProjectStage
from portal.models.requirement import RequirementValidation
from portal.services import requirement_validation as validations
from portal.services.file_storage import delete_file_quietly
from portal.services.notification import dispatch
from portal.stage_requirements import STAGE_ORDER, is_valid_stage

logger = logging.getLogger(__name__)

PERMANENT_DELETE_TOKEN = "DELETE_PERMANENTLY"


# ── Codes ────────────────────────────────────────────────────────────────────


def generate_project_code(year: int | None = None) -> str:
    """Next project code for the year. Format: PROJ-{YYYY}-{SEQ:03d}."""
    year = year or datetime.now(timezone.utc).year
    prefix = f"PROJ-{year}-"
    count = db.session.execute(
        select(func.count(Project.id)).where(Project.code.like(f"{prefix}%"))
    ).scalar_one()
    seq = count + 1
    code = f"{prefix}{seq:03d}"
    # Purged projects leave gaps in the count
    while db.session.execute(select(Project.id).where(Project.code == code)).first():
        seq += 1
        code = f"{prefix}{seq:03d}"
    return code


# ── Create / read ────────────────────────────────────────────────────────────


def create_project(title: str, description: str | None, owner_id: int | None) -> Project:
    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})

    project = Project(
        code=generate_project_code(),
        title=title,
        description=(description or "").strip(),
        owner_id=owner_id,
        status="pending",
        current_stage=STAGE_ORDER[0],
    )
    project.stages = [ProjectStage(stage_name=name, status="pending") for name in STAGE_ORDER]
    db.session.add(project)
    db.session.commit()
    logger.info("Project created code=%s", project.code, extra={"project_id": project.id})
    return project


def get_project(project_id: int, include_deleted: bool = False) -> Project:
    project = db.session.get(Project, project_id)
    if project is None or (project.is_deleted and not include_deleted):
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def can_access_project(project: Project, user) -> bool:
    return getattr(user, "role", None) == "admin" or project.owner_id == getattr(user, "id", None)


def get_project_for_user(project_id: int, user) -> Project:
    project = get_project(project_id)
    if not can_access_project(project, user):
        raise PermissionDenied(user.id, "view_project", "not the project owner")
    return project


def list_projects(status: str | None = None, current_stage: str | None = None,
                  owner_id: int | None = None):
    """Query of active projects, newest first."""
    if status and status not in PROJECT_STATUSES:
        raise ValidationError(f"Invalid status filter: {status!r}")
    if current_stage and not is_valid_stage(current_stage):
        raise ValidationError(f"Invalid stage filter: {current_stage!r}")

    q = Project.query_active()
    if status:
        q = q.filter(Project.status == status)
    if current_stage:
        q = q.filter(Project.current_stage == current_stage)
    if owner_id is not None:
        q = q.filter(Project.owner_id == owner_id)
    return q.order_by(Project.created_at.desc(), Project.id.desc())


def list_deleted_projects():
    return Project.query_deleted().order_by(Project.deleted_at.desc())


# ── Soft delete / restore / purge ────────────────────────────────────────────


def soft_delete_project(project_id: int, deleted_by: int | None, reason: str | None = None) -> Project:
    project = get_project(project_id)
    project.soft_delete(deleted_by=deleted_by, reason=(reason or "").strip() or None)
    db.session.commit()
    logger.info("Project %s soft-deleted", project.code, extra={"project_id": project.id})
    dispatch("project_deleted", {
        "project_id": project.id, "actor_id": deleted_by, "comments": project.deletion_reason,
    })
    return project


def restore_project(project_id: int, restored_by: int | None) -> Project:
    project = get_project(project_id, include_deleted=True)
    if not project.is_deleted:
        raise ConflictError(resource="Project", field="deleted_at", value=None)
    project.restore()
    db.session.commit()
    logger.info("Project %s restored", project.code, extra={"project_id": project.id})
    dispatch("project_restored", {"project_id": project.id, "actor_id": restored_by})
    return project


def permanent_delete_project(project_id: int, confirm: str | None) -> dict:
    """Purge a soft-deleted project with its stages, validations and documents.

    Stored artifacts are removed after the commit, best effort.
    """
    if confirm != PERMANENT_DELETE_TOKEN:
        raise ValidationError(
            "Permanent deletion requires confirmation",
            details={"confirm": PERMANENT_DELETE_TOKEN},
        )
    project = get_project(project_id, include_deleted=True)
    if not project.is_deleted:
        raise ValidationError("Only deleted projects can be permanently removed")

    code = project.code
    handles = list(db.session.execute(
        select(Document.stored_handle).where(Document.project_id == project.id)
    ).scalars())

    validations.ensure_validation_table()
    RequirementValidation.query.filter_by(project_id=project.id).delete(synchronize_session=False)
    Document.query.filter_by(project_id=project.id).delete(synchronize_session=False)
    db.session.delete(project)
    db.session.commit()
    logger.info("Project %s permanently deleted (%d files)", code, len(handles),
                extra={"project_id": project_id})

    failed = [h for h in handles if not delete_file_quietly(h)]
    return {"project_id": project_id, "code": code,
            "files_deleted": len(handles) - len(failed), "files_failed": len(failed)}


# ── Stats ────────────────────────────────────────────────────────────────────


def project_stats() -> dict:
    since = datetime.now(timezone.utc) - timedelta(days=30)

    def _count_status(value):
        return func.coalesce(func.sum(case((Project.status == value, 1), else_=0)), 0)

    row = db.session.execute(
        select(
            func.count(Project.id),
            _count_status("pending"),
            _count_status("in-progress"),
            _count_status("approved"),
            _count_status("rejected"),
            func.coalesce(func.sum(case((Project.created_at >= since, 1), else_=0)), 0),
        ).where(Project.deleted_at.is_(None))
    ).one()
    by_stage = dict(db.session.execute(
        select(Project.current_stage, func.count(Project.id))
        .where(Project.deleted_at.is_(None))
        .group_by(Project.current_stage)
    ).all())
    return {
        "total_projects": row[0],
        "pending": int(row[1]),
        "in_progress": int(row[2]),
        "approved": int(row[3]),
        "rejected": int(row[4]),
        "new_projects_last_30_days": int(row[5]),
        "by_current_stage": {name: by_stage.get(name, 0) for name in STAGE_ORDER},
    }


def deletion_stats() -> dict:
    now = datetime.now(timezone.utc)
    row = db.session.execute(
        select(
            func.count(Project.id),
            func.count(func.distinct(Project.deleted_by)),
            func.coalesce(func.sum(case((Project.deleted_at >= now - timedelta(days=30), 1), else_=0)), 0),
            func.coalesce(func.sum(case((Project.deleted_at >= now - timedelta(days=7), 1), else_=0)), 0),
        ).where(Project.deleted_at.isnot(None))
    ).one()
    return {
        "total_deleted": row[0],
        "deleted_by_users": row[1],
        "deleted_last_30_days": int(row[2]),
        "deleted_last_7_days": int(row[3]),
    }
