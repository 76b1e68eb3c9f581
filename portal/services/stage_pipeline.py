"""
Stage aggregation and pipeline control.

Reviewer actions land here. Requirement statuses are aggregated into the
stage status and completed stages advance the project's ``current_stage``.

State model:
    Requirement validations and the stage record are independent signals.
    - Aggregation only ever moves a stage to ``completed`` (every catalog
      requirement approved). Rejecting a requirement leaves the stage as is.
    - An admin may set a stage to any status directly; this never cascades
      into the requirement validations.
    - ``current_stage`` is recomputed whenever a stage becomes ``completed``
      and never moves backwards.

Every public operation validates before writing, commits once, and only
then hands events to the notification dispatcher.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from portal.core.exceptions import ValidationError
from portal.models import db
from portal.models.project import PROJECT_STATUSES, STAGE_STATUSES, Project, ProjectStage
from portal.models.requirement import VALIDATION_STATUSES
from portal.services import requirement_validation as validations
from portal.services.notification import dispatch
from portal.services.project_service import get_project
from portal.stage_requirements import (
    STAGE_ORDER,
    get_requirement,
    get_requirements,
    is_valid_stage,
    stage_display_name,
    stage_index,
)

logger = logging.getLogger(__name__)

_REVIEW_KINDS = {
    "approved": "requirement_approved",
    "rejected": "requirement_rejected",
}
UPLOAD_REVIEW_COMMENT = "Documents uploaded - sent to review"
UPLOAD_AFTER_REJECTION_COMMENT = "New documents uploaded after rejection - sent to review"

_STAGE_KINDS = {
    "completed": "stage_approved",
    "rejected": "stage_rejected",
    "in-progress": "stage_in_review",
}


# ── Validation helpers ───────────────────────────────────────────────────────


def require_stage(stage_name: str) -> None:
    if not is_valid_stage(stage_name):
        raise ValidationError(
            f"Invalid stage: {stage_name!r}",
            details={"stage_name": f"must be one of {', '.join(STAGE_ORDER)}"},
        )


def require_requirement(stage_name: str, requirement_id: str):
    require_stage(stage_name)
    requirement = get_requirement(stage_name, requirement_id)
    if requirement is None:
        raise ValidationError(
            f"Requirement {requirement_id!r} is not defined for stage {stage_name!r}",
            details={"requirement_id": requirement_id},
        )
    return requirement


def _require_status(status: str, allowed, field: str = "status") -> None:
    if status not in allowed:
        raise ValidationError(
            f"Invalid {field}: {status!r}",
            details={field: f"must be one of {', '.join(allowed)}"},
        )


def stage_record(project: Project, stage_name: str) -> ProjectStage:
    """The project's row for a stage, created on demand."""
    stage = project.get_stage(stage_name)
    if stage is None:
        stage = ProjectStage(project_id=project.id, stage_name=stage_name, status="pending")
        project.stages.append(stage)
        db.session.flush()
    return stage


# ── Pipeline ─────────────────────────────────────────────────────────────────


def recompute_pipeline(project: Project) -> str:
    """Advance ``current_stage`` past completed stages.

    The candidate is the first stage that is not completed, or the last stage
    when all are. The pointer only moves forward. When every stage is
    completed the project is approved. Safe to call repeatedly.
    """
    statuses = {s.stage_name: s.status for s in project.stages}
    candidate = next((name for name in STAGE_ORDER if statuses.get(name) != "completed"), None)
    all_completed = candidate is None
    if all_completed:
        candidate = STAGE_ORDER[-1]

    if stage_index(candidate) > stage_index(project.current_stage):
        logger.info(
            "Project %s advanced %s -> %s", project.code, project.current_stage, candidate,
            extra={"project_id": project.id, "stage": candidate},
        )
        project.current_stage = candidate

    if all_completed and project.status != "approved":
        project.status = "approved"
        logger.info("Project %s approved: all stages completed", project.code,
                    extra={"project_id": project.id})
    db.session.flush()
    return project.current_stage


def _complete_stage(project: Project, stage_name: str, comments: str | None, reviewer_id) -> ProjectStage:
    stage = stage_record(project, stage_name)
    stage.status = "completed"
    stage.admin_comments = comments
    stage.reviewed_by = reviewer_id
    stage.completed_at = datetime.now(timezone.utc)
    db.session.flush()
    recompute_pipeline(project)
    return stage


def _stage_payload(project: Project, stage: ProjectStage, reviewer_id, comments) -> dict:
    return {
        "project_id": project.id,
        "stage_name": stage.stage_name,
        "status": stage.status,
        "comments": comments,
        "actor_id": reviewer_id,
    }


# ── Reviewer operations ──────────────────────────────────────────────────────


def set_requirement_status(
    project_id: int,
    stage_name: str,
    requirement_id: str,
    status: str,
    comments: str | None = None,
    reviewer_id: int | None = None,
) -> dict:
    """Record a reviewer decision on one requirement.

    Approving the last outstanding requirement of a stage completes the
    stage and recomputes the pipeline.
    """
    project = get_project(project_id)
    require_requirement(stage_name, requirement_id)
    _require_status(status, VALIDATION_STATUSES)

    validation = validations.upsert_status(
        project.id, stage_name, requirement_id, status, comments=comments, reviewer_id=reviewer_id,
    )

    stage_completed = False
    stage = stage_record(project, stage_name)
    if status == "approved":
        required_ids = [r.id for r in get_requirements(stage_name)]
        approved = validations.count_approved(project.id, stage_name, required_ids)
        if approved == len(required_ids):
            if stage.status != "completed":
                stage_completed = True
                _complete_stage(
                    project, stage_name,
                    f"All {approved} requirements approved - stage completed automatically",
                    reviewer_id,
                )
            else:
                # Keep the existing completion record
                recompute_pipeline(project)

    db.session.commit()
    logger.info(
        "Requirement %s set to %s", requirement_id, status,
        extra={"project_id": project.id, "stage": stage_name, "requirement_id": requirement_id},
    )

    kind = _REVIEW_KINDS.get(status)
    if kind:
        dispatch(kind, {
            "project_id": project.id,
            "stage_name": stage_name,
            "requirement_id": requirement_id,
            "status": status,
            "comments": comments,
            "actor_id": reviewer_id,
        })
    if stage_completed:
        dispatch("stage_approved", _stage_payload(project, stage, reviewer_id, stage.admin_comments))

    return {
        "validation": validation.to_dict(),
        "stage": stage.to_dict(),
        "stage_completed": stage_completed,
        "current_stage": project.current_stage,
        "project_status": project.status,
    }


def approve_all_in_stage(
    project_id: int,
    stage_name: str,
    comments: str | None = None,
    reviewer_id: int | None = None,
) -> dict:
    """Approve every catalog requirement of a stage and complete it.

    Upserts run one after another; a failure part way leaves the earlier
    approvals flushed but the whole operation is committed only at the end.
    Running it twice yields the same end state.
    """
    project = get_project(project_id)
    require_stage(stage_name)

    requirements = get_requirements(stage_name)
    note = comments or f"Bulk approval of {stage_display_name(stage_name)}"
    for requirement in requirements:
        validations.upsert_status(
            project.id, stage_name, requirement.id, "approved", comments=note, reviewer_id=reviewer_id,
        )
    stage = _complete_stage(project, stage_name, note, reviewer_id)
    db.session.commit()
    logger.info(
        "Stage %s bulk-approved (%d requirements)", stage_name, len(requirements),
        extra={"project_id": project.id, "stage": stage_name},
    )

    dispatch("stage_approved", _stage_payload(project, stage, reviewer_id, note))
    return {
        "approved_count": len(requirements),
        "stage": stage.to_dict(),
        "current_stage": project.current_stage,
        "project_status": project.status,
    }


def set_stage_status(
    project_id: int,
    stage_name: str,
    status: str,
    comments: str | None = None,
    reviewer_id: int | None = None,
) -> dict:
    """Directly set a stage record's status. Requirement validations are untouched."""
    project = get_project(project_id)
    require_stage(stage_name)
    _require_status(status, STAGE_STATUSES)

    if status == "completed":
        stage = _complete_stage(project, stage_name, comments, reviewer_id)
    else:
        stage = stage_record(project, stage_name)
        stage.status = status
        stage.admin_comments = comments
        stage.reviewed_by = reviewer_id
        stage.completed_at = None
        db.session.flush()
    db.session.commit()
    logger.info(
        "Stage %s set to %s", stage_name, status,
        extra={"project_id": project.id, "stage": stage_name},
    )

    kind = _STAGE_KINDS.get(status)
    if kind:
        dispatch(kind, _stage_payload(project, stage, reviewer_id, comments))
    return {
        "stage": stage.to_dict(),
        "stages": [s.to_dict() for s in project.ordered_stages()],
        "current_stage": project.current_stage,
        "project_status": project.status,
    }


def set_project_status(project_id: int, status: str, comments: str | None = None) -> Project:
    """Explicit admin override of the project status."""
    project = get_project(project_id)
    _require_status(status, PROJECT_STATUSES)
    project.status = status
    if comments is not None:
        project.admin_comments = comments
    db.session.commit()
    logger.info("Project %s status set to %s", project.code, status, extra={"project_id": project.id})
    return project


def mark_stage_in_progress(project: Project, stage_name: str) -> ProjectStage:
    """Upload side effect: a pending or rejected stage becomes in-progress."""
    stage = stage_record(project, stage_name)
    if stage.status in ("pending", "rejected"):
        logger.info(
            "Stage %s moved %s -> in-progress", stage_name, stage.status,
            extra={"project_id": project.id, "stage": stage_name},
        )
        stage.admin_comments = (
            UPLOAD_AFTER_REJECTION_COMMENT if stage.status == "rejected" else UPLOAD_REVIEW_COMMENT
        )
        stage.status = "in-progress"
        db.session.flush()
    return stage
