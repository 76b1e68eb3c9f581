"""
Tests: stage aggregation and pipeline advancement.

Covers automatic completion when every requirement is approved, the
rule that requirement rejections never move the stage, bulk approval,
direct stage overrides and the forward-only current stage pointer.
"""

import pytest

from portal.core.exceptions import NotFoundError, ValidationError
from portal.models import db as _db
from portal.models.notification import Notification
from portal.models.project import Project
from portal.services import requirement_validation as validations
from portal.services import stage_pipeline
from portal.stage_requirements import STAGE_ORDER, get_requirements

FORMALIZATION = [r.id for r in get_requirements("formalization")]


def _stage_status(project, stage_name):
    _db.session.refresh(project)
    return project.get_stage(stage_name).status


def test_stage_completes_only_when_every_requirement_approved(project, admin):
    for req in FORMALIZATION[:-1]:
        result = stage_pipeline.set_requirement_status(
            project.id, "formalization", req, "approved", reviewer_id=admin.id,
        )
        assert result["stage_completed"] is False
    assert _stage_status(project, "formalization") == "pending"
    assert project.current_stage == "formalization"

    result = stage_pipeline.set_requirement_status(
        project.id, "formalization", FORMALIZATION[-1], "approved", reviewer_id=admin.id,
    )
    assert result["stage_completed"] is True
    assert result["stage"]["status"] == "completed"
    assert result["current_stage"] == "design"

    stage = _db.session.get(Project, project.id).get_stage("formalization")
    assert stage.completed_at is not None
    assert stage.reviewed_by == admin.id
    assert stage.admin_comments == "All 4 requirements approved - stage completed automatically"


def test_rejecting_requirement_leaves_stage_unchanged(project, admin):
    stage_pipeline.set_stage_status(project.id, "design", "in-progress", reviewer_id=admin.id)

    stage_pipeline.set_requirement_status(
        project.id, "design", "especificacion_funcional", "rejected",
        comments="Use the current template", reviewer_id=admin.id,
    )

    assert _stage_status(project, "design") == "in-progress"
    validation = validations.get_validation(project.id, "design", "especificacion_funcional")
    assert validation.status == "rejected"
    assert validation.admin_comments == "Use the current template"


def test_rejecting_in_completed_stage_keeps_it_completed(project, admin):
    stage_pipeline.approve_all_in_stage(project.id, "formalization", reviewer_id=admin.id)

    stage_pipeline.set_requirement_status(
        project.id, "formalization", "aprobacion_go", "rejected", reviewer_id=admin.id,
    )

    assert _stage_status(project, "formalization") == "completed"
    assert project.current_stage == "design"


def test_reapproving_in_completed_stage_does_not_renotify(project, admin, owner):
    stage_pipeline.approve_all_in_stage(project.id, "formalization", reviewer_id=admin.id)
    before = Notification.query.filter_by(recipient_id=owner.id, kind="stage_approved").count()

    result = stage_pipeline.set_requirement_status(
        project.id, "formalization", "aprobacion_go", "approved", reviewer_id=admin.id,
    )

    assert result["stage_completed"] is False
    after = Notification.query.filter_by(recipient_id=owner.id, kind="stage_approved").count()
    assert after == before


def test_approvals_keep_admin_completion_record(project, admin):
    stage_pipeline.set_stage_status(
        project.id, "formalization", "completed", comments="Fast-tracked by dean", reviewer_id=admin.id,
    )
    completed_at = project.get_stage("formalization").completed_at

    for req in FORMALIZATION:
        result = stage_pipeline.set_requirement_status(
            project.id, "formalization", req, "approved", reviewer_id=admin.id,
        )
        assert result["stage_completed"] is False

    stage = _db.session.get(Project, project.id).get_stage("formalization")
    assert stage.status == "completed"
    assert stage.admin_comments == "Fast-tracked by dean"
    assert stage.completed_at == completed_at
    assert result["current_stage"] == "design"


def test_invalid_inputs_rejected_before_writes(project, admin):
    with pytest.raises(ValidationError):
        stage_pipeline.set_requirement_status(project.id, "testing", "x", "approved")
    with pytest.raises(ValidationError):
        stage_pipeline.set_requirement_status(project.id, "design", "ficha_formalizacion", "approved")
    with pytest.raises(ValidationError):
        stage_pipeline.set_requirement_status(project.id, "design", "especificacion_funcional", "done")
    with pytest.raises(NotFoundError):
        stage_pipeline.set_requirement_status(9999, "design", "especificacion_funcional", "approved")

    assert validations.get_by_project(project.id) == []


def test_approve_all_in_stage(project, admin):
    result = stage_pipeline.approve_all_in_stage(project.id, "formalization", reviewer_id=admin.id)

    assert result["approved_count"] == 4
    assert result["stage"]["status"] == "completed"
    assert result["current_stage"] == "design"
    for req in FORMALIZATION:
        validation = validations.get_validation(project.id, "formalization", req)
        assert validation.status == "approved"
        assert validation.admin_comments == "Bulk approval of Formalization"
        assert validation.reviewed_by == admin.id


def test_approve_all_is_idempotent(project, admin):
    stage_pipeline.approve_all_in_stage(project.id, "design", comments="OK", reviewer_id=admin.id)
    result = stage_pipeline.approve_all_in_stage(project.id, "design", comments="OK", reviewer_id=admin.id)

    assert result["approved_count"] == 6
    assert len(validations.get_by_project(project.id)) == 6
    assert _stage_status(project, "design") == "completed"


def test_pointer_skips_over_already_completed_stages(project, admin):
    stage_pipeline.approve_all_in_stage(project.id, "design", reviewer_id=admin.id)
    assert project.current_stage == "formalization"

    result = stage_pipeline.approve_all_in_stage(project.id, "formalization", reviewer_id=admin.id)
    assert result["current_stage"] == "delivery"


def test_pointer_never_moves_backwards(project, admin):
    stage_pipeline.approve_all_in_stage(project.id, "formalization", reviewer_id=admin.id)
    assert project.current_stage == "design"

    result = stage_pipeline.set_stage_status(
        project.id, "formalization", "rejected", comments="Budget reopened", reviewer_id=admin.id,
    )

    assert result["current_stage"] == "design"
    stage = project.get_stage("formalization")
    assert stage.status == "rejected"
    assert stage.completed_at is None
    # Direct overrides leave validations alone
    assert validations.get_status(project.id, "formalization", "aprobacion_go") == "approved"


def test_all_stages_completed_approves_project(project, admin):
    for name in STAGE_ORDER:
        result = stage_pipeline.approve_all_in_stage(project.id, name, reviewer_id=admin.id)

    assert result["current_stage"] == "maintenance"
    assert result["project_status"] == "approved"


def test_set_stage_status_completed_advances(project, admin):
    result = stage_pipeline.set_stage_status(
        project.id, "formalization", "completed", comments="Fast-tracked", reviewer_id=admin.id,
    )
    assert result["current_stage"] == "design"
    assert result["stage"]["admin_comments"] == "Fast-tracked"
    assert [s["stage_name"] for s in result["stages"]] == list(STAGE_ORDER)


def test_set_stage_status_validates(project):
    with pytest.raises(ValidationError):
        stage_pipeline.set_stage_status(project.id, "formalization", "approved")
    with pytest.raises(ValidationError):
        stage_pipeline.set_stage_status(project.id, "launch", "completed")


def test_recompute_pipeline_is_repeatable(project, admin):
    stage_pipeline.approve_all_in_stage(project.id, "formalization", reviewer_id=admin.id)
    assert stage_pipeline.recompute_pipeline(project) == "design"
    assert stage_pipeline.recompute_pipeline(project) == "design"


def test_stage_record_created_on_demand(project):
    project.stages[:] = [s for s in project.stages if s.stage_name != "operation"]
    _db.session.commit()
    assert project.get_stage("operation") is None

    stage = stage_pipeline.stage_record(project, "operation")
    assert stage.status == "pending"
    assert project.get_stage("operation") is stage


def test_mark_stage_in_progress_only_from_pending_or_rejected(project, admin):
    stage = stage_pipeline.mark_stage_in_progress(project, "design")
    assert stage.status == "in-progress"

    stage_pipeline.set_stage_status(project.id, "delivery", "rejected", reviewer_id=admin.id)
    assert stage_pipeline.mark_stage_in_progress(project, "delivery").status == "in-progress"

    stage_pipeline.set_stage_status(project.id, "operation", "completed", reviewer_id=admin.id)
    assert stage_pipeline.mark_stage_in_progress(project, "operation").status == "completed"


def test_reopened_stage_replaces_stale_comment(project, admin):
    stage_pipeline.set_stage_status(
        project.id, "delivery", "rejected", comments="Environments missing", reviewer_id=admin.id,
    )
    stage = stage_pipeline.mark_stage_in_progress(project, "delivery")
    assert stage.admin_comments == stage_pipeline.UPLOAD_AFTER_REJECTION_COMMENT

    stage = stage_pipeline.mark_stage_in_progress(project, "design")
    assert stage.admin_comments == stage_pipeline.UPLOAD_REVIEW_COMMENT

    stage_pipeline.set_stage_status(project.id, "operation", "completed", comments="Done", reviewer_id=admin.id)
    assert stage_pipeline.mark_stage_in_progress(project, "operation").admin_comments == "Done"


def test_set_project_status(project):
    updated = stage_pipeline.set_project_status(project.id, "rejected", comments="Out of scope")
    assert updated.status == "rejected"
    assert updated.admin_comments == "Out of scope"
    with pytest.raises(ValidationError):
        stage_pipeline.set_project_status(project.id, "archived")


def test_review_notifies_owner(project, admin, owner):
    stage_pipeline.set_requirement_status(
        project.id, "design", "especificacion_funcional", "rejected",
        comments="Missing scope section", reviewer_id=admin.id,
    )
    notes = Notification.query.filter_by(recipient_id=owner.id, kind="requirement_rejected").all()
    assert len(notes) == 1
    assert "Missing scope section" in notes[0].message
