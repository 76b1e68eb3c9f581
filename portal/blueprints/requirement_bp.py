"""
Project Approval Portal
Requirement review Blueprint.

Endpoints:
    GET /api/v1/requirements/project/<pid>                       — checklist (?stage=)
    PUT /api/v1/requirements/<pid>/<stage>/<req>/status          — review one (admin)
    PUT /api/v1/requirements/<pid>/<stage>/approve-all           — approve stage (admin)
    GET /api/v1/requirements/<pid>/<stage>/<req>/documents       — document history
    GET /api/v1/requirements/<pid>/stats                         — per-stage counters
"""

from flask import Blueprint, request

from portal.auth import current_user, require_role
from portal.blueprints import json_body
from portal.services import document_register, stage_pipeline
from portal.services.project_service import get_project_for_user
from portal.services.requirement_checklist import list_requirements, requirement_stats
from portal.utils.errors import api_success, register_error_handlers

requirement_bp = Blueprint("requirements", __name__, url_prefix="/api/v1/requirements")
register_error_handlers(requirement_bp)


@requirement_bp.route("/project/<int:pid>", methods=["GET"])
def project_requirements(pid):
    project = get_project_for_user(pid, current_user())
    stage_name = request.args.get("stage") or None
    if stage_name:
        stage_pipeline.require_stage(stage_name)
    items = list_requirements(project.id, stage_name=stage_name)
    return api_success(items, total=len(items))


@requirement_bp.route("/<int:pid>/<stage_name>/<requirement_id>/status", methods=["PUT"])
@require_role("admin")
def set_requirement_status(pid, stage_name, requirement_id):
    data = json_body()
    result = stage_pipeline.set_requirement_status(
        pid, stage_name, requirement_id, data.get("status", ""),
        comments=data.get("comments"), reviewer_id=current_user().id,
    )
    message = "Stage completed" if result["stage_completed"] else "Requirement status updated"
    return api_success(result, message)


@requirement_bp.route("/<int:pid>/<stage_name>/approve-all", methods=["PUT"])
@require_role("admin")
def approve_all(pid, stage_name):
    data = json_body()
    result = stage_pipeline.approve_all_in_stage(
        pid, stage_name, comments=data.get("comments"), reviewer_id=current_user().id,
    )
    return api_success(result, f"{result['approved_count']} requirements approved")


@requirement_bp.route("/<int:pid>/<stage_name>/<requirement_id>/documents", methods=["GET"])
def requirement_history(pid, stage_name, requirement_id):
    project = get_project_for_user(pid, current_user())
    stage_pipeline.require_requirement(stage_name, requirement_id)
    current = document_register.current_document(project.id, stage_name, requirement_id)
    current_id = current.id if current else None
    docs = document_register.history(project.id, stage_name, requirement_id)
    return api_success([d.to_dict(is_current=d.id == current_id) for d in docs], total=len(docs))


@requirement_bp.route("/<int:pid>/stats", methods=["GET"])
def project_requirement_stats(pid):
    project = get_project_for_user(pid, current_user())
    return api_success(requirement_stats(project.id))
