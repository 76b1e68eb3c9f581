"""
Project Approval Portal
Project Blueprint.

Endpoints:
    POST   /api/v1/projects                          — create (current user owns it)
    GET    /api/v1/projects                          — list (admins: all, users: own)
    GET    /api/v1/projects/mine                     — current user's projects
    GET    /api/v1/projects/deleted                  — soft-deleted projects (admin)
    GET    /api/v1/projects/stats                    — dashboard counters (admin)
    GET    /api/v1/projects/<id>                     — detail with stages
    PUT    /api/v1/projects/<id>/status              — set project status (admin)
    PUT    /api/v1/projects/<id>/stages/<stage>      — set stage status (admin)
    DELETE /api/v1/projects/<id>                     — soft delete (admin)
    POST   /api/v1/projects/<id>/restore             — restore (admin)
    DELETE /api/v1/projects/<id>/permanent           — purge (admin, confirm token)
"""

import logging

from flask import Blueprint, request

from portal.auth import current_user, require_role
from portal.blueprints import json_body, paginate_query
from portal.services import project_service, stage_pipeline
from portal.services.requirement_checklist import requirement_stats
from portal.utils.errors import api_success, register_error_handlers

logger = logging.getLogger(__name__)

project_bp = Blueprint("projects", __name__, url_prefix="/api/v1/projects")
register_error_handlers(project_bp)


@project_bp.route("", methods=["POST"])
def create_project():
    data = json_body()
    project = project_service.create_project(
        title=data.get("title", ""),
        description=data.get("description"),
        owner_id=current_user().id,
    )
    return api_success(project.to_dict(include_stages=True), "Project created", status=201)


@project_bp.route("", methods=["GET"])
def list_projects():
    user = current_user()
    owner_id = request.args.get("owner_id", type=int) if user.is_admin else user.id
    query = project_service.list_projects(
        status=request.args.get("status") or None,
        current_stage=request.args.get("stage") or None,
        owner_id=owner_id,
    )
    items, total = paginate_query(query)
    return api_success([p.to_dict() for p in items], total=total)


@project_bp.route("/mine", methods=["GET"])
def my_projects():
    query = project_service.list_projects(owner_id=current_user().id)
    items, total = paginate_query(query)
    return api_success([p.to_dict(include_stages=True) for p in items], total=total)


@project_bp.route("/deleted", methods=["GET"])
@require_role("admin")
def deleted_projects():
    items, total = paginate_query(project_service.list_deleted_projects())
    return api_success([p.to_dict() for p in items], total=total)


@project_bp.route("/stats", methods=["GET"])
@require_role("admin")
def project_stats():
    stats = project_service.project_stats()
    stats["deletion"] = project_service.deletion_stats()
    return api_success(stats)


@project_bp.route("/<int:project_id>", methods=["GET"])
def get_project(project_id):
    project = project_service.get_project_for_user(project_id, current_user())
    data = project.to_dict(include_stages=True)
    data["requirement_stats"] = requirement_stats(project.id)
    return api_success(data)


@project_bp.route("/<int:project_id>/status", methods=["PUT"])
@require_role("admin")
def set_project_status(project_id):
    data = json_body()
    project = stage_pipeline.set_project_status(
        project_id, data.get("status", ""), comments=data.get("comments"),
    )
    return api_success(project.to_dict(), "Project status updated")


@project_bp.route("/<int:project_id>/stages/<stage_name>", methods=["PUT"])
@require_role("admin")
def set_stage_status(project_id, stage_name):
    data = json_body()
    result = stage_pipeline.set_stage_status(
        project_id, stage_name, data.get("status", ""),
        comments=data.get("comments"), reviewer_id=current_user().id,
    )
    return api_success(result, "Stage status updated")


@project_bp.route("/<int:project_id>", methods=["DELETE"])
@require_role("admin")
def soft_delete_project(project_id):
    data = json_body()
    project = project_service.soft_delete_project(
        project_id, deleted_by=current_user().id, reason=data.get("reason"),
    )
    return api_success(project.to_dict(), "Project deleted")


@project_bp.route("/<int:project_id>/restore", methods=["POST"])
@require_role("admin")
def restore_project(project_id):
    project = project_service.restore_project(project_id, restored_by=current_user().id)
    return api_success(project.to_dict(), "Project restored")


@project_bp.route("/<int:project_id>/permanent", methods=["DELETE"])
@require_role("admin")
def permanent_delete_project(project_id):
    confirm = json_body().get("confirm") or request.args.get("confirm")
    result = project_service.permanent_delete_project(project_id, confirm)
    logger.warning("Project %s permanently deleted by user %s", result["code"], current_user().id,
                   extra={"project_id": project_id})
    return api_success(result, "Project permanently deleted")
