"""
Project Approval Portal
Document Blueprint.

Endpoints:
    POST   /api/v1/documents                    — upload (multipart: document, project_id,
                                                  stage_name, requirement_id)
    GET    /api/v1/documents/project/<id>       — project documents (?stage=, ?include_history=)
    GET    /api/v1/documents/mine               — documents uploaded by the current user
    GET    /api/v1/documents/search?q=          — search by file name
    GET    /api/v1/documents/stats              — global counters (admin)
    GET    /api/v1/documents/<id>               — metadata
    GET    /api/v1/documents/<id>/download      — file contents
    DELETE /api/v1/documents/<id>               — delete (admin or uploader)
"""

import io
import logging

from flask import Blueprint, request, send_file

from portal.auth import current_user, require_role
from portal.core.exceptions import NotFoundError, PermissionDenied, ValidationError
from portal.services import document_register
from portal.services.file_storage import get_storage
from portal.services.project_service import get_project_for_user
from portal.services.upload_service import upload_document
from portal.utils.errors import api_success, register_error_handlers

logger = logging.getLogger(__name__)

document_bp = Blueprint("documents", __name__, url_prefix="/api/v1/documents")
register_error_handlers(document_bp)


def _accessible_document(document_id):
    user = current_user()
    doc = document_register.get_document(document_id)
    if not document_register.can_access(doc, user):
        raise PermissionDenied(user.id, "view_document", "not the project owner or uploader")
    return doc


@document_bp.route("", methods=["POST"])
def upload():
    file = request.files.get("document")
    if file is None:
        raise ValidationError("No file provided", details={"document": "required"})
    project_id = request.form.get("project_id", type=int)
    stage_name = request.form.get("stage_name", "").strip()
    requirement_id = request.form.get("requirement_id", "").strip()
    missing = [name for name, value in (
        ("project_id", project_id), ("stage_name", stage_name), ("requirement_id", requirement_id),
    ) if not value]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={name: "required" for name in missing},
        )

    result = upload_document(
        project_id, stage_name, requirement_id,
        filename=file.filename,
        data=file.read(),
        user=current_user(),
        mime_type=file.mimetype or None,
    )
    message = "Corrected document uploaded" if result.is_correction else "Document uploaded"
    return api_success(result.to_dict(), message, status=201)


@document_bp.route("/project/<int:project_id>", methods=["GET"])
def project_documents(project_id):
    project = get_project_for_user(project_id, current_user())
    include_history = request.args.get("include_history", "false").lower() in ("1", "true", "yes")
    docs = document_register.list_for_project(
        project.id, stage_name=request.args.get("stage") or None, include_history=include_history,
    )
    return api_success(docs, total=len(docs))


@document_bp.route("/mine", methods=["GET"])
def my_documents():
    docs = document_register.list_for_uploader(current_user().id)
    return api_success([d.to_dict() for d in docs], total=len(docs))


@document_bp.route("/search", methods=["GET"])
def search_documents():
    docs = document_register.search_by_name(request.args.get("q"), current_user())
    return api_success([d.to_dict() for d in docs], total=len(docs))


@document_bp.route("/stats", methods=["GET"])
@require_role("admin")
def document_stats():
    return api_success(document_register.stats())


@document_bp.route("/<int:document_id>", methods=["GET"])
def get_document(document_id):
    doc = _accessible_document(document_id)
    current = document_register.current_document(doc.project_id, doc.stage_name, doc.requirement_id)
    return api_success(doc.to_dict(is_current=current is not None and current.id == doc.id))


@document_bp.route("/<int:document_id>/download", methods=["GET"])
def download_document(document_id):
    doc = _accessible_document(document_id)
    try:
        data = get_storage().fetch(doc.stored_handle)
    except FileNotFoundError:
        logger.error("Stored file missing for document %s handle=%s", doc.id, doc.stored_handle,
                     extra={"project_id": doc.project_id})
        raise NotFoundError(resource="File", resource_id=document_id)
    return send_file(
        io.BytesIO(data),
        mimetype=doc.mime_type or "application/octet-stream",
        as_attachment=True,
        download_name=doc.original_name,
    )


@document_bp.route("/<int:document_id>", methods=["DELETE"])
def delete_document(document_id):
    user = current_user()
    document_register.delete(document_id, requester_id=user.id, requester_role=user.role)
    return api_success({"id": document_id}, "Document deleted")
