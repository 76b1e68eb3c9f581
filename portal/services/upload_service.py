"""
Upload ingestion.

Accepts a document for one requirement of one stage and moves the workflow
forward:

    validate → classify (correction?) → store artifact → append document
    → validation ``in-review`` → stage ``pending|rejected → in-progress``
    → commit → notify

Anything failing after the artifact was written and before the commit
rolls back the session and deletes the artifact again. A failed cleanup is
logged and the original error is re-raised. Notifications go out only after
the commit and can never fail the upload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app

from portal.core.exceptions import PermissionDenied, ValidationError
from portal.models import db
from portal.models.document import Document
from portal.services import correction_detector, document_register
from portal.services import requirement_validation as validations
from portal.services.file_storage import delete_file_quietly, file_extension, get_storage
from portal.services.notification import dispatch
from portal.services.project_service import can_access_project, get_project
from portal.services.stage_pipeline import mark_stage_in_progress, require_requirement

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    document: Document
    is_correction: bool
    previous_status: str

    def to_dict(self) -> dict:
        return {
            "document": self.document.to_dict(is_current=True),
            "is_correction": self.is_correction,
            "previous_status": self.previous_status,
            "status": "in-review",
        }


def _validate_file(requirement, filename: str | None, data: bytes) -> None:
    if not filename:
        raise ValidationError("A file is required", details={"document": "missing"})
    if not data:
        raise ValidationError("The uploaded file is empty", details={"document": "empty"})

    ext = file_extension(filename)
    if not requirement.accepts_extension(ext):
        raise ValidationError(
            f"File type '.{ext}' is not accepted for {requirement.name}",
            details={"accepted_types": list(requirement.accepted_types)},
        )

    limit = min(requirement.max_size, current_app.config.get("MAX_UPLOAD_BYTES", requirement.max_size))
    if len(data) > limit:
        raise ValidationError(
            f"File exceeds the maximum size of {limit // (1024 * 1024)} MB",
            details={"max_size": limit, "size": len(data)},
        )


def upload_document(
    project_id: int,
    stage_name: str,
    requirement_id: str,
    filename: str | None,
    data: bytes,
    user,
    mime_type: str | None = None,
) -> UploadResult:
    """Ingest one document upload for the given user.

    Raises:
        NotFoundError: project missing or deleted.
        PermissionDenied: user is neither owner nor admin.
        ValidationError: bad stage, requirement or file.
    """
    project = get_project(project_id)
    if not can_access_project(project, user):
        raise PermissionDenied(user.id, "upload_document", "not the project owner")
    requirement = require_requirement(stage_name, requirement_id)
    _validate_file(requirement, filename, data)

    validations.ensure_validation_table()
    classification = correction_detector.classify(project.id, stage_name, requirement_id)

    stored = get_storage().store(data, filename, mime_type=mime_type)
    try:
        doc = document_register.append(project.id, stage_name, requirement_id, stored, user.id)
        validations.upsert_status(
            project.id, stage_name, requirement_id, "in-review",
            comments=correction_detector.review_comment(classification, filename),
        )
        mark_stage_in_progress(project, stage_name)
        db.session.commit()
    except Exception:
        db.session.rollback()
        if not delete_file_quietly(stored.handle):
            logger.error(
                "Orphaned upload artifact handle=%s", stored.handle,
                extra={"project_id": project_id, "stage": stage_name, "requirement_id": requirement_id},
            )
        raise

    logger.info(
        "Document uploaded id=%s correction=%s", doc.id, classification.is_correction,
        extra={"project_id": project.id, "stage": stage_name, "requirement_id": requirement_id},
    )

    payload = {
        "project_id": project.id,
        "stage_name": stage_name,
        "requirement_id": requirement_id,
        "file_name": filename,
        "actor_id": user.id,
        "previous_status": classification.previous_status,
    }
    dispatch("document_uploaded_confirmation", payload)
    dispatch("document_corrected" if classification.is_correction else "document_uploaded", payload)

    return UploadResult(
        document=doc,
        is_correction=classification.is_correction,
        previous_status=classification.previous_status,
    )
