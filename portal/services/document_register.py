"""
Document Register.

Append-only history of uploaded documents per requirement, plus the
"current document" pointer kept on the requirement's validation row.

Business rules:
    - ``append`` never removes older rows. The new row becomes current.
    - ``delete`` is allowed for admins and the original uploader only.
    - Deleting the current document moves the pointer to the most recently
      uploaded remaining one. Deleting the last document of a requirement
      resets its validation to ``pending``.
    - The stored artifact is removed after the row commit, best effort.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, or_, select

from portal.core.exceptions import NotFoundError, PermissionDenied, ValidationError
from portal.models import db
from portal.models.document import Document
from portal.models.project import Project
from portal.services import requirement_validation as validations
from portal.services.file_storage import StoredFile, delete_file_quietly

logger = logging.getLogger(__name__)

RESET_COMMENT = "All documents removed - requirement reset to pending"
MIN_SEARCH_LENGTH = 2


def _newest_first(stmt):
    return stmt.order_by(Document.uploaded_at.desc(), Document.id.desc())


def _key_filter(project_id, stage_name, requirement_id):
    return (
        Document.project_id == project_id,
        Document.stage_name == stage_name,
        Document.requirement_id == requirement_id,
    )


def _is_admin(user) -> bool:
    return getattr(user, "role", None) == "admin"


# ── Writes ───────────────────────────────────────────────────────────────────


def append(project_id: int, stage_name: str, requirement_id: str,
           stored: StoredFile, uploader_id: int | None) -> Document:
    """Record a newly stored artifact and make it the current document."""
    doc = Document(
        project_id=project_id,
        stage_name=stage_name,
        requirement_id=requirement_id,
        stored_handle=stored.handle,
        original_name=stored.original_name,
        file_size=stored.size,
        mime_type=stored.mime_type,
        uploaded_by=uploader_id,
    )
    db.session.add(doc)
    db.session.flush()
    validations.set_current_document(project_id, stage_name, requirement_id, doc.id)
    logger.info(
        "Document appended id=%s", doc.id,
        extra={"project_id": project_id, "stage": stage_name, "requirement_id": requirement_id},
    )
    return doc


def delete(document_id: int, requester_id: int | None, requester_role: str | None) -> bool:
    """Remove a document and keep the requirement's pointer and status consistent.

    Raises:
        NotFoundError: unknown document id.
        PermissionDenied: requester is neither admin nor the uploader.
    """
    doc = db.session.get(Document, document_id)
    if doc is None:
        raise NotFoundError(resource="Document", resource_id=document_id)
    if requester_role != "admin" and doc.uploaded_by != requester_id:
        raise PermissionDenied(requester_id, "delete_document", "only the uploader or an admin")

    key = (doc.project_id, doc.stage_name, doc.requirement_id)
    handle = doc.stored_handle

    validation = validations.get_validation(*key)
    was_current = validation is not None and validation.current_document_id == doc.id
    if was_current:
        validation.current_document_id = None
        db.session.flush()

    db.session.delete(doc)
    db.session.flush()

    remaining = history(*key)
    if not remaining:
        validations.upsert_status(*key, "pending", comments=RESET_COMMENT)
    elif was_current:
        validation.current_document_id = remaining[0].id
    db.session.commit()

    logger.info(
        "Document deleted id=%s remaining=%d", document_id, len(remaining),
        extra={"project_id": key[0], "stage": key[1], "requirement_id": key[2]},
    )
    delete_file_quietly(handle)
    return True


# ── Reads ────────────────────────────────────────────────────────────────────


def get_document(document_id: int) -> Document:
    doc = db.session.get(Document, document_id)
    if doc is None:
        raise NotFoundError(resource="Document", resource_id=document_id)
    return doc


def history(project_id: int, stage_name: str, requirement_id: str) -> list[Document]:
    """Every document of a requirement, newest first."""
    stmt = select(Document).where(*_key_filter(project_id, stage_name, requirement_id))
    return list(db.session.execute(_newest_first(stmt)).scalars())


def current_document(project_id: int, stage_name: str, requirement_id: str) -> Document | None:
    validation = validations.get_validation(project_id, stage_name, requirement_id)
    if validation is None or validation.current_document_id is None:
        return None
    return db.session.get(Document, validation.current_document_id)


def current_document_ids(project_id: int) -> set[int]:
    return {
        v.current_document_id
        for v in validations.get_by_project(project_id)
        if v.current_document_id is not None
    }


def list_for_project(project_id: int, stage_name: str | None = None,
                     include_history: bool = False) -> list[dict]:
    """Serialised documents of a project, current ones only unless asked."""
    stmt = select(Document).where(Document.project_id == project_id)
    if stage_name:
        stmt = stmt.where(Document.stage_name == stage_name)
    docs = db.session.execute(_newest_first(stmt)).scalars()
    current_ids = current_document_ids(project_id)
    return [
        d.to_dict(is_current=d.id in current_ids)
        for d in docs
        if include_history or d.id in current_ids
    ]


def list_for_uploader(user_id: int) -> list[Document]:
    stmt = select(Document).join(Project, Project.id == Document.project_id).where(
        Document.uploaded_by == user_id, Project.deleted_at.is_(None),
    )
    return list(db.session.execute(_newest_first(stmt)).scalars())


def search_by_name(term: str | None, user) -> list[Document]:
    """Case-insensitive file-name search. Non-admins only see their own work."""
    term = (term or "").strip()
    if len(term) < MIN_SEARCH_LENGTH:
        raise ValidationError(
            f"Search term must be at least {MIN_SEARCH_LENGTH} characters",
            details={"q": term},
        )
    # Wildcards in the term match literally
    pattern = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    stmt = (
        select(Document)
        .join(Project, Project.id == Document.project_id)
        .where(Document.original_name.ilike(f"%{pattern}%", escape="\\"), Project.deleted_at.is_(None))
    )
    if not _is_admin(user):
        stmt = stmt.where(or_(Project.owner_id == user.id, Document.uploaded_by == user.id))
    return list(db.session.execute(_newest_first(stmt).limit(100)).scalars())


def can_access(doc: Document, user) -> bool:
    if _is_admin(user):
        return True
    if doc.uploaded_by == user.id:
        return True
    project = db.session.get(Project, doc.project_id)
    return project is not None and project.owner_id == user.id


def stats() -> dict:
    """Global document counters for the admin dashboard."""
    total, total_size = db.session.execute(
        select(func.count(Document.id), func.coalesce(func.sum(Document.file_size), 0))
    ).one()
    by_stage = dict(db.session.execute(
        select(Document.stage_name, func.count(Document.id)).group_by(Document.stage_name)
    ).all())
    by_type = dict(db.session.execute(
        select(Document.mime_type, func.count(Document.id)).group_by(Document.mime_type)
    ).all())
    return {
        "total_documents": total,
        "total_size": int(total_size),
        "by_stage": by_stage,
        "by_mime_type": by_type,
    }
