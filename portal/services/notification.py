"""
Project Approval Portal
Notification Service.

Two layers:
    - ``dispatch(kind, payload)``: fire-and-forget entry point used by the
      workflow services *after* they commit. Writes in-app notifications and
      sends templated email. It never raises into the caller; a failure rolls
      back only the notification work and is logged.
    - ``NotificationService``: queries and read tracking for the in-app inbox.

Routing:
    document_uploaded / document_corrected  → reviewers (ADMIN_EMAIL + admin users)
    document_uploaded_confirmation          → the uploader
    everything else                         → the project owner
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app

from portal.models import db
from portal.models.auth import User
from portal.models.notification import NOTIFICATION_KINDS, Notification
from portal.models.project import Project
from portal.services.email_service import EmailService
from portal.stage_requirements import requirement_name, stage_display_name

logger = logging.getLogger(__name__)

REVIEWER_KINDS = {"document_uploaded", "document_corrected"}

# kind → (title, message, severity)
_MESSAGES = {
    "document_uploaded_confirmation": (
        "Document received",
        "{file_name} for {requirement_name} ({stage_display}) is awaiting review.",
        "info",
    ),
    "document_uploaded": (
        "New document in {project_code}",
        "{uploader_name} uploaded {file_name} for {requirement_name} ({stage_display}).",
        "info",
    ),
    "document_corrected": (
        "Corrected document in {project_code}",
        "{uploader_name} uploaded a correction for {requirement_name} ({stage_display}).",
        "warning",
    ),
    "requirement_approved": (
        "Requirement approved",
        "{requirement_name} ({stage_display}) was approved.",
        "success",
    ),
    "requirement_rejected": (
        "Requirement rejected",
        "{requirement_name} ({stage_display}) was rejected: {comments}",
        "error",
    ),
    "stage_approved": ("Stage approved", "{stage_display} of {project_code} was approved.", "success"),
    "stage_rejected": ("Stage rejected", "{stage_display} of {project_code} was rejected: {comments}", "error"),
    "stage_in_review": ("Stage in review", "{stage_display} of {project_code} is in review.", "info"),
    "project_deleted": ("Project deleted", "{project_code} was deleted by an administrator.", "warning"),
    "project_restored": ("Project restored", "{project_code} was restored.", "success"),
}


# ═══════════════════════════════════════════════════════════════════════════
#  Dispatcher
# ═══════════════════════════════════════════════════════════════════════════


def dispatch(kind: str, payload: dict) -> int:
    """Deliver one workflow event. Returns the number of recipients reached."""
    if not current_app.config.get("NOTIFICATIONS_ENABLED", True):
        return 0
    try:
        delivered = _deliver(kind, payload)
        db.session.commit()
        return delivered
    except Exception:
        db.session.rollback()
        logger.exception(
            "Notification dispatch failed kind=%s", kind,
            extra={"project_id": payload.get("project_id"), "stage": payload.get("stage_name")},
        )
        return 0


def _context(project: Project, payload: dict) -> dict:
    stage_name = payload.get("stage_name")
    req_id = payload.get("requirement_id")
    actor = db.session.get(User, payload["actor_id"]) if payload.get("actor_id") else None
    return {
        "project_id": project.id,
        "project_code": project.code,
        "project_title": project.title,
        "stage_display": stage_display_name(stage_name) if stage_name else "",
        "requirement_name": requirement_name(stage_name, req_id) if req_id else "",
        "file_name": payload.get("file_name", ""),
        "uploader_name": actor.display_name if actor else "A user",
        "comments": payload.get("comments") or "",
    }


def _recipients(kind: str, project: Project, payload: dict) -> list[User]:
    if kind in REVIEWER_KINDS:
        return list(User.query.filter_by(role="admin").order_by(User.id))
    if kind == "document_uploaded_confirmation":
        uploader = db.session.get(User, payload["actor_id"]) if payload.get("actor_id") else None
        return [uploader] if uploader else []
    return [project.owner] if project.owner else []


def _deliver(kind: str, payload: dict) -> int:
    if kind not in NOTIFICATION_KINDS:
        raise ValueError(f"Unknown notification kind: {kind}")
    project = db.session.get(Project, payload["project_id"])
    if project is None:
        logger.warning("Notification skipped, project %s missing", payload["project_id"])
        return 0

    context = _context(project, payload)
    title_fmt, message_fmt, severity = _MESSAGES[kind]
    title = title_fmt.format(**context)
    message = message_fmt.format(**context)
    recipients = _recipients(kind, project, payload)

    for user in recipients:
        db.session.add(Notification(
            project_id=project.id,
            recipient_id=user.id,
            kind=kind,
            title=title,
            message=message,
            severity=severity,
        ))

    admin_email = current_app.config.get("ADMIN_EMAIL")
    if kind in REVIEWER_KINDS and admin_email:
        targets = [(admin_email, "Reviewers")]
    else:
        targets = [(u.email, u.display_name) for u in recipients if u.email]
    for email, name in targets:
        EmailService.send_from_template(
            to_email=email,
            to_name=name,
            template_name=kind,
            context={**context, "recipient_name": name},
            project_id=project.id,
        )

    logger.info(
        "Notification %s delivered to %d user(s), %d email(s)", kind, len(recipients), len(targets),
        extra={"project_id": project.id, "stage": payload.get("stage_name")},
    )
    return len(recipients)


# ═══════════════════════════════════════════════════════════════════════════
#  Inbox
# ═══════════════════════════════════════════════════════════════════════════


class NotificationService:
    """Stateless service class for in-app notification queries."""

    @staticmethod
    def list_for_recipient(recipient_id, project_id=None, unread_only=False, limit=50, offset=0):
        """Notifications for a user, newest first. Returns (items, total)."""
        q = Notification.query.filter_by(recipient_id=recipient_id)
        if project_id:
            q = q.filter_by(project_id=project_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(recipient_id):
        return Notification.query.filter_by(recipient_id=recipient_id, is_read=False).count()

    @staticmethod
    def mark_read(notification_id, recipient_id):
        """Mark one of the user's notifications as read. None when not theirs."""
        notif = db.session.get(Notification, notification_id)
        if notif is None or notif.recipient_id != recipient_id:
            return None
        notif.mark_read()
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(recipient_id):
        now = datetime.now(timezone.utc)
        count = (
            Notification.query.filter_by(recipient_id=recipient_id, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        db.session.commit()
        return count
