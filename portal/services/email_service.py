"""
Project Approval Portal
Email Service.

Provides email sending with template support.
When SMTP is not configured, emails are logged but not sent (dev/test mode).

Uses:
    - MAIL_* config (MAIL_SERVER, MAIL_PORT, etc.)
    - Falls back to logging-only mode when SMTP is not configured
    - All emails are recorded in EmailLog for audit

Configuration (env vars):
    MAIL_SERVER     SMTP host (default: None → log-only mode)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use TLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
    MAIL_DEFAULT_SENDER  Default from address
"""

from __future__ import annotations

import logging
import smtplib
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from flask import current_app
from markupsafe import escape

from portal.models import db
from portal.models.notification import EmailLog

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Email Templates
# ═══════════════════════════════════════════════════════════════════════════

_LAYOUT = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <div style="background: {header_color}; color: white; padding: 16px 24px; border-radius: 8px 8px 0 0;">
        <h2 style="margin: 0; font-size: 18px;">{heading}</h2>
        <p style="margin: 4px 0 0; font-size: 13px;">{project_code} - {project_title}</p>
    </div>
    <div style="background: #f8fafc; padding: 24px; border: 1px solid #e2e8f0; border-top: none;">
        {body}
        <p><a href="{portal_url}/projects/{project_id}">Open the project</a></p>
    </div>
    <div style="background: #f1f5f9; padding: 12px 24px; border-radius: 0 0 8px 8px;
                border: 1px solid #e2e8f0; border-top: none; text-align: center;">
        <p style="color: #94a3b8; font-size: 12px; margin: 0;">
            Project Approval Portal - Automated notification
        </p>
    </div>
</div>
"""


def _template(subject: str, heading: str, header_color: str, body: str) -> dict[str, str]:
    return {
        "subject": subject,
        "html": _LAYOUT.replace("{heading}", heading)
                       .replace("{header_color}", header_color)
                       .replace("{body}", body),
    }


_TEMPLATES: dict[str, dict[str, str]] = {
    "document_uploaded_confirmation": _template(
        "[Approval Portal] Document received: {requirement_name}",
        "Document received", "#1e293b",
        "<p>Hello {recipient_name},</p>"
        "<p>Your document <strong>{file_name}</strong> for <em>{requirement_name}</em> "
        "({stage_display}) was received and is awaiting review.</p>",
    ),
    "document_uploaded": _template(
        "[Approval Portal] New document to review: {project_code}",
        "New document to review", "#3b82f6",
        "<p><strong>{uploader_name}</strong> uploaded <strong>{file_name}</strong> "
        "for <em>{requirement_name}</em> ({stage_display}).</p>",
    ),
    "document_corrected": _template(
        "[Approval Portal] Corrected document to review: {project_code}",
        "Corrected document submitted", "#f59e0b",
        "<p><strong>{uploader_name}</strong> uploaded a corrected document "
        "<strong>{file_name}</strong> for <em>{requirement_name}</em> ({stage_display}), "
        "which was previously rejected.</p>",
    ),
    "requirement_approved": _template(
        "[Approval Portal] Requirement approved: {requirement_name}",
        "Requirement approved", "#22c55e",
        "<p>The requirement <em>{requirement_name}</em> of {stage_display} was approved.</p>"
        "<p>{comments}</p>",
    ),
    "requirement_rejected": _template(
        "[Approval Portal] Requirement rejected: {requirement_name}",
        "Requirement rejected", "#ef4444",
        "<p>The requirement <em>{requirement_name}</em> of {stage_display} was rejected. "
        "Please upload a corrected document.</p><p>{comments}</p>",
    ),
    "stage_approved": _template(
        "[Approval Portal] Stage approved: {stage_display}",
        "Stage approved", "#22c55e",
        "<p>The stage <strong>{stage_display}</strong> was approved.</p><p>{comments}</p>",
    ),
    "stage_rejected": _template(
        "[Approval Portal] Stage rejected: {stage_display}",
        "Stage rejected", "#ef4444",
        "<p>The stage <strong>{stage_display}</strong> was rejected.</p><p>{comments}</p>",
    ),
    "stage_in_review": _template(
        "[Approval Portal] Stage in review: {stage_display}",
        "Stage in review", "#3b82f6",
        "<p>The stage <strong>{stage_display}</strong> is now being reviewed.</p><p>{comments}</p>",
    ),
    "project_deleted": _template(
        "[Approval Portal] Project deleted: {project_code}",
        "Project deleted", "#64748b",
        "<p>Your project was deleted by an administrator.</p><p>{comments}</p>",
    ),
    "project_restored": _template(
        "[Approval Portal] Project restored: {project_code}",
        "Project restored", "#22c55e",
        "<p>Your project was restored and is active again.</p>",
    ),
}


class EmailService:
    """
    Email sending service with template support.

    In development/test mode (no MAIL_SERVER configured), emails are
    logged to the database but not actually sent via SMTP.
    """

    @staticmethod
    def is_configured() -> bool:
        """Check if SMTP is configured."""
        return bool(current_app.config.get("MAIL_SERVER"))

    @staticmethod
    def get_template(template_name: str) -> dict[str, str] | None:
        return _TEMPLATES.get(template_name)

    @classmethod
    def send(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        subject: str,
        html_body: str,
        template_name: str | None = None,
        project_id: int | None = None,
    ) -> EmailLog:
        """
        Send an email and log it.

        If SMTP is not configured, the email is logged with status='sent'
        to simulate sending without actual delivery.
        """
        log = EmailLog(
            recipient_email=to_email,
            recipient_name=to_name,
            subject=subject,
            template_name=template_name,
            status="queued",
            project_id=project_id,
        )
        db.session.add(log)
        db.session.flush()

        if not cls.is_configured():
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            logger.info(
                "Email (dev mode): to=%s subject='%s' template=%s",
                to_email, subject, template_name,
            )
            return log

        try:
            cls._send_smtp(to_email=to_email, to_name=to_name,
                           subject=subject, html_body=html_body)
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            logger.info("Email sent: to=%s subject='%s'", to_email, subject)
        except Exception as exc:
            log.status = "failed"
            log.error_message = str(exc)[:1000]
            logger.error("Email failed: to=%s error=%s", to_email, exc)

        return log

    @classmethod
    def send_from_template(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        template_name: str,
        context: dict[str, Any],
        project_id: int | None = None,
    ) -> EmailLog | None:
        """
        Send an email using a named template.

        Template variables are interpolated from the context dict; values are
        HTML-escaped in the body, the subject stays plain text.
        """
        template = cls.get_template(template_name)
        if not template:
            logger.warning("Email template not found: %s", template_name)
            return None

        context = {"portal_url": current_app.config.get("PORTAL_URL", ""), **context}
        subject = template["subject"].format_map(_SafeDict(context))
        html_context = {key: escape(value) for key, value in context.items()}
        html_body = template["html"].format_map(_SafeDict(html_context))

        return cls.send(
            to_email=to_email,
            to_name=to_name,
            subject=subject,
            html_body=html_body,
            template_name=template_name,
            project_id=project_id,
        )

    @staticmethod
    def _send_smtp(*, to_email: str, to_name: str | None,
                   subject: str, html_body: str) -> None:
        """Actually send via SMTP."""
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER", f"noreply@{server}")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = f"{to_name} <{to_email}>" if to_name else to_email
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)


class _SafeDict(dict):
    """Dict that returns {key} for missing keys instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"
