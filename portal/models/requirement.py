"""
Project Approval Portal
Requirement validation model.

One row per (project, stage, requirement) once the requirement has been
touched by an upload or a review. A missing row means ``pending``.
The table is provisioned lazily by
``portal.services.requirement_validation.ensure_validation_table``.
"""

from datetime import datetime, timezone

from portal.models import db

VALIDATION_STATUSES = ("pending", "in-review", "approved", "rejected")


def _utcnow():
    return datetime.now(timezone.utc)


class RequirementValidation(db.Model):
    __tablename__ = "requirement_validations"
    __table_args__ = (
        db.UniqueConstraint(
            "project_id", "stage_name", "requirement_id", name="uq_requirement_validation",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    stage_name = db.Column(db.String(30), nullable=False)
    requirement_id = db.Column(db.String(60), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending | in-review | approved | rejected")
    admin_comments = db.Column(db.Text, nullable=True)
    reviewed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    current_document_id = db.Column(
        db.Integer, db.ForeignKey("documents.id", ondelete="SET NULL"), nullable=True,
        comment="Document the reviewer is looking at",
    )

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    reviewer = db.relationship("User", foreign_keys=[reviewed_by])

    @property
    def key(self):
        return (self.project_id, self.stage_name, self.requirement_id)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "stage_name": self.stage_name,
            "requirement_id": self.requirement_id,
            "status": self.status,
            "admin_comments": self.admin_comments,
            "reviewed_by": self.reviewed_by,
            "reviewed_by_name": self.reviewer.display_name if self.reviewer else None,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "current_document_id": self.current_document_id,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<RequirementValidation {self.project_id}/{self.stage_name}/{self.requirement_id}: {self.status}>"
