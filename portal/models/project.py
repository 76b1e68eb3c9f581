"""
Project Approval Portal
Project domain model.

Models:
    - Project: a submission moving through the five approval stages
    - ProjectStage: one row per (project, stage) holding the stage status

A project is always created together with its five ProjectStage rows, all
``pending``, and ``current_stage = "formalization"``.
"""

from datetime import datetime, timezone

from portal.models import db
from portal.models.soft_delete import SoftDeleteMixin
from portal.stage_requirements import STAGE_ORDER, stage_index

# ── Constants ────────────────────────────────────────────────────────────────

PROJECT_STATUSES = ("pending", "in-progress", "approved", "rejected")
STAGE_STATUSES = ("pending", "in-progress", "completed", "rejected")


def _utcnow():
    return datetime.now(timezone.utc)


class Project(SoftDeleteMixin, db.Model):
    """Approval project owned by a single user."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(30), nullable=False, unique=True, comment="PROJ-YYYY-NNN")
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    owner_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending | in-progress | approved | rejected")
    current_stage = db.Column(db.String(30), nullable=False, default=STAGE_ORDER[0])
    admin_comments = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    owner = db.relationship("User", back_populates="projects", foreign_keys=[owner_id])
    stages = db.relationship(
        "ProjectStage", back_populates="project", cascade="all, delete-orphan",
    )

    def ordered_stages(self):
        """Stage rows in pipeline order."""
        return sorted(self.stages, key=lambda s: stage_index(s.stage_name))

    def get_stage(self, stage_name):
        for stage in self.stages:
            if stage.stage_name == stage_name:
                return stage
        return None

    def to_dict(self, include_stages=False):
        d = {
            "id": self.id,
            "code": self.code,
            "title": self.title,
            "description": self.description,
            "owner_id": self.owner_id,
            "owner_name": self.owner.display_name if self.owner else None,
            "status": self.status,
            "current_stage": self.current_stage,
            "admin_comments": self.admin_comments,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
            "deleted_by": self.deleted_by,
            "deletion_reason": self.deletion_reason,
        }
        if include_stages:
            d["stages"] = [s.to_dict() for s in self.ordered_stages()]
        return d

    def __repr__(self):
        return f"<Project {self.id}: {self.code}>"


class ProjectStage(db.Model):
    """Status of one stage of one project."""

    __tablename__ = "project_stages"
    __table_args__ = (
        db.UniqueConstraint("project_id", "stage_name", name="uq_project_stage"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    stage_name = db.Column(db.String(30), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending | in-progress | completed | rejected")
    admin_comments = db.Column(db.Text, nullable=True)
    reviewed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    project = db.relationship("Project", back_populates="stages")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "stage_name": self.stage_name,
            "status": self.status,
            "admin_comments": self.admin_comments,
            "reviewed_by": self.reviewed_by,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ProjectStage {self.project_id}/{self.stage_name}: {self.status}>"
