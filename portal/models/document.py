"""
Project Approval Portal
Document model.

Every upload appends a row; rows are only removed by an explicit delete.
Which row is "current" for a requirement is not stored here but on the
requirement's validation row (``RequirementValidation.current_document_id``).
"""

from datetime import datetime, timezone

from portal.models import db


class Document(db.Model):
    __tablename__ = "documents"
    __table_args__ = (
        db.Index("ix_documents_requirement", "project_id", "stage_name", "requirement_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    stage_name = db.Column(db.String(30), nullable=False)
    requirement_id = db.Column(db.String(60), nullable=False)

    stored_handle = db.Column(db.String(255), nullable=False, comment="File storage handle")
    original_name = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.Integer, nullable=False, default=0)
    mime_type = db.Column(db.String(150), nullable=True)

    uploaded_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    uploaded_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    project = db.relationship("Project")
    uploader = db.relationship("User", foreign_keys=[uploaded_by])

    def to_dict(self, is_current=None):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "stage_name": self.stage_name,
            "requirement_id": self.requirement_id,
            "original_name": self.original_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "uploaded_by": self.uploaded_by,
            "uploaded_by_name": self.uploader.display_name if self.uploader else None,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }
        if is_current is not None:
            d["is_current"] = is_current
        return d

    def __repr__(self):
        return f"<Document {self.id}: {self.original_name}>"
