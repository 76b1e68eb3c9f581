"""
Soft Delete Mixin

Adds ``deleted_at`` / ``deleted_by`` / ``deletion_reason`` columns and
query helpers. Models that include this mixin are marked as deleted rather
than physically removed; a separate, explicit purge removes them for good.

Usage:
    class MyModel(SoftDeleteMixin, db.Model):
        ...

    obj.soft_delete(deleted_by=user_id, reason="duplicate")
    db.session.commit()

    MyModel.query_active().all()
    MyModel.query_deleted().all()

    obj.restore()
    db.session.commit()
"""

from datetime import datetime, timezone

from sqlalchemy.orm import declared_attr

from portal.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)
    deletion_reason = db.Column(db.Text, nullable=True)

    @declared_attr
    def deleted_by(cls):
        return db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    def soft_delete(self, deleted_by=None, reason=None):
        """Mark this record as deleted."""
        self.deleted_at = datetime.now(timezone.utc)
        self.deleted_by = deleted_by
        self.deletion_reason = reason

    def restore(self):
        """Restore a soft-deleted record."""
        self.deleted_at = None
        self.deleted_by = None
        self.deletion_reason = None

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @classmethod
    def query_active(cls):
        """Return a query that excludes soft-deleted records."""
        return cls.query.filter(cls.deleted_at.is_(None))

    @classmethod
    def query_deleted(cls):
        """Return only soft-deleted records."""
        return cls.query.filter(cls.deleted_at.isnot(None))
