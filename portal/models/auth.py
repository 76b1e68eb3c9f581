"""
Project Approval Portal
Identity model.

Identity itself comes from the upstream gateway (see ``portal.auth``); the
``users`` table only keeps enough to own projects and address notifications.
"""

from datetime import datetime, timezone

from portal.models import db

USER_ROLES = {"admin", "user"}


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False, unique=True, index=True)
    full_name = db.Column(db.String(200))
    role = db.Column(db.String(20), nullable=False, default="user", comment="admin | user")
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    projects = db.relationship("Project", back_populates="owner", lazy="dynamic",
                               foreign_keys="Project.owner_id")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def display_name(self) -> str:
        return self.full_name or self.email

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"
