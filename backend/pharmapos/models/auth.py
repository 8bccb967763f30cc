from __future__ import annotations

from ..extensions import db
from ..permissions import Role
from ..time_utils import to_utc_z


class User(db.Model):
    """
    Authenticated identity as supplied by the session provider.

    role is one of permissions.Role. branch_id is the owning branch
    (nullable for system-level roles such as PRODUCT_OWNER).
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_branch_active", "branch_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    username = db.Column(db.String(64), nullable=False, unique=True)
    full_name = db.Column(db.String(128), nullable=True)
    role = db.Column(db.String(32), nullable=False, default=Role.CASHIER)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    branch = db.relationship("Branch")

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "username": self.username,
            "full_name": self.full_name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
