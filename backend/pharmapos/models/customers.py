from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer master data for tracking purchases and loyalty.

    Denormalized aggregates (total_purchases_cents, loyalty_points) are
    updated by checkout and only ever grow; corrections are an admin
    concern outside the sale engine.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "phone", name="uq_customers_branch_phone"),
        db.Index("ix_customers_branch_active", "branch_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    is_vip = db.Column(db.Boolean, nullable=False, default=False)

    total_purchases_cents = db.Column(db.Integer, nullable=False, default=0)
    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    last_visit_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "is_active": self.is_active,
            "is_vip": bool(self.is_vip),
            "total_purchases_cents": self.total_purchases_cents,
            "loyalty_points": self.loyalty_points,
            "last_visit_at": to_utc_z(self.last_visit_at) if self.last_visit_at else None,
            "created_at": to_utc_z(self.created_at),
        }
