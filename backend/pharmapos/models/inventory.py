from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    Products belong to exactly one branch. stock is the on-hand quantity;
    it only changes through the inventory ledger (see
    services.inventory_service.record_movement), which appends a
    StockMovement for every change.

    INVARIANT: stock >= 0 after any committed movement.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "barcode", name="uq_products_branch_barcode"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonnegative"),
        db.CheckConstraint("cost_price_cents > 0", name="ck_products_cost_positive"),
        db.CheckConstraint("selling_price_cents > 0", name="ck_products_selling_positive"),
        db.Index("ix_products_branch_name", "branch_id", "name"),
        db.Index("ix_products_branch_active", "branch_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    barcode = db.Column(db.String(64), nullable=True)
    unit_type = db.Column(db.String(32), nullable=True)
    requires_prescription = db.Column(db.Boolean, nullable=False, default=False)

    # Authoritative storage in cents
    cost_price_cents = db.Column(db.Integer, nullable=False)
    selling_price_cents = db.Column(db.Integer, nullable=False)

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Optimistic lock: a lost stock race surfaces as StaleDataError
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return (self.stock or 0) <= (self.min_stock or 0)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} branch_id={self.branch_id} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "description": self.description,
            "barcode": self.barcode,
            "unit_type": self.unit_type,
            "requires_prescription": bool(self.requires_prescription),
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only audit log of every stock change.

    TYPES:
    - IN: stock received, adds quantity
    - OUT: stock removed (sales, write-offs), subtracts quantity
    - ADJUSTMENT: stock counted, quantity is the new absolute level
    - RETURN: stock returned by a customer, adds quantity

    IMMUTABLE: rows are never updated or deleted. stock_before/stock_after
    make the history replayable without re-deriving ADJUSTMENT deltas.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        db.Index("ix_stock_movements_reference", "reference"),
        {"sqlite_autoincrement": True},
    )

    TYPES = ("IN", "OUT", "ADJUSTMENT", "RETURN")

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(64), nullable=True)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    occurred_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    @property
    def delta(self) -> int:
        return self.stock_after - self.stock_before

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "type": self.type,
            "quantity": self.quantity,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "reason": self.reason,
            "reference": self.reference,
            "actor_user_id": self.actor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class ImmutableMovementError(RuntimeError):
    """Raised when code tries to update or delete a StockMovement."""


@event.listens_for(StockMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise ImmutableMovementError(f"stock movement {target.id} is append-only")


@event.listens_for(StockMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise ImmutableMovementError(f"stock movement {target.id} is append-only")
