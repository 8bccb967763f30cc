from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Sale(db.Model):
    """
    Sale header, created atomically with its items, stock movements and
    receipt by services.sales_service.checkout.

    Money fields are derived by the pricing calculator and never set from
    client input. The sale owns its items and its receipt: they share its
    lifecycle (delete-orphan cascade, voided together on refund/cancel).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("idempotency_key", name="uq_sales_idempotency_key"),
        db.Index("ix_sales_branch_status_created", "branch_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    STATUSES = ("COMPLETED", "REFUNDED", "CANCELLED")
    PAYMENT_METHODS = ("CASH", "CARD", "MOBILE", "BANK_TRANSFER")

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    cashier_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)
    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)

    # Client-generated token; a replayed checkout returns the original sale
    idempotency_key = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Refund/cancel audit trail
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        order_by="SaleItem.position",
        cascade="all, delete-orphan",
    )
    receipt = db.relationship(
        "Receipt",
        back_populates="sale",
        uselist=False,
        cascade="all, delete-orphan",
    )
    customer = db.relationship("Customer")
    branch = db.relationship("Branch")
    cashier = db.relationship("User", foreign_keys=[cashier_user_id])

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "branch_id": self.branch_id,
            "cashier_user_id": self.cashier_user_id,
            "customer_id": self.customer_id,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "status": self.status,
            "idempotency_key": self.idempotency_key,
            "created_at": to_utc_z(self.created_at),
            "voided_by_user_id": self.voided_by_user_id,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
            "receipt_number": self.receipt.receipt_number if self.receipt else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["receipt"] = self.receipt.to_dict() if self.receipt else None
            data["customer"] = self.customer.to_dict() if self.customer else None
        return data


class SaleItem(db.Model):
    """Line item on a sale. total_price_cents = quantity * unit_price_cents."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_sale_items_quantity_positive"),
        db.CheckConstraint("unit_price_cents > 0", name="ck_sale_items_price_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Insertion order on the receipt
    position = db.Column(db.Integer, nullable=False, default=0)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    batch_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "position": self.position,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "batch_number": self.batch_number,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
        }


class Receipt(db.Model):
    """
    Customer-facing proof of purchase, one per sale.

    receipt_number uniqueness is enforced here by the database; the number
    generator is allowed to collide.
    """
    __tablename__ = "receipts"
    __table_args__ = (
        db.UniqueConstraint("receipt_number", name="uq_receipts_number"),
        db.UniqueConstraint("sale_id", name="uq_receipts_sale"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    issued_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    receipt_number = db.Column(db.String(64), nullable=False)
    issued_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    printed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    sale = db.relationship("Sale", back_populates="receipt")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "branch_id": self.branch_id,
            "issued_by_user_id": self.issued_by_user_id,
            "receipt_number": self.receipt_number,
            "issued_at": to_utc_z(self.issued_at),
            "printed_at": to_utc_z(self.printed_at) if self.printed_at else None,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
        }
