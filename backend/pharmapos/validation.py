# Overview: Typed request structs built from JSON payloads, validated before they reach the services.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import ValidationError
from .models import Sale, StockMovement
from .time_utils import parse_iso_date


def _to_int(value: Any, name: str) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{name} must be an integer")
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        raise ValidationError(f"{name} must be an integer") from None


def _to_cents(value: Any, name: str) -> int | None:
    """Decimal currency amount ("85.00", 85, 85.5) to integer cents, half-up."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    text = str(value).strip().replace(",", "")
    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise ValidationError(f"{name} must be a number") from None
    if not amount.is_finite():
        raise ValidationError(f"{name} must be a number")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _cents_field(payload: dict, cents_key: str, amount_key: str) -> int | None:
    if payload.get(cents_key) not in (None, ""):
        return _to_int(payload.get(cents_key), cents_key)
    return _to_cents(payload.get(amount_key), amount_key)


@dataclass(frozen=True)
class LineItemRequest:
    product_id: int
    quantity: int
    # None means "use the product's selling price"
    unit_price_cents: int | None = None
    batch_number: str | None = None
    expiry_date: date | None = None

    @classmethod
    def from_payload(cls, payload: Any, index: int) -> "LineItemRequest":
        if not isinstance(payload, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = _to_int(payload.get("product_id"), f"items[{index}].product_id")
        quantity = _to_int(payload.get("quantity"), f"items[{index}].quantity")
        if product_id is None:
            raise ValidationError(f"items[{index}].product_id is required")
        if quantity is None:
            raise ValidationError(f"items[{index}].quantity is required")
        try:
            expiry = parse_iso_date(_to_text(payload.get("expiry_date")))
        except ValueError:
            raise ValidationError(f"items[{index}].expiry_date must be YYYY-MM-DD") from None
        return cls(
            product_id=product_id,
            quantity=quantity,
            unit_price_cents=_cents_field(payload, "unit_price_cents", "unit_price"),
            batch_number=_to_text(payload.get("batch_number")),
            expiry_date=expiry,
        )

    def validate(self, index: int = 0) -> None:
        if self.quantity < 1:
            raise ValidationError(
                f"items[{index}].quantity must be >= 1",
                details={"product_id": self.product_id, "quantity": self.quantity},
            )
        if self.unit_price_cents is not None and self.unit_price_cents <= 0:
            raise ValidationError(
                f"items[{index}].unit_price must be > 0",
                details={"product_id": self.product_id},
            )


@dataclass(frozen=True)
class CheckoutRequest:
    """A cart ready to be turned into a sale."""

    branch_id: int
    cashier_user_id: int
    payment_method: str
    items: tuple[LineItemRequest, ...] = field(default_factory=tuple)
    customer_id: int | None = None
    discount_cents: int = 0
    idempotency_key: str | None = None

    @classmethod
    def from_payload(cls, payload: Any, *, cashier_user_id: int) -> "CheckoutRequest":
        if not isinstance(payload, dict):
            raise ValidationError("request body must be a JSON object")

        raw_items = payload.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("items must be a non-empty list")

        branch_id = _to_int(payload.get("branch_id"), "branch_id")
        if branch_id is None:
            raise ValidationError("branch_id is required")

        payment_method = _to_text(payload.get("payment_method"))
        if payment_method is None:
            raise ValidationError("payment_method is required")

        discount = _cents_field(payload, "discount_cents", "discount_amount")

        request = cls(
            branch_id=branch_id,
            cashier_user_id=cashier_user_id,
            payment_method=payment_method.upper(),
            items=tuple(LineItemRequest.from_payload(item, i) for i, item in enumerate(raw_items)),
            customer_id=_to_int(payload.get("customer_id"), "customer_id"),
            discount_cents=discount if discount is not None else 0,
            idempotency_key=_to_text(payload.get("idempotency_key")),
        )
        request.validate()
        return request

    def validate(self) -> None:
        if not self.items:
            raise ValidationError("at least one line item is required")
        for index, item in enumerate(self.items):
            item.validate(index)
        if self.discount_cents < 0:
            raise ValidationError("discount must be >= 0")
        if self.payment_method not in Sale.PAYMENT_METHODS:
            raise ValidationError(
                f"payment_method must be one of {', '.join(Sale.PAYMENT_METHODS)}",
                details={"payment_method": self.payment_method},
            )
        if self.idempotency_key is not None and len(self.idempotency_key) > 64:
            raise ValidationError("idempotency_key must be at most 64 characters")


@dataclass(frozen=True)
class StockMovementRequest:
    product_id: int
    type: str
    quantity: int
    reason: str | None = None
    reference: str | None = None

    @classmethod
    def from_payload(cls, payload: Any, *, product_id: int) -> "StockMovementRequest":
        if not isinstance(payload, dict):
            raise ValidationError("request body must be a JSON object")
        movement_type = _to_text(payload.get("type"))
        quantity = _to_int(payload.get("quantity"), "quantity")
        if movement_type is None:
            raise ValidationError("type is required")
        if quantity is None:
            raise ValidationError("quantity is required")
        request = cls(
            product_id=product_id,
            type=movement_type.upper(),
            quantity=quantity,
            reason=_to_text(payload.get("reason")),
            reference=_to_text(payload.get("reference")),
        )
        request.validate()
        return request

    def validate(self) -> None:
        if self.type not in StockMovement.TYPES:
            raise ValidationError(
                f"type must be one of {', '.join(StockMovement.TYPES)}",
                details={"type": self.type},
            )
        minimum = 0 if self.type == "ADJUSTMENT" else 1
        if self.quantity < minimum:
            raise ValidationError(f"quantity must be >= {minimum} for {self.type}")


@dataclass(frozen=True)
class SaleReversalRequest:
    """Refund or cancel of a completed sale."""

    sale_id: int
    actor_user_id: int
    reason: str | None = None

    @classmethod
    def from_payload(cls, payload: Any, *, sale_id: int, actor_user_id: int) -> "SaleReversalRequest":
        payload = payload if isinstance(payload, dict) else {}
        reason = _to_text(payload.get("reason"))
        if reason is not None and len(reason) > 255:
            raise ValidationError("reason must be at most 255 characters")
        return cls(sale_id=sale_id, actor_user_id=actor_user_id, reason=reason)
