# Overview: Pure pricing, tax and loyalty arithmetic. No state, no I/O.

"""
Money is integer cents throughout. Tax rates are basis points
(1700 bps = 17%).

- tax is rounded half-up to the nearest cent
- a discount larger than subtotal + tax is rejected, never clamped
- loyalty points use floor division so fractional points are never credited
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol

from ..errors import ValidationError


BPS_DENOMINATOR = 10_000


class PricedLine(Protocol):
    quantity: int
    unit_price_cents: int


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal_cents: int
    tax_cents: int
    discount_cents: int
    total_cents: int


def line_total_cents(quantity: int, unit_price_cents: int) -> int:
    if quantity < 1:
        raise ValidationError("quantity must be >= 1")
    if unit_price_cents <= 0:
        raise ValidationError("unit_price_cents must be > 0")
    return quantity * unit_price_cents


def tax_cents(subtotal_cents: int, tax_rate_bps: int) -> int:
    if tax_rate_bps < 0:
        raise ValidationError("tax_rate_bps must be >= 0")
    # nearest-cent rounding (half-up)
    return (subtotal_cents * tax_rate_bps + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR


def price(items: Iterable[PricedLine], tax_rate_bps: int, discount_cents: int = 0) -> PriceBreakdown:
    """
    Compute subtotal, tax and total for a set of line items.

    Raises ValidationError for an empty item set, a non-positive quantity or
    price, a negative discount, or a discount exceeding subtotal + tax.
    """
    items = list(items)
    if not items:
        raise ValidationError("at least one line item is required")
    if discount_cents < 0:
        raise ValidationError("discount_cents must be >= 0")

    subtotal = sum(line_total_cents(i.quantity, i.unit_price_cents) for i in items)
    tax = tax_cents(subtotal, tax_rate_bps)
    gross = subtotal + tax

    if discount_cents > gross:
        raise ValidationError(
            "discount exceeds sale total",
            details={"discount_cents": discount_cents, "gross_total_cents": gross},
        )

    return PriceBreakdown(
        subtotal_cents=subtotal,
        tax_cents=tax,
        discount_cents=discount_cents,
        total_cents=gross - discount_cents,
    )


def loyalty_points(total_cents: int, points_divisor_cents: int) -> int:
    """One point per points_divisor_cents of total, rounded down."""
    if points_divisor_cents <= 0:
        raise ValidationError("points_divisor_cents must be > 0")
    if total_cents <= 0:
        return 0
    return total_cents // points_divisor_cents
