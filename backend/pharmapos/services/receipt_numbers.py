# Overview: Human-facing receipt number generation.

from __future__ import annotations

import secrets
from datetime import datetime
from typing import Callable

from ..time_utils import utcnow


ReceiptNumberGenerator = Callable[[datetime], str]


def generate_receipt_number(
    now: datetime | None = None,
    *,
    prefix: str = "RCP",
    digits: int = 6,
    randbelow: Callable[[int], int] = secrets.randbelow,
) -> str:
    """
    Build a receipt number like RCP-20261017-004213.

    The suffix is random, so two generators can collide; the receipts
    table's unique constraint is what guarantees uniqueness.
    """
    if digits < 1:
        raise ValueError("digits must be >= 1")
    now = now or utcnow()
    suffix = str(randbelow(10 ** digits)).zfill(digits)
    return f"{prefix}-{now:%Y%m%d}-{suffix}"


def make_generator(prefix: str = "RCP", digits: int = 6) -> ReceiptNumberGenerator:
    def _generate(now: datetime) -> str:
        return generate_receipt_number(now, prefix=prefix, digits=digits)
    return _generate
