# Overview: Inventory ledger; every stock change goes through here and leaves a StockMovement.

"""
Inventory Ledger Invariants (authoritative)

- Product.stock is the on-hand quantity and never goes negative.
- Every change appends exactly one StockMovement in the same unit of work
  as the stock change. Movements are never updated or deleted.
- IN and RETURN add quantity, OUT subtracts it, ADJUSTMENT sets the new
  absolute level (quantity may be 0).
- The sale engine calls record_movement on rows it has already locked;
  apply_movement is the standalone entry point with its own unit of work.
- Callers evaluate stock permissions before calling in (see
  permissions.evaluator).
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..models import Product, StockMovement
from ..time_utils import utcnow
from ..validation import StockMovementRequest
from .concurrency import run_with_retry
from .unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_RETURN = "RETURN"


def compute_new_stock(product_id: int, current: int, movement_type: str, quantity: int) -> int:
    """Stock level after applying a movement. Pure."""
    if movement_type not in StockMovement.TYPES:
        raise ValidationError(f"Unknown movement type: {movement_type}")

    if movement_type == MOVEMENT_ADJUSTMENT:
        if quantity < 0:
            raise ValidationError("ADJUSTMENT quantity must be >= 0")
        return quantity

    if quantity < 1:
        raise ValidationError(f"{movement_type} quantity must be >= 1")

    if movement_type in (MOVEMENT_IN, MOVEMENT_RETURN):
        return current + quantity

    if current < quantity:
        raise InsufficientStockError(product_id, requested=quantity, available=current)
    return current - quantity


def record_movement(
    uow: UnitOfWork,
    product: Product,
    movement_type: str,
    quantity: int,
    *,
    reason: str | None = None,
    reference: str | None = None,
    actor_user_id: int | None = None,
    occurred_at: datetime | None = None,
) -> StockMovement:
    """
    Apply a movement to an already locked product inside the caller's unit of work.

    No commit here; the caller owns the transaction.
    """
    try:
        new_stock = compute_new_stock(product.id, product.stock, movement_type, quantity)
    except InsufficientStockError as exc:
        raise InsufficientStockError(
            product.id, requested=exc.requested, available=exc.available, product_name=product.name
        ) from None

    movement = StockMovement(
        product_id=product.id,
        branch_id=product.branch_id,
        type=movement_type,
        quantity=quantity,
        stock_before=product.stock,
        stock_after=new_stock,
        reason=reason,
        reference=reference,
        actor_user_id=actor_user_id,
        occurred_at=occurred_at or utcnow(),
    )
    product.stock = new_stock
    uow.add(movement)
    return movement


def apply_movement(
    uow: UnitOfWork,
    request: StockMovementRequest,
    actor_user_id: int | None = None,
    *,
    branch_id: int | None = None,
    conflict_retries: int = 1,
) -> int:
    """
    Standalone stock change (manual corrections, deliveries). Returns the new stock.

    branch_id, when given, restricts the product to that branch; a product in
    another branch is reported as not found.
    """
    request.validate()

    def _op() -> int:
        uow.begin()
        try:
            product = uow.get_product(request.product_id, lock=True)
            if product is None or (branch_id is not None and product.branch_id != branch_id):
                raise NotFoundError(
                    f"Product {request.product_id} not found",
                    details={"product_id": request.product_id},
                )
            movement = record_movement(
                uow,
                product,
                request.type,
                request.quantity,
                reason=request.reason,
                reference=request.reference,
                actor_user_id=actor_user_id,
            )
            new_stock = movement.stock_after
            uow.commit()
        except Exception:
            uow.rollback()
            raise
        logger.info(
            "Stock movement %s qty=%s on product %s: %s -> %s",
            request.type, request.quantity, request.product_id, movement.stock_before, new_stock,
        )
        return new_stock

    return run_with_retry(_op, attempts=1 + conflict_retries)


def get_product(uow: UnitOfWork, product_id: int, *, branch_id: int | None = None) -> Product:
    product = uow.get_product(product_id)
    if product is None or (branch_id is not None and product.branch_id != branch_id):
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def movement_history(uow: UnitOfWork, product_id: int) -> list[StockMovement]:
    """All movements for a product, oldest first."""
    get_product(uow, product_id)
    return uow.list_movements(product_id)


def replay_stock(movements: list[StockMovement], opening_stock: int = 0) -> int:
    """
    Rebuild a stock level from movement history.

    Raises ValueError when a movement's recorded stock_before does not match
    the replayed level (history gap or out-of-band stock edit).
    """
    stock = opening_stock
    for movement in movements:
        if movement.stock_before != stock:
            raise ValueError(
                f"movement {movement.id} starts at {movement.stock_before}, replay is at {stock}"
            )
        stock = compute_new_stock(movement.product_id, stock, movement.type, movement.quantity)
    return stock


def low_stock_products(uow: UnitOfWork, branch_id: int) -> list[Product]:
    """Active products at or below their min_stock threshold."""
    return [p for p in uow.list_products(branch_id) if p.is_active and p.is_low_stock]
