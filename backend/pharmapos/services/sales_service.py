# Overview: Sale transaction engine; atomic checkout plus refund/cancel of completed sales.

"""
Sale Transaction Engine

Checkout runs in ONE unit of work. Either all of these become visible or
none do:
- the Sale header and its SaleItems
- one OUT StockMovement per line, through the inventory ledger
- the customer's purchase total, loyalty points and last visit
- the Receipt with a unique receipt number

Order of operations:
1. idempotency replay (existing sale with the key is returned as-is)
2. lock products in ascending id order, check stock per product over all
   lines (duplicate lines are summed)
3. price, create sale, post lines, credit customer, issue receipt
4. commit

Lost races (receipt number taken at commit, stale product/customer version,
idempotency key inserted concurrently) raise ConflictError; checkout retries
those from scratch CHECKOUT_CONFLICT_RETRIES times.

Permission checks happen before calling in (see decorators.require_permission).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from ..models import Customer, Product, Receipt, Sale, SaleItem
from ..time_utils import utcnow
from ..validation import CheckoutRequest, LineItemRequest
from .concurrency import run_with_retry
from .inventory_service import MOVEMENT_OUT, MOVEMENT_RETURN, record_movement
from .pricing import loyalty_points, price
from .receipt_numbers import ReceiptNumberGenerator, make_generator
from .unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


SALE_MOVEMENT_REASON = "Sale"


@dataclass(frozen=True)
class CheckoutPolicy:
    tax_rate_bps: int = 1700
    points_divisor_cents: int = 10_000
    receipt_attempts: int = 5
    conflict_retries: int = 1
    retry_backoff: float = 0.05
    receipt_generator: ReceiptNumberGenerator = field(default_factory=make_generator)

    @classmethod
    def from_config(cls, config) -> "CheckoutPolicy":
        return cls(
            tax_rate_bps=config.get("TAX_RATE_BPS", 1700),
            points_divisor_cents=config.get("LOYALTY_POINTS_DIVISOR_CENTS", 10_000),
            receipt_attempts=config.get("RECEIPT_NUMBER_ATTEMPTS", 5),
            conflict_retries=config.get("CHECKOUT_CONFLICT_RETRIES", 1),
            receipt_generator=make_generator(
                config.get("RECEIPT_PREFIX", "RCP"),
                config.get("RECEIPT_SUFFIX_DIGITS", 6),
            ),
        )


@dataclass(frozen=True)
class _PricedLine:
    request: LineItemRequest
    product: Product
    quantity: int
    unit_price_cents: int


def sale_reference(sale: Sale) -> str:
    """Reference stamped on the stock movements a sale produces."""
    return f"SALE-{sale.id}"


def _lock_products(uow: UnitOfWork, request: CheckoutRequest) -> dict[int, Product]:
    # Ascending id order so two checkouts sharing products cannot deadlock
    products: dict[int, Product] = {}
    for product_id in sorted({item.product_id for item in request.items}):
        product = uow.get_product(product_id, lock=True)
        if product is None or product.branch_id != request.branch_id:
            raise NotFoundError(
                f"Product {product_id} not found",
                details={"product_id": product_id},
            )
        if not product.is_active:
            raise ValidationError(
                f"Product {product.name} is not available for sale",
                details={"product_id": product_id},
            )
        products[product_id] = product
    return products


def _check_stock(request: CheckoutRequest, products: dict[int, Product]) -> None:
    """
    Fail before any mutation if a product cannot cover every line that
    references it. Reported in line order, first shortfall wins.
    """
    running: dict[int, int] = {}
    for item in request.items:
        product = products[item.product_id]
        running[item.product_id] = running.get(item.product_id, 0) + item.quantity
        if running[item.product_id] > product.stock:
            raise InsufficientStockError(
                product.id,
                requested=running[item.product_id],
                available=product.stock,
                product_name=product.name,
            )


def _allocate_receipt_number(uow: UnitOfWork, policy: CheckoutPolicy, now) -> str:
    for _ in range(policy.receipt_attempts):
        candidate = policy.receipt_generator(now)
        if not uow.receipt_number_exists(candidate):
            return candidate
    raise ConflictError(
        "Could not allocate a unique receipt number",
        details={"attempts": policy.receipt_attempts},
    )


def _load_customer(uow: UnitOfWork, request: CheckoutRequest) -> Customer | None:
    if request.customer_id is None:
        return None
    customer = uow.get_customer(request.customer_id, lock=True)
    if customer is None or not customer.is_active:
        raise NotFoundError(
            f"Customer {request.customer_id} not found",
            details={"customer_id": request.customer_id},
        )
    if customer.branch_id is not None and customer.branch_id != request.branch_id:
        raise NotFoundError(
            f"Customer {request.customer_id} not found",
            details={"customer_id": request.customer_id},
        )
    return customer


def _replay(existing: Sale, request: CheckoutRequest) -> Sale:
    if existing.branch_id != request.branch_id or existing.cashier_user_id != request.cashier_user_id:
        raise ValidationError(
            "idempotency_key already used for a different checkout",
            details={"idempotency_key": request.idempotency_key},
        )
    logger.info("Checkout replay for idempotency key %s -> sale %s", request.idempotency_key, existing.id)
    return existing


def _checkout_once(uow: UnitOfWork, request: CheckoutRequest, policy: CheckoutPolicy) -> Sale:
    uow.begin()
    try:
        if request.idempotency_key:
            existing = uow.find_sale_by_idempotency_key(request.idempotency_key)
            if existing is not None:
                sale = _replay(existing, request)
                uow.rollback()
                return sale

        if uow.get_branch(request.branch_id) is None:
            raise NotFoundError(
                f"Branch {request.branch_id} not found",
                details={"branch_id": request.branch_id},
            )

        products = _lock_products(uow, request)
        _check_stock(request, products)

        lines = [
            _PricedLine(
                request=item,
                product=products[item.product_id],
                quantity=item.quantity,
                unit_price_cents=(
                    item.unit_price_cents
                    if item.unit_price_cents is not None
                    else products[item.product_id].selling_price_cents
                ),
            )
            for item in request.items
        ]
        breakdown = price(lines, policy.tax_rate_bps, request.discount_cents)

        customer = _load_customer(uow, request)
        now = utcnow()

        sale = Sale(
            branch_id=request.branch_id,
            cashier_user_id=request.cashier_user_id,
            customer_id=customer.id if customer else None,
            subtotal_cents=breakdown.subtotal_cents,
            tax_cents=breakdown.tax_cents,
            discount_cents=breakdown.discount_cents,
            total_cents=breakdown.total_cents,
            tax_rate_bps=policy.tax_rate_bps,
            payment_method=request.payment_method,
            payment_status="COMPLETED",
            status="COMPLETED",
            idempotency_key=request.idempotency_key,
            created_at=now,
        )
        sale.customer = customer
        uow.add(sale)
        uow.flush()

        reference = sale_reference(sale)
        for position, line in enumerate(lines):
            item = SaleItem(
                product_id=line.product.id,
                position=position,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                total_price_cents=line.quantity * line.unit_price_cents,
                batch_number=line.request.batch_number,
                expiry_date=line.request.expiry_date,
            )
            item.product = line.product
            sale.items.append(item)
            uow.add(item)
            record_movement(
                uow,
                line.product,
                MOVEMENT_OUT,
                line.quantity,
                reason=SALE_MOVEMENT_REASON,
                reference=reference,
                actor_user_id=request.cashier_user_id,
                occurred_at=now,
            )

        if customer is not None:
            customer.total_purchases_cents = (customer.total_purchases_cents or 0) + breakdown.total_cents
            customer.loyalty_points = (customer.loyalty_points or 0) + loyalty_points(
                breakdown.total_cents, policy.points_divisor_cents
            )
            customer.last_visit_at = now

        receipt = Receipt(
            branch_id=request.branch_id,
            issued_by_user_id=request.cashier_user_id,
            receipt_number=_allocate_receipt_number(uow, policy, now),
            issued_at=now,
        )
        sale.receipt = receipt
        uow.add(receipt)
        uow.flush()

        summary = (sale.id, request.branch_id, receipt.receipt_number, breakdown.total_cents)
        uow.commit()
    except Exception:
        uow.rollback()
        raise

    logger.info("Sale %s completed in branch %s, receipt %s, total_cents=%s", *summary)
    return sale


def checkout(uow: UnitOfWork, request: CheckoutRequest, policy: CheckoutPolicy | None = None) -> Sale:
    """
    Turn a cart into a completed sale atomically.

    Raises ValidationError, NotFoundError, InsufficientStockError,
    ConflictError (after retries) or TransientError. On any error nothing
    is persisted.
    """
    policy = policy or CheckoutPolicy()
    request.validate()
    return run_with_retry(
        lambda: _checkout_once(uow, request, policy),
        attempts=1 + policy.conflict_retries,
        backoff_base=policy.retry_backoff,
    )


def get_sale(uow: UnitOfWork, sale_id: int) -> Sale:
    sale = uow.get_sale(sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def _reverse_sale(
    uow: UnitOfWork,
    sale_id: int,
    actor_user_id: int,
    reason: str | None,
    new_status: str,
    *,
    branch_id: int | None = None,
    max_total_cents: int | None = None,
) -> Sale:
    uow.begin()
    try:
        sale = uow.get_sale(sale_id, lock=True)
        if sale is None or (branch_id is not None and sale.branch_id != branch_id):
            raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
        if sale.status != "COMPLETED":
            raise ValidationError(
                f"Sale {sale_id} is {sale.status}; only COMPLETED sales can be reversed",
                details={"sale_id": sale_id, "status": sale.status},
            )
        if max_total_cents is not None and sale.total_cents > max_total_cents:
            raise ValidationError(
                "Sale total exceeds your refund limit",
                details={"total_cents": sale.total_cents, "limit_cents": max_total_cents},
            )

        now = utcnow()
        reference = sale_reference(sale)
        # Lock order matches checkout
        for item in sorted(sale.items, key=lambda i: i.product_id):
            product = uow.get_product(item.product_id, lock=True)
            if product is None:
                raise NotFoundError(
                    f"Product {item.product_id} not found",
                    details={"product_id": item.product_id},
                )
            record_movement(
                uow,
                product,
                MOVEMENT_RETURN,
                item.quantity,
                reason=reason or f"Sale {new_status.lower()}",
                reference=reference,
                actor_user_id=actor_user_id,
                occurred_at=now,
            )

        sale.status = new_status
        sale.payment_status = new_status
        sale.voided_by_user_id = actor_user_id
        sale.voided_at = now
        sale.void_reason = reason
        if sale.receipt is not None:
            sale.receipt.voided_at = now

        uow.commit()
    except Exception:
        uow.rollback()
        raise

    logger.info("Sale %s %s by user %s", sale_id, new_status.lower(), actor_user_id)
    return sale


def refund_sale(
    uow: UnitOfWork,
    sale_id: int,
    actor_user_id: int,
    reason: str | None = None,
    *,
    branch_id: int | None = None,
    max_refund_cents: int | None = None,
) -> Sale:
    """
    Refund a completed sale in full: stock comes back through RETURN
    movements and the receipt is voided. Customer totals are left as they are.

    max_refund_cents is the caller's refund ceiling (from the permission
    decision's numeric limit); larger sales are rejected.
    """
    return _reverse_sale(
        uow, sale_id, actor_user_id, reason, "REFUNDED",
        branch_id=branch_id, max_total_cents=max_refund_cents,
    )


def cancel_sale(
    uow: UnitOfWork,
    sale_id: int,
    actor_user_id: int,
    reason: str | None = None,
    *,
    branch_id: int | None = None,
) -> Sale:
    """Void a completed sale (same reversal as a refund, status CANCELLED)."""
    return _reverse_sale(uow, sale_id, actor_user_id, reason, "CANCELLED", branch_id=branch_id)
