"""
Checkout tests against the SQLAlchemy unit of work.

Verifies:
- The 2 x 85.00 scenario: items, stock, movement, customer, receipt
- Failure leaves products, customers, sales and movements untouched
- Idempotency key replay
- Receipt number collisions are retried
- Database errors map to ConflictError / TransientError and roll back
- Refund and cancel reverse stock and void the receipt
"""

import re

import pytest
from conftest import sequential_receipts
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from pharmapos.errors import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from pharmapos.models import Customer, Product, Receipt, Sale, SaleItem, StockMovement
from pharmapos.services.sales_service import (
    CheckoutPolicy,
    cancel_sale,
    checkout,
    get_sale,
    refund_sale,
)
from pharmapos.services.unit_of_work import SqlAlchemyUnitOfWork
from pharmapos.validation import CheckoutRequest, LineItemRequest


def _request(branch, cashier, *items, **kwargs):
    return CheckoutRequest(
        branch_id=branch.id,
        cashier_user_id=cashier.id,
        payment_method=kwargs.pop("payment_method", "CASH"),
        items=tuple(items),
        **kwargs,
    )


def _snapshot(db_session):
    db_session.expire_all()
    return {
        "stock": {p.id: p.stock for p in db_session.query(Product).all()},
        "customers": {
            c.id: (c.total_purchases_cents, c.loyalty_points, c.last_visit_at)
            for c in db_session.query(Customer).all()
        },
        "sales": db_session.query(Sale).count(),
        "items": db_session.query(SaleItem).count(),
        "receipts": db_session.query(Receipt).count(),
        "movements": db_session.query(StockMovement).count(),
    }


class TestSuccessfulCheckout:

    def test_two_units_with_customer(self, db_session, uow, policy, branch, cashier, product, customer):
        sale = checkout(
            uow,
            _request(branch, cashier, LineItemRequest(product.id, 2, 8500), customer_id=customer.id),
            policy,
        )

        assert sale.subtotal_cents == 17000
        assert sale.tax_cents == 2890
        assert sale.total_cents == 19890
        assert sale.status == "COMPLETED"
        assert sale.payment_status == "COMPLETED"
        assert sale.cashier_user_id == cashier.id

        (item,) = sale.items
        assert (item.quantity, item.unit_price_cents, item.total_price_cents) == (2, 8500, 17000)

        assert db_session.get(Product, product.id).stock == 8

        (movement,) = db_session.query(StockMovement).filter_by(product_id=product.id).all()
        assert movement.type == "OUT"
        assert movement.quantity == 2
        assert movement.reason == "Sale"
        assert movement.reference == f"SALE-{sale.id}"

        customer = db_session.get(Customer, customer.id)
        assert customer.total_purchases_cents == 19890
        assert customer.loyalty_points == 1
        assert customer.last_visit_at is not None

        assert re.fullmatch(r"RCP-\d{8}-\d{6}", sale.receipt.receipt_number)
        assert sale.receipt.branch_id == branch.id

    def test_hydrated_payload(self, db_session, uow, policy, branch, cashier, product, customer):
        sale = checkout(
            uow,
            _request(branch, cashier, LineItemRequest(product.id, 1, 8500), customer_id=customer.id),
            policy,
        )
        data = sale.to_dict(include_items=True)
        assert data["items"][0]["product_name"] == "Paracetamol 500mg"
        assert data["receipt"]["receipt_number"] == data["receipt_number"]
        assert data["customer"]["id"] == customer.id

    def test_unit_price_defaults_to_selling_price(self, db_session, uow, policy, branch, cashier, product):
        sale = checkout(uow, _request(branch, cashier, LineItemRequest(product.id, 1)), policy)
        assert sale.items[0].unit_price_cents == 8500
        assert sale.subtotal_cents == 8500

    def test_supplied_unit_price_is_used_as_given(self, db_session, uow, policy, branch, cashier, product):
        # Catalogue price is 8500; the till keyed 7900
        sale = checkout(uow, _request(branch, cashier, LineItemRequest(product.id, 1, 7900)), policy)
        assert sale.items[0].unit_price_cents == 7900
        assert sale.subtotal_cents == 7900

    def test_duplicate_lines_keep_order(self, db_session, uow, policy, branch, cashier, product, second_product):
        sale = checkout(
            uow,
            _request(
                branch, cashier,
                LineItemRequest(second_product.id, 1),
                LineItemRequest(product.id, 3),
                LineItemRequest(second_product.id, 2),
            ),
            policy,
        )
        assert [(i.product_id, i.quantity) for i in sale.items] == [
            (second_product.id, 1), (product.id, 3), (second_product.id, 2),
        ]
        assert db_session.get(Product, second_product.id).stock == 2
        assert db_session.get(Product, product.id).stock == 7

    def test_discount_is_applied(self, db_session, uow, policy, branch, cashier, product):
        sale = checkout(
            uow,
            _request(branch, cashier, LineItemRequest(product.id, 2, 8500), discount_cents=890),
            policy,
        )
        assert sale.total_cents == 19000

    def test_get_sale(self, db_session, uow, policy, branch, cashier, product):
        sale_id = checkout(uow, _request(branch, cashier, LineItemRequest(product.id, 1)), policy).id
        assert get_sale(uow, sale_id).id == sale_id
        with pytest.raises(NotFoundError):
            get_sale(uow, sale_id + 100)


class TestFailedCheckout:

    def test_insufficient_stock_changes_nothing(
        self, db_session, uow, policy, branch, cashier, product, second_product, customer
    ):
        product.stock = 1
        db_session.commit()
        before = _snapshot(db_session)

        with pytest.raises(InsufficientStockError) as exc_info:
            checkout(
                uow,
                _request(
                    branch, cashier,
                    LineItemRequest(second_product.id, 1),
                    LineItemRequest(product.id, 2),
                    customer_id=customer.id,
                ),
                policy,
            )

        assert exc_info.value.details["available_quantity"] == 1
        assert exc_info.value.details["requested_quantity"] == 2
        assert "Available: 1" in exc_info.value.message
        assert _snapshot(db_session) == before

    def test_duplicate_lines_are_summed_for_stock(self, db_session, uow, policy, branch, cashier, second_product):
        with pytest.raises(InsufficientStockError) as exc_info:
            checkout(
                uow,
                _request(
                    branch, cashier,
                    LineItemRequest(second_product.id, 3),
                    LineItemRequest(second_product.id, 3),
                ),
                policy,
            )
        assert exc_info.value.details["requested_quantity"] == 6
        assert db_session.get(Product, second_product.id).stock == 5

    def test_failure_after_stock_decrement_rolls_back(
        self, db_session, uow, branch, cashier, product, customer
    ):
        # Receipt numbering fails after items, movements and customer were written
        taken = Receipt(sale_id=0, branch_id=branch.id, issued_by_user_id=cashier.id,
                        receipt_number="RCP-20261017-000001")
        db_session.add(taken)
        db_session.commit()
        before = _snapshot(db_session)

        policy = CheckoutPolicy(
            receipt_attempts=2,
            conflict_retries=0,
            retry_backoff=0,
            receipt_generator=lambda now: "RCP-20261017-000001",
        )
        request = _request(branch, cashier, LineItemRequest(product.id, 2), customer_id=customer.id)
        with pytest.raises(ConflictError):
            checkout(uow, request, policy)

        assert _snapshot(db_session) == before

        # Failing twice is the same as failing once
        with pytest.raises(ConflictError):
            checkout(uow, request, policy)
        assert _snapshot(db_session) == before

    def test_product_from_other_branch(self, db_session, uow, policy, other_branch, other_cashier, product):
        with pytest.raises(NotFoundError):
            checkout(uow, _request(other_branch, other_cashier, LineItemRequest(product.id, 1)), policy)
        assert db_session.get(Product, product.id).stock == 10

    def test_inactive_product(self, db_session, uow, policy, branch, cashier, product):
        product.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError):
            checkout(uow, _request(branch, cashier, LineItemRequest(product.id, 1)), policy)

    def test_unknown_customer(self, db_session, uow, policy, branch, cashier, product):
        with pytest.raises(NotFoundError):
            checkout(uow, _request(branch, cashier, LineItemRequest(product.id, 1), customer_id=999), policy)
        assert db_session.get(Product, product.id).stock == 10

    @pytest.mark.parametrize("kwargs", [
        {"payment_method": "BARTER"},
        {"discount_cents": -1},
    ])
    def test_invalid_requests(self, db_session, uow, policy, branch, cashier, product, kwargs):
        with pytest.raises(ValidationError):
            checkout(uow, _request(branch, cashier, LineItemRequest(product.id, 1), **kwargs), policy)

    def test_empty_cart(self, db_session, uow, policy, branch, cashier):
        with pytest.raises(ValidationError):
            checkout(uow, _request(branch, cashier), policy)


class TestLoyalty:

    def test_points_accumulate_per_sale(self, db_session, uow, policy, branch, cashier, product, customer):
        totals = []
        for quantity in (2, 1, 3):
            sale = checkout(
                uow,
                _request(branch, cashier, LineItemRequest(product.id, quantity), customer_id=customer.id),
                policy,
            )
            totals.append(sale.total_cents)

        customer = db_session.get(Customer, customer.id)
        assert customer.total_purchases_cents == sum(totals)
        assert customer.loyalty_points == sum(t // 10000 for t in totals)


class TestIdempotency:

    def test_replay_returns_original_sale(self, db_session, uow, policy, branch, cashier, product):
        request = _request(branch, cashier, LineItemRequest(product.id, 2), idempotency_key="till-1-0001")
        first = checkout(uow, request, policy)
        second = checkout(uow, request, policy)

        assert second.id == first.id
        assert db_session.query(Sale).count() == 1
        assert db_session.get(Product, product.id).stock == 8

    def test_key_reused_by_another_cashier(self, db_session, uow, policy, branch, cashier, manager, product):
        checkout(uow, _request(branch, cashier, LineItemRequest(product.id, 1), idempotency_key="k-1"), policy)
        with pytest.raises(ValidationError):
            checkout(uow, _request(branch, manager, LineItemRequest(product.id, 1), idempotency_key="k-1"), policy)


class TestReceiptNumbers:

    def test_taken_number_is_skipped(self, db_session, uow, branch, cashier, product):
        policy = CheckoutPolicy(
            retry_backoff=0,
            receipt_generator=sequential_receipts("RCP-1", "RCP-1", "RCP-2"),
        )
        first = checkout(uow, _request(branch, cashier, LineItemRequest(product.id, 1)), policy)
        second = checkout(uow, _request(branch, cashier, LineItemRequest(product.id, 1)), policy)

        assert first.receipt.receipt_number == "RCP-1"
        assert second.receipt.receipt_number == "RCP-2"


class _ReceiptFlushFails:
    """Session wrapper whose flush raises once a Receipt is staged (after stock and customer writes)."""

    def __init__(self, session, error):
        self._session = session
        self._error = error
        self.failures = 0

    def flush(self):
        if any(isinstance(obj, Receipt) for obj in self._session.new):
            self.failures += 1
            raise self._error
        self._session.flush()

    def __getattr__(self, name):
        return getattr(self._session, name)


class TestStorageErrors:

    def test_receipt_constraint_collision_is_retried(self, db_session, uow, branch, cashier, product):
        db_session.add(Receipt(sale_id=0, branch_id=branch.id, issued_by_user_id=cashier.id,
                               receipt_number="RCP-A"))
        db_session.commit()
        # Skip the pre-check so the unique constraint rejects RCP-A at flush
        uow.receipt_number_exists = lambda number: False
        policy = CheckoutPolicy(retry_backoff=0, receipt_generator=sequential_receipts("RCP-A", "RCP-B"))

        sale = checkout(uow, _request(branch, cashier, LineItemRequest(product.id, 2)), policy)

        assert sale.receipt.receipt_number == "RCP-B"
        assert db_session.get(Product, product.id).stock == 8
        assert db_session.query(Sale).count() == 1
        assert db_session.query(SaleItem).count() == 1
        assert db_session.query(StockMovement).count() == 1
        assert db_session.query(Receipt).count() == 2

    def test_receipt_constraint_collision_without_retries(self, db_session, uow, branch, cashier, product):
        db_session.add(Receipt(sale_id=0, branch_id=branch.id, issued_by_user_id=cashier.id,
                               receipt_number="RCP-A"))
        db_session.commit()
        before = _snapshot(db_session)
        uow.receipt_number_exists = lambda number: False
        policy = CheckoutPolicy(conflict_retries=0, retry_backoff=0, receipt_generator=lambda now: "RCP-A")

        with pytest.raises(ConflictError):
            checkout(uow, _request(branch, cashier, LineItemRequest(product.id, 2)), policy)

        assert _snapshot(db_session) == before

    def test_stale_row_is_a_conflict(self, db_session, policy, branch, cashier, product, customer):
        before = _snapshot(db_session)
        session = _ReceiptFlushFails(db_session, StaleDataError("products row version changed"))
        uow = SqlAlchemyUnitOfWork(session, sqlite_immediate=False)

        with pytest.raises(ConflictError):
            checkout(
                uow,
                _request(branch, cashier, LineItemRequest(product.id, 2), customer_id=customer.id),
                policy,
            )

        # First attempt plus one retry
        assert session.failures == 2
        assert _snapshot(db_session) == before

    def test_operational_error_is_transient(self, db_session, policy, branch, cashier, product, customer):
        before = _snapshot(db_session)
        error = OperationalError("INSERT INTO receipts", {}, Exception("database is locked"))
        session = _ReceiptFlushFails(db_session, error)
        uow = SqlAlchemyUnitOfWork(session, sqlite_immediate=False)

        with pytest.raises(TransientError):
            checkout(
                uow,
                _request(branch, cashier, LineItemRequest(product.id, 2), customer_id=customer.id),
                policy,
            )

        # Not retried
        assert session.failures == 1
        assert _snapshot(db_session) == before


class TestReversal:

    def test_refund_returns_stock_and_voids_receipt(
        self, db_session, uow, policy, branch, cashier, manager, product, customer
    ):
        sale = checkout(
            uow,
            _request(branch, cashier, LineItemRequest(product.id, 3), customer_id=customer.id),
            policy,
        )
        sale_id = sale.id

        refunded = refund_sale(uow, sale_id, manager.id, "Wrong strength")

        assert refunded.status == "REFUNDED"
        assert refunded.payment_status == "REFUNDED"
        assert refunded.voided_by_user_id == manager.id
        assert refunded.void_reason == "Wrong strength"
        assert refunded.receipt.voided_at is not None
        assert db_session.get(Product, product.id).stock == 10

        returns = db_session.query(StockMovement).filter_by(type="RETURN").all()
        assert [(m.quantity, m.reference) for m in returns] == [(3, f"SALE-{sale_id}")]

        # Customer totals only ever grow
        assert db_session.get(Customer, customer.id).total_purchases_cents == refunded.total_cents

    def test_refund_limit(self, db_session, uow, policy, branch, cashier, product):
        sale_id = checkout(uow, _request(branch, cashier, LineItemRequest(product.id, 2)), policy).id
        with pytest.raises(ValidationError):
            refund_sale(uow, sale_id, cashier.id, max_refund_cents=10000)
        assert db_session.get(Sale, sale_id).status == "COMPLETED"
        assert db_session.get(Product, product.id).stock == 8

    def test_cancel_then_refund_is_rejected(self, db_session, uow, policy, branch, cashier, manager, product):
        sale_id = checkout(uow, _request(branch, cashier, LineItemRequest(product.id, 1)), policy).id
        assert cancel_sale(uow, sale_id, manager.id).status == "CANCELLED"
        with pytest.raises(ValidationError):
            refund_sale(uow, sale_id, manager.id)
        assert db_session.get(Product, product.id).stock == 10

    def test_unknown_sale(self, db_session, uow, manager):
        with pytest.raises(NotFoundError):
            cancel_sale(uow, 424242, manager.id)
