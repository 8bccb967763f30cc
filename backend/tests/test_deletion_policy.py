import pytest

from pharmapos.errors import NotFoundError, ValidationError
from pharmapos.models import Product
from pharmapos.services.deletion_service import (
    DeletionPolicy,
    choose_product_deletion_policy,
    delete_product,
)
from pharmapos.services.inventory_service import apply_movement
from pharmapos.services.sales_service import checkout
from pharmapos.validation import CheckoutRequest, LineItemRequest, StockMovementRequest


def test_unreferenced_product_is_purged(db_session, uow, product):
    product_id = product.id
    assert choose_product_deletion_policy(uow, product) == DeletionPolicy.PURGE_CASCADE

    assert delete_product(uow, product_id) == DeletionPolicy.PURGE_CASCADE
    assert db_session.get(Product, product_id) is None


def test_product_with_movements_is_deactivated(db_session, uow, product):
    apply_movement(uow, StockMovementRequest(product.id, "IN", 1))

    assert delete_product(uow, product.id) == DeletionPolicy.DEACTIVATE
    kept = db_session.get(Product, product.id)
    assert kept is not None
    assert kept.is_active is False


def test_sold_product_is_deactivated_and_no_longer_sellable(db_session, uow, policy, branch, cashier, product):
    request = CheckoutRequest(
        branch_id=branch.id, cashier_user_id=cashier.id, payment_method="CASH",
        items=(LineItemRequest(product.id, 1),),
    )
    checkout(uow, request, policy)

    assert delete_product(uow, product.id) == DeletionPolicy.DEACTIVATE
    assert db_session.get(Product, product.id).stock == 9
    with pytest.raises(ValidationError):
        checkout(uow, request, policy)


def test_branch_mismatch_is_not_found(db_session, uow, product, other_branch):
    with pytest.raises(NotFoundError):
        delete_product(uow, product.id, branch_id=other_branch.id)
    assert db_session.get(Product, product.id).is_active is True


def test_unknown_product(db_session, uow):
    with pytest.raises(NotFoundError):
        delete_product(uow, 98765)
