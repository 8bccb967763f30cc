# Overview: Product deletion; soft-delete when history references the product, hard delete otherwise.

from __future__ import annotations

import logging

from ..errors import NotFoundError
from ..models import Product
from .concurrency import run_with_retry
from .unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class DeletionPolicy:
    # Product stays for history, hidden from sale
    DEACTIVATE = "DEACTIVATE"
    # Row removed; nothing references it
    PURGE_CASCADE = "PURGE_CASCADE"

    ALL = (DEACTIVATE, PURGE_CASCADE)


def choose_product_deletion_policy(uow: UnitOfWork, product: Product) -> str:
    """
    Sale items and stock movements must keep pointing at a real product,
    so any reference forces a soft delete.
    """
    if uow.product_is_referenced(product.id):
        return DeletionPolicy.DEACTIVATE
    return DeletionPolicy.PURGE_CASCADE


def delete_product(uow: UnitOfWork, product_id: int, *, branch_id: int | None = None) -> str:
    """Delete a product with the policy its history allows. Returns the policy applied."""

    def _op() -> str:
        uow.begin()
        try:
            product = uow.get_product(product_id, lock=True)
            if product is None or (branch_id is not None and product.branch_id != branch_id):
                raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})

            policy = choose_product_deletion_policy(uow, product)
            if policy == DeletionPolicy.DEACTIVATE:
                product.is_active = False
            else:
                uow.delete(product)
            uow.commit()
        except Exception:
            uow.rollback()
            raise
        logger.info("Product %s deleted with policy %s", product_id, policy)
        return policy

    return run_with_retry(_op)
