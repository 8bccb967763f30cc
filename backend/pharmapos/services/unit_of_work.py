# Overview: Unit-of-work abstraction injected into the sale and inventory services.

"""
Unit of Work

The services never touch a session directly. They receive a UnitOfWork,
call begin(), read and lock rows through it, stage new rows with add(),
and finish with commit() or rollback(). Either every staged effect becomes
visible or none does.

Implementations:
- SqlAlchemyUnitOfWork: Flask-SQLAlchemy session; row locks via
  SELECT ... FOR UPDATE (BEGIN IMMEDIATE on SQLite) plus version_id_col
  optimistic checks on products and customers.
- InMemoryUnitOfWork (services.memory_store): dict-backed fake used by tests
  to exercise the same atomicity contract without a database.

Storage failures are translated into the core taxonomy:
- IntegrityError / StaleDataError -> ConflictError (retryable)
- OperationalError / other DBAPIError -> TransientError
"""

from __future__ import annotations

from contextlib import contextmanager

from flask import current_app
from sqlalchemy import exists, text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, TransientError
from ..extensions import db
from ..models import Branch, Customer, Product, Receipt, Sale, SaleItem, StockMovement, User
from .concurrency import lock_for_update


class UnitOfWork:
    """Interface shared by the SQLAlchemy and in-memory units of work."""

    def begin(self) -> None:
        raise NotImplementedError

    def commit(self) -> None:
        raise NotImplementedError

    def rollback(self) -> None:
        raise NotImplementedError

    def add(self, entity) -> None:
        raise NotImplementedError

    def delete(self, entity) -> None:
        raise NotImplementedError

    def flush(self) -> None:
        raise NotImplementedError

    def get_branch(self, branch_id: int) -> Branch | None:
        raise NotImplementedError

    def get_user(self, user_id: int) -> User | None:
        raise NotImplementedError

    def get_product(self, product_id: int, *, lock: bool = False) -> Product | None:
        raise NotImplementedError

    def get_customer(self, customer_id: int, *, lock: bool = False) -> Customer | None:
        raise NotImplementedError

    def get_sale(self, sale_id: int, *, lock: bool = False) -> Sale | None:
        raise NotImplementedError

    def find_sale_by_idempotency_key(self, key: str) -> Sale | None:
        raise NotImplementedError

    def receipt_number_exists(self, receipt_number: str) -> bool:
        raise NotImplementedError

    def list_movements(self, product_id: int) -> list[StockMovement]:
        raise NotImplementedError

    def list_products(self, branch_id: int) -> list[Product]:
        raise NotImplementedError

    def product_is_referenced(self, product_id: int) -> bool:
        raise NotImplementedError

    def __enter__(self):
        self.begin()
        return self

    def __exit__(self, exc_type, exc, tb):
        # Anything not explicitly committed is discarded
        self.rollback()
        return False


@contextmanager
def _translate_storage_errors():
    try:
        yield
    except IntegrityError as exc:
        raise ConflictError(
            "Storage uniqueness or integrity constraint violated",
            details={"constraint": str(exc.orig)},
        ) from exc
    except StaleDataError as exc:
        raise ConflictError("Row changed by a concurrent transaction") from exc
    except OperationalError as exc:
        raise TransientError("Storage unavailable or timed out") from exc
    except DBAPIError as exc:
        raise TransientError("Storage error") from exc


class SqlAlchemyUnitOfWork(UnitOfWork):
    def __init__(self, session=None, *, sqlite_immediate: bool = True):
        self.session = session if session is not None else db.session
        self.sqlite_immediate = sqlite_immediate

    def _is_sqlite(self) -> bool:
        return self.session.get_bind().dialect.name == "sqlite"

    def begin(self) -> None:
        # Start from a clean transaction; nothing from earlier reads leaks in
        self.session.rollback()
        if self.sqlite_immediate and self._is_sqlite():
            with _translate_storage_errors():
                self.session.execute(text("BEGIN IMMEDIATE"))

    def commit(self) -> None:
        with _translate_storage_errors():
            self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    def add(self, entity) -> None:
        self.session.add(entity)

    def delete(self, entity) -> None:
        self.session.delete(entity)

    def flush(self) -> None:
        with _translate_storage_errors():
            self.session.flush()

    def _get(self, model, entity_id: int, lock: bool = False):
        query = self.session.query(model).filter_by(id=entity_id)
        if lock:
            query = lock_for_update(query).populate_existing()
        with _translate_storage_errors():
            return query.first()

    def get_branch(self, branch_id: int) -> Branch | None:
        return self._get(Branch, branch_id)

    def get_user(self, user_id: int) -> User | None:
        return self._get(User, user_id)

    def get_product(self, product_id: int, *, lock: bool = False) -> Product | None:
        return self._get(Product, product_id, lock)

    def get_customer(self, customer_id: int, *, lock: bool = False) -> Customer | None:
        return self._get(Customer, customer_id, lock)

    def get_sale(self, sale_id: int, *, lock: bool = False) -> Sale | None:
        return self._get(Sale, sale_id, lock)

    def find_sale_by_idempotency_key(self, key: str) -> Sale | None:
        with _translate_storage_errors():
            return self.session.query(Sale).filter_by(idempotency_key=key).first()

    def receipt_number_exists(self, receipt_number: str) -> bool:
        with _translate_storage_errors():
            return self.session.query(
                exists().where(Receipt.receipt_number == receipt_number)
            ).scalar()

    def list_movements(self, product_id: int) -> list[StockMovement]:
        with _translate_storage_errors():
            return (
                self.session.query(StockMovement)
                .filter_by(product_id=product_id)
                .order_by(StockMovement.occurred_at.asc(), StockMovement.id.asc())
                .all()
            )

    def list_products(self, branch_id: int) -> list[Product]:
        with _translate_storage_errors():
            return (
                self.session.query(Product)
                .filter_by(branch_id=branch_id)
                .order_by(Product.name.asc(), Product.id.asc())
                .all()
            )

    def product_is_referenced(self, product_id: int) -> bool:
        with _translate_storage_errors():
            in_sales = self.session.query(
                exists().where(SaleItem.product_id == product_id)
            ).scalar()
            if in_sales:
                return True
            return self.session.query(
                exists().where(StockMovement.product_id == product_id)
            ).scalar()


def request_unit_of_work() -> SqlAlchemyUnitOfWork:
    """Unit of work on the Flask-SQLAlchemy session, configured from the current app."""
    return SqlAlchemyUnitOfWork(
        db.session,
        sqlite_immediate=current_app.config.get("SQLITE_IMMEDIATE_TRANSACTIONS", True),
    )
