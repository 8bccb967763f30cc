# Overview: Dict-backed store and unit of work for exercising the services without a database.

"""
In-memory store

Holds model instances (detached from any SQLAlchemy session) in per-model
dicts and mimics the storage guarantees the services rely on:

- atomicity: rows staged with add() become visible only on commit(); rows
  locked for update are snapshotted and restored on rollback()
- row locks: one lock per locked product/customer/sale, held until
  commit/rollback; waiting longer than lock_timeout raises TransientError
- uniqueness: receipt numbers and sale idempotency keys are checked at
  commit and raise ConflictError, like a unique constraint would

Unlocked reads are read-uncommitted: they may observe another unit of
work's in-flight changes to shared rows. The services only mutate rows
they have locked.
"""

from __future__ import annotations

import threading
from collections import defaultdict

from ..errors import ConflictError, TransientError
from ..models import Branch, Customer, Product, Receipt, Sale, SaleItem, StockMovement, User
from .unit_of_work import UnitOfWork


_SNAPSHOT_FIELDS = {
    Product: ("stock", "is_active", "version_id"),
    Customer: ("total_purchases_cents", "loyalty_points", "last_visit_at", "version_id"),
    Sale: ("status", "payment_status", "voided_by_user_id", "voided_at", "void_reason"),
    Receipt: ("voided_at",),
}

_MODELS = (Branch, User, Product, Customer, Sale, SaleItem, Receipt, StockMovement)


def _apply_column_defaults(entity) -> None:
    # Mirror scalar INSERT defaults (default=...) that a database flush would apply
    for column in entity.__table__.columns:
        if column.default is None or not column.default.is_scalar:
            continue
        if getattr(entity, column.key, None) is None:
            setattr(entity, column.key, column.default.arg)


class InMemoryStore:
    def __init__(self, *, lock_timeout: float = 5.0):
        self.lock_timeout = lock_timeout
        self.tables: dict[type, dict[int, object]] = {model: {} for model in _MODELS}
        self._ids: dict[type, int] = defaultdict(int)
        self._guard = threading.RLock()
        self._row_locks: dict[tuple[str, int], threading.Lock] = {}

    def next_id(self, model: type) -> int:
        with self._guard:
            self._ids[model] += 1
            return self._ids[model]

    def row_lock(self, key: tuple[str, int]) -> threading.Lock:
        with self._guard:
            lock = self._row_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._row_locks[key] = lock
            return lock

    def seed(self, *entities):
        """Insert rows directly (test setup). Assigns ids where missing."""
        with self._guard:
            for entity in entities:
                model = type(entity)
                if entity.id is None:
                    entity.id = self.next_id(model)
                else:
                    self._ids[model] = max(self._ids[model], entity.id)
                _apply_column_defaults(entity)
                self.tables[model][entity.id] = entity
        return entities[0] if len(entities) == 1 else entities

    def get(self, model: type, entity_id: int):
        with self._guard:
            return self.tables[model].get(entity_id)

    def all(self, model: type) -> list:
        with self._guard:
            return list(self.tables[model].values())

    def unit_of_work(self) -> "InMemoryUnitOfWork":
        return InMemoryUnitOfWork(self)


class InMemoryUnitOfWork(UnitOfWork):
    def __init__(self, store: InMemoryStore):
        self.store = store
        self._pending: list = []
        self._deleted: list = []
        self._undo: dict[tuple[type, int], tuple[object, dict]] = {}
        self._held: dict[tuple[str, int], threading.Lock] = {}

    # -- transaction lifecycle --

    def begin(self) -> None:
        self.rollback()

    def commit(self) -> None:
        with self.store._guard:
            self._check_unique_constraints()
            for entity in self._pending:
                self.store.tables[type(entity)][entity.id] = entity
            for entity in self._deleted:
                self._purge(entity)
        self._pending = []
        self._deleted = []
        self._undo = {}
        self._release_locks()

    def rollback(self) -> None:
        for entity, values in self._undo.values():
            for name, value in values.items():
                setattr(entity, name, value)
        self._pending = []
        self._deleted = []
        self._undo = {}
        self._release_locks()

    def add(self, entity) -> None:
        if entity.id is None:
            entity.id = self.store.next_id(type(entity))
        _apply_column_defaults(entity)
        if entity not in self._pending:
            self._pending.append(entity)

    def delete(self, entity) -> None:
        self._deleted.append(entity)

    def flush(self) -> None:
        # ids are assigned eagerly by add(); only back-fill child foreign keys
        for entity in self._pending:
            if isinstance(entity, SaleItem) and entity.sale is not None:
                entity.sale_id = entity.sale.id
            if isinstance(entity, Receipt) and entity.sale is not None:
                entity.sale_id = entity.sale.id

    # -- locking --

    def _lock(self, kind: str, entity_id: int) -> None:
        key = (kind, entity_id)
        if key in self._held:
            return
        lock = self.store.row_lock(key)
        if not lock.acquire(timeout=self.store.lock_timeout):
            raise TransientError(
                "Timed out waiting for row lock",
                details={"row": f"{kind}:{entity_id}"},
            )
        self._held[key] = lock

    def _release_locks(self) -> None:
        held, self._held = self._held, {}
        for lock in held.values():
            lock.release()

    def _snapshot(self, entity) -> None:
        if entity is None:
            return
        key = (type(entity), entity.id)
        if key in self._undo:
            return
        fields = _SNAPSHOT_FIELDS.get(type(entity), ())
        self._undo[key] = (entity, {name: getattr(entity, name) for name in fields})

    def _get_locked(self, model: type, kind: str, entity_id: int, lock: bool):
        if lock:
            self._lock(kind, entity_id)
        entity = self.store.get(model, entity_id)
        if lock:
            self._snapshot(entity)
        return entity

    # -- reads --

    def get_branch(self, branch_id: int) -> Branch | None:
        return self.store.get(Branch, branch_id)

    def get_user(self, user_id: int) -> User | None:
        return self.store.get(User, user_id)

    def get_product(self, product_id: int, *, lock: bool = False) -> Product | None:
        return self._get_locked(Product, "product", product_id, lock)

    def get_customer(self, customer_id: int, *, lock: bool = False) -> Customer | None:
        return self._get_locked(Customer, "customer", customer_id, lock)

    def get_sale(self, sale_id: int, *, lock: bool = False) -> Sale | None:
        sale = self._get_locked(Sale, "sale", sale_id, lock)
        if lock and sale is not None:
            self._snapshot(sale.receipt)
        return sale

    def find_sale_by_idempotency_key(self, key: str) -> Sale | None:
        for sale in self.store.all(Sale):
            if sale.idempotency_key == key:
                return sale
        return None

    def receipt_number_exists(self, receipt_number: str) -> bool:
        staged = [e for e in self._pending if isinstance(e, Receipt)]
        return any(r.receipt_number == receipt_number for r in self.store.all(Receipt) + staged)

    def list_movements(self, product_id: int) -> list[StockMovement]:
        staged = [e for e in self._pending if isinstance(e, StockMovement)]
        rows = [m for m in self.store.all(StockMovement) + staged if m.product_id == product_id]
        return sorted(rows, key=lambda m: (m.occurred_at, m.id))

    def list_products(self, branch_id: int) -> list[Product]:
        rows = [p for p in self.store.all(Product) if p.branch_id == branch_id]
        return sorted(rows, key=lambda p: (p.name, p.id))

    def product_is_referenced(self, product_id: int) -> bool:
        if any(i.product_id == product_id for i in self.store.all(SaleItem)):
            return True
        return any(m.product_id == product_id for m in self.store.all(StockMovement))

    # -- commit helpers --

    def _check_unique_constraints(self) -> None:
        staged_receipts = [e for e in self._pending if isinstance(e, Receipt)]
        taken = {r.receipt_number for r in self.store.tables[Receipt].values()}
        for receipt in staged_receipts:
            if receipt.receipt_number in taken:
                raise ConflictError(
                    "Storage uniqueness or integrity constraint violated",
                    details={"constraint": "uq_receipts_number"},
                )
            taken.add(receipt.receipt_number)

        keys = {
            s.idempotency_key
            for s in self.store.tables[Sale].values()
            if s.idempotency_key
        }
        for sale in (e for e in self._pending if isinstance(e, Sale)):
            if sale.idempotency_key and sale.idempotency_key in keys:
                raise ConflictError(
                    "Storage uniqueness or integrity constraint violated",
                    details={"constraint": "uq_sales_idempotency_key"},
                )

    def _purge(self, entity) -> None:
        if isinstance(entity, StockMovement):
            raise ConflictError("stock movements are append-only")
        self.store.tables[type(entity)].pop(entity.id, None)
        if isinstance(entity, Sale):
            for item in entity.items:
                self.store.tables[SaleItem].pop(item.id, None)
            if entity.receipt is not None:
                self.store.tables[Receipt].pop(entity.receipt.id, None)
