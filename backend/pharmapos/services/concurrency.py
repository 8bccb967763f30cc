# Overview: Row locking and retry helpers shared by the sale and inventory services.

from __future__ import annotations

import logging
import time

from ..errors import ConflictError

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; SqlAlchemyUnitOfWork takes
    the database write lock with BEGIN IMMEDIATE there instead.
    """
    return query.with_for_update()


def run_with_retry(
    func,
    *,
    attempts: int = 2,
    backoff_base: float = 0.05,
    retry_on: tuple[type[BaseException], ...] = (ConflictError,),
    on_retry=None,
):
    """
    Execute a unit of work with retry on lost races.

    Only ConflictError is retried by default: a receipt-number collision or a
    stale stock version. Everything else propagates on the first failure.
    func is expected to have rolled back its own unit of work before raising.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            if attempt >= attempts - 1:
                raise
            logger.warning(
                "Retrying after %s (attempt %d of %d): %s",
                type(exc).__name__, attempt + 1, attempts, exc,
            )
            if on_retry is not None:
                on_retry()
            if backoff_base:
                time.sleep(backoff_base * (2 ** attempt))
