# Overview: Service-layer concurrency helpers; row locks, per-tenant writer lock, retries.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .tenant_service import require_restaurant


_tenant_locks: dict[int, threading.RLock] = {}
_tenant_locks_guard = threading.Lock()


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _tenant_lock(restaurant_id: int) -> threading.RLock:
    with _tenant_locks_guard:
        lock = _tenant_locks.get(restaurant_id)
        if lock is None:
            lock = threading.RLock()
            _tenant_locks[restaurant_id] = lock
        return lock


@contextmanager
def tenant_write_lock(restaurant_id: int):
    """
    Single-writer section for one restaurant's ledger.

    Holds an in-process re-entrant lock for the restaurant and locks the
    restaurant row, so validation, append and commit of a posting are never
    interleaved with another writer of the same tenant. Readers are not
    blocked. Re-entrant: a service that posts several entries in one unit of
    work may nest calls.
    """
    lock = _tenant_lock(restaurant_id)
    with lock:
        restaurant = require_restaurant(restaurant_id, lock=True)
        yield restaurant


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Domain errors propagate on first raise.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
