"""Per-order mutual exclusion.

Settlement reads an order, calls the ledger and commits the outcome. Two
concurrent settlements of the same order inside one process would both see
PLATFORM_NATIVE, so every mutating command for an order is dispatched while
holding that order's lock. The lock spans the whole unit of work, commit
included. Across processes the ledger's idempotency key is what prevents a
second debit.
"""

import threading
from contextlib import contextmanager

from protean.utils.globals import current_domain

from fulfillment.utils.logging import order_log_context

_registry_lock = threading.Lock()
_locks: dict[str, threading.RLock] = {}


def _lock_for(key: str) -> threading.RLock:
    with _registry_lock:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _locks[key] = lock
        return lock


@contextmanager
def order_lock(key: str):
    """Hold the lock for ``key`` (order id, or natural key during ingestion)."""
    lock = _lock_for(str(key))
    with lock:
        yield


def process_for_order(order_id: str, command):
    """Process ``command`` synchronously while holding the order's lock."""
    with order_lock(order_id), order_log_context(order_id=str(order_id)):
        return current_domain.process(command, asynchronous=False)


def reset_locks() -> None:
    with _registry_lock:
        _locks.clear()
