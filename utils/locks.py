"""
Per-supplier mutual exclusion.

One batch pass (canonical writes followed by downstream sync) runs at a
time per supplier within this process.
"""

from contextlib import contextmanager
from typing import Iterator
import threading
import weakref
import structlog

logger = structlog.get_logger(__name__)


_registry_lock = threading.Lock()
# Entries are dropped once nothing references the lock
_supplier_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()


def get_supplier_lock(supplier_id: str) -> threading.Lock:
    with _registry_lock:
        lock = _supplier_locks.get(supplier_id)
        if lock is None:
            lock = threading.Lock()
            _supplier_locks[supplier_id] = lock
        return lock


@contextmanager
def supplier_lock(supplier_id: str) -> Iterator[None]:
    """Hold the supplier's lock for the duration of the block."""
    lock = get_supplier_lock(supplier_id)

    if not lock.acquire(blocking=False):
        logger.info("waiting_for_supplier_lock", supplier_id=supplier_id)
        lock.acquire()

    try:
        yield
    finally:
        lock.release()
