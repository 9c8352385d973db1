"""
Unit tests for per-supplier locks.

Run: pytest tests/unit/test_locks.py -v
"""

import gc
import threading

from utils import locks


def test_same_supplier_shares_a_lock():
    first = locks.get_supplier_lock("sup-1")

    assert locks.get_supplier_lock("sup-1") is first
    assert locks.get_supplier_lock("sup-2") is not first


def test_lock_is_held_inside_the_block():
    with locks.supplier_lock("sup-1"):
        assert locks.get_supplier_lock("sup-1").locked()

    assert not locks.get_supplier_lock("sup-1").locked()


def test_blocks_for_one_supplier_do_not_overlap():
    active = []
    overlaps = []

    def work():
        with locks.supplier_lock("sup-1"):
            active.append(1)
            if len(active) > 1:
                overlaps.append(1)
            active.pop()

    threads = [threading.Thread(target=work) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert overlaps == []


def test_unused_locks_are_released():
    with locks.supplier_lock("sup-gone"):
        pass
    gc.collect()

    assert "sup-gone" not in locks._supplier_locks
