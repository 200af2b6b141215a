"""
Tests for per-entity locks.

These tests verify:
1. Keys are held for the duration of the block and released afterwards
2. Disjoint keys do not block each other
3. A lock that cannot be taken in time raises LockTimeout
4. Unused locks are dropped from the registry
"""

import threading

import pytest

from library_lending.errors import ErrorKind, LockTimeout
from library_lending.locking import (
    LockRegistry,
    book_key,
    loan_key,
    reader_key,
    reservation_key,
)


def hold_in_thread(registry: LockRegistry, *keys: str):
    """Hold ``keys`` in another thread until the returned event is set."""
    acquired = threading.Event()
    release = threading.Event()

    def worker():
        with registry.hold(*keys):
            acquired.set()
            release.wait(timeout=5)

    thread = threading.Thread(target=worker)
    thread.start()
    assert acquired.wait(timeout=5)
    return release, thread


class TestLockKeys:
    def test_keys_are_namespaced(self):
        assert book_key(1) == "book:1"
        assert reader_key("R1") == "reader:R1"
        assert loan_key("B1") == "loan:B1"
        assert reservation_key("A1") == "reservation:A1"
        assert book_key(1) != reader_key("1")


class TestLockRegistry:
    """Test the lock registry."""

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError):
            LockRegistry(timeout=0)

    def test_locks_dropped_after_use(self):
        registry = LockRegistry()
        with registry.hold("book:1", "reader:R1"):
            assert len(registry) == 2
        assert len(registry) == 0

    def test_reentrant_in_same_thread(self):
        registry = LockRegistry(timeout=0.1)
        with registry.hold("book:1"):
            with registry.hold("book:1", "reader:R1"):
                pass
        assert len(registry) == 0

    def test_contended_key_times_out(self):
        registry = LockRegistry(timeout=0.1)
        release, thread = hold_in_thread(registry, "book:1")
        try:
            with pytest.raises(LockTimeout) as exc_info:
                with registry.hold("book:1"):
                    pass
            assert exc_info.value.kind == ErrorKind.TRANSIENT_FAILURE
            assert exc_info.value.retryable
        finally:
            release.set()
            thread.join()
        assert len(registry) == 0

    def test_partial_acquisition_released_on_timeout(self):
        registry = LockRegistry(timeout=0.1)
        release, thread = hold_in_thread(registry, "reader:R1")
        try:
            with pytest.raises(LockTimeout):
                # "book:1" sorts first and is taken before the wait on "reader:R1"
                with registry.hold("reader:R1", "book:1"):
                    pass
            with registry.hold("book:1", timeout=0.1):
                pass
        finally:
            release.set()
            thread.join()

    def test_disjoint_keys_do_not_block(self):
        registry = LockRegistry(timeout=0.1)
        release, thread = hold_in_thread(registry, "book:1")
        try:
            with registry.hold("book:2", "reader:R2"):
                pass
        finally:
            release.set()
            thread.join()

    def test_lock_released_when_block_raises(self):
        registry = LockRegistry(timeout=0.1)
        with pytest.raises(RuntimeError):
            with registry.hold("loan:B1"):
                raise RuntimeError("boom")
        assert len(registry) == 0
        with registry.hold("loan:B1"):
            pass
