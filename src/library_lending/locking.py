"""
Per-entity critical sections for lending operations.

Operations on the same book are linearized; so are operations on the same
reader account, loan and reservation. Operations on disjoint entities run
in parallel. An operation names every entity it will write up front and
holds all of their locks from its first read to its commit:

```python
with locks.hold(book_key(book_id), reader_key(reader_no)):
    ...  # read, check, write, commit
```

Keys are acquired in sorted order, so two operations that need the same
pair of locks can never deadlock. A lock that cannot be had within the
timeout aborts the operation with ``LockTimeout`` before it touches the
store; callers may retry.

The locks are process-local. Row versions on books and reader accounts
(see ``database/schema.py``) still catch a writer in another process.
"""

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager

from .errors import LockTimeout

logger = logging.getLogger(__name__)


def book_key(book_id: int) -> str:
    return f"book:{book_id}"


def reader_key(reader_no: str) -> str:
    return f"reader:{reader_no}"


def loan_key(loan_no: str) -> str:
    return f"loan:{loan_no}"


def reservation_key(reservation_no: str) -> str:
    return f"reservation:{reservation_no}"


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class LockRegistry:
    """
    Named re-entrant locks, created on first use and dropped when unused.

    Args:
        timeout: Default seconds to wait for all locks of one ``hold()``
    """

    def __init__(self, timeout: float = 5.0):
        if timeout <= 0:
            raise ValueError("Lock timeout must be positive")
        self.timeout = timeout
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def _checkout(self, key: str) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
            return entry

    def _checkin(self, key: str, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, *keys: str, timeout: float | None = None) -> Iterator[None]:
        """
        Hold the locks for ``keys`` for the duration of the block.

        Args:
            keys: Lock names; duplicates and empty names are ignored
            timeout: Seconds to wait for all of them (defaults to the registry's)

        Raises:
            LockTimeout: If any lock is not acquired in time. Locks already
                taken are released before raising.
        """
        ordered = sorted({key for key in keys if key})
        deadline = time.monotonic() + (self.timeout if timeout is None else timeout)
        held: list[tuple[str, _Entry]] = []
        try:
            for key in ordered:
                entry = self._checkout(key)
                remaining = max(0.0, deadline - time.monotonic())
                if not entry.lock.acquire(timeout=remaining):
                    self._checkin(key, entry)
                    logger.warning("Timed out after waiting for lock %s", key)
                    raise LockTimeout(key=key)
                held.append((key, entry))
            yield
        finally:
            for key, entry in reversed(held):
                entry.lock.release()
                self._checkin(key, entry)
