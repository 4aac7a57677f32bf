"""Per-order mutual exclusion.

Mutations of one order run one at a time inside this process; mutations
of different orders never wait on each other.  The database row lock
(``SELECT FOR UPDATE``) still guards against other processes, but the
in-process lock additionally covers event publication, so subscribers
see an order's events in the order its mutations were applied.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.holders = 0


class OrderLockRegistry:
    """Reference-counted map of order id -> lock.

    Entries are dropped once nobody holds or waits on them, so the map
    only grows with the number of orders being mutated concurrently.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    @contextmanager
    def hold(self, order_id) -> Iterator[None]:
        key = str(order_id)
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.holders += 1
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


order_locks = OrderLockRegistry()
