"""Per-order row locks.

Status changes and courier bookings are not version-gated, so every command
that writes an order runs under that order's lock, from the first read to
the unit-of-work commit. This keeps a status change and an edit on the same
order from losing each other's writes, and makes the edit_version
compare-and-swap atomic with the edit itself.

An order's lock lives only while some thread holds or waits for it.
"""

import threading
from contextlib import contextmanager


class _RowLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0  # holders and waiters


_registry_lock = threading.Lock()
_row_locks: dict[str, _RowLock] = {}


@contextmanager
def order_row_lock(order_id):
    key = str(order_id)
    with _registry_lock:
        row_lock = _row_locks.get(key)
        if row_lock is None:
            row_lock = _row_locks[key] = _RowLock()
        row_lock.users += 1

    try:
        with row_lock.lock:
            yield
    finally:
        with _registry_lock:
            row_lock.users -= 1
            if row_lock.users == 0:
                del _row_locks[key]
