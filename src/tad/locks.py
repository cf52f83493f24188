"""
Identifier-keyed lock table.

Submit, Delete, poller writes and reconciliation repairs on the same job id
are mutually exclusive; operations on different ids never contend.
"""

import threading
from contextlib import contextmanager


class KeyedLock:
    """A table of re-entrant locks, one per key, dropped when unused"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}  # key -> [RLock, holders]

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.RLock(), 0]
            entry[1] += 1

        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
