"""Per-group mutual exclusion for the ingestion write path."""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class GroupLockRegistry:
    """
    Hands out one lock per group key.

    At most one ingestion per group is in flight; different groups never
    block each other. Entries are reference-counted and dropped once no
    thread holds or waits for them, so the registry does not grow with the
    number of groups ever seen.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}

    @contextmanager
    def hold(self, group_key: str) -> Iterator[None]:
        """
        Hold the lock of `group_key` for the duration of the block.

        The lock is released on every exit path, including exceptions.
        """
        with self._guard:
            lock = self._locks.setdefault(group_key, threading.Lock())
            self._users[group_key] = self._users.get(group_key, 0) + 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._users[group_key] -= 1
                if self._users[group_key] == 0:
                    del self._users[group_key]
                    del self._locks[group_key]

    def active_groups(self) -> List[str]:
        """Group keys currently held or awaited."""
        with self._guard:
            return sorted(self._locks)


_default_registry = GroupLockRegistry()


def default_registry() -> GroupLockRegistry:
    """Process-wide registry used when callers do not pass their own."""
    return _default_registry
