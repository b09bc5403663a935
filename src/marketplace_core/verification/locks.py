"""Per-key mutual exclusion for the in-memory verification maps."""

from __future__ import annotations

import threading


class KeyedLocks:
    """Hands out one lock per key so unrelated identities never contend.

    The guard lock is held only while looking up or creating the per-key
    lock, never across the caller's critical section.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def __call__(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def __len__(self) -> int:
        return len(self._locks)
