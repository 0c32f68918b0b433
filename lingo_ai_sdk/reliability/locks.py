"""Per-key locking for the ServiceKey-indexed registries."""

import threading
from typing import Dict, Hashable


class KeyedLocks:
    """
    Hands out one lock per key so unrelated keys never serialize.

    Under a single asyncio loop there is no preemption between a registry's
    read and write; the locks make the same registries safe from threads.
    Locks are never dropped, so a key always maps to the same lock.
    """

    def __init__(self):
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._guard = threading.Lock()

    def __call__(self, key: Hashable) -> threading.Lock:
        lock = self._locks.get(key)
        if lock is None:
            with self._guard:
                lock = self._locks.setdefault(key, threading.Lock())
        return lock
