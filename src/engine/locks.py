from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Tuple


class ResourceLocks:
    """One lock per (cluster namespace, work unit name).

    The dispatcher and the completion monitors take the same lock before
    mutating a work unit, so two code paths never write one name at once.
    An entry lives only while someone holds or waits on it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # key -> [lock, holders and waiters]
        self._locks: Dict[Tuple[str, str], List] = {}

    def _acquire_entry(self, key: Tuple[str, str]) -> threading.RLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _release_entry(self, key: Tuple[str, str]) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, namespace: str, name: str) -> Iterator[None]:
        key = (namespace, name)
        lock = self._acquire_entry(key)
        try:
            with lock:
                yield
        finally:
            self._release_entry(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


__all__ = ["ResourceLocks"]
