"""
Store -- the key-value persistence collaborator.

Contract:
    ``get(key, default)`` returns a deep copy of the stored collection (or
    ``default``); ``set(key, value)`` replaces the whole collection and
    reports success as a bool.  Values are JSON-compatible (lists/dicts of
    str, int, bool, None).

    ``lock(key)`` returns a re-entrant lock that repositories hold across a
    read-modify-write of that collection.  It serializes in-process writers
    only; cross-process deployments need a transactional backend.
"""

from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from typing import Any


class Store(ABC):
    """Abstract key-value store."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @abstractmethod
    def get(self, key: str, default: Any) -> Any:
        """Return the collection stored under ``key`` or ``default``."""
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> bool:
        """Replace the collection stored under ``key``."""
        ...

    def lock(self, key: str) -> threading.RLock:
        """Per-key re-entrant lock for read-modify-write sequences."""
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock


class InMemoryStore(Store):
    """Dict-backed store.  Copies on the way in and out so callers never alias."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        super().__init__()
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str, default: Any) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> bool:
        self._data[key] = copy.deepcopy(value)
        return True
