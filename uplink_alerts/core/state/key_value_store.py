from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Optional, Protocol, Tuple, TypeVar

V = TypeVar("V")
R = TypeVar("R")

Updater = Callable[[Optional[V]], Tuple[Optional[V], R]]


class KeyValueStore(Protocol[V]):
    """
    Protocol for small keyed state shared between request threads.

    Methods
    -------
    get(key)
        Return the current value or None.
    update(key, fn)
        Atomically read-modify-write one key.
    """

    def get(self, key: str) -> Optional[V]:
        ...

    def update(self, key: str, fn: Updater) -> R:
        """
        Atomically apply ``fn`` to the value stored under ``key``.

        ``fn`` receives the current value (or None) and returns
        ``(new_value, result)``. A ``new_value`` of None leaves the stored
        value untouched. ``result`` is returned to the caller.
        """
        ...


@dataclass
class InMemoryKeyValueStore(Generic[V]):
    """
    Process-lifetime key/value store with per-key locking.

    Concurrency Model
    -----------------
    Each key has its own lock, so updates for different devices never wait
    on each other. A short guard lock only protects creation of the per-key
    locks. Nothing is persisted; state is lost on restart.
    """

    _data: Dict[str, V] = field(default_factory=dict)
    _locks: Dict[str, threading.Lock] = field(default_factory=dict, init=False, repr=False)
    _guard: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def get(self, key: str) -> Optional[V]:
        return self._data.get(key)

    def update(self, key: str, fn: Updater) -> R:
        with self._lock_for(key):
            new, result = fn(self._data.get(key))
            if new is not None:
                self._data[key] = new
            return result

    def __len__(self) -> int:
        return len(self._data)
