"""Per-key mutual exclusion.

A single registry lock would serialize every start/stop across all
roots, and binding a socket is slow enough for that to matter. A
striped lock (hash(key) & mask) spreads the load but still lets two
unrelated roots collide on one stripe. KeyedLock hands out one lock
per live key instead, so only callers that name the same key ever
wait on each other.

Locks are reference counted and dropped as soon as no thread holds or
waits for them, so the table never grows beyond the number of keys in
active use.

Usage:
    locks = KeyedLock()

    with locks.hold("/projects/site"):
        ...  # exclusive for this key only
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLock:
    """Mutex table keyed by any hashable value."""

    def __init__(self) -> None:
        self._entries: dict[Hashable, _Entry] = {}
        self._guard = threading.Lock()  # protects _entries and refcounts only

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Acquire the lock for key. Blocks only on holders of the same key."""
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[key]

    def active_keys(self) -> int:
        """Number of keys currently held or waited on. For tests."""
        with self._guard:
            return len(self._entries)
