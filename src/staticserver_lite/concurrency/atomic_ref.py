"""Copy-on-write reference for values read on every request.

The filtered-path set and the interception timeout are read by every
in-flight request but written only when the editor reconfigures. The
holder never mutates the value it holds: writers build a new immutable
value and swap the reference, so a reader that called get() keeps a
consistent snapshot even if a writer replaces it a moment later.

Reads take no lock. Rebinding an attribute is a single reference store,
and the stored values are immutable (frozenset, frozen dataclass).
Writers still serialize among themselves so that update() is an atomic
read-modify-write.
"""
from __future__ import annotations

import threading
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class AtomicRef(Generic[T]):
    """Holds one immutable value; replaced wholesale, never edited."""

    def __init__(self, value: T) -> None:
        self._value = value
        self._write_lock = threading.Lock()

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> T:
        """Replace the value. Returns the previous one."""
        with self._write_lock:
            old, self._value = self._value, value
            return old

    def update(self, func: Callable[[T], T]) -> T:
        """Atomic read-modify-write. func must return a new value."""
        with self._write_lock:
            self._value = func(self._value)
            return self._value
