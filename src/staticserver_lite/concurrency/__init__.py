"""Thread-safe building blocks shared by the registry and the servers.

  - KeyedLock: mutual exclusion per key (one root never waits on another)
  - AtomicRef: copy-on-write holder for read-mostly configuration
"""
from staticserver_lite.concurrency.atomic_ref import AtomicRef
from staticserver_lite.concurrency.keyed_lock import KeyedLock

__all__ = [
    "AtomicRef",
    "KeyedLock",
]
