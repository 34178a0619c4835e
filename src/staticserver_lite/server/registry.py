"""Root -> StaticServer registry.

Invariants:
  - at most one server per canonical root at any time
  - get_or_create() for a known root has no side effects
  - creation for one root never waits on creation for another

Two locks, two jobs. KeyedLock serializes the slow work (bind, close)
per root, so two callers asking for the same root end up sharing one
listener and callers for different roots run in parallel. A plain
mutex guards the dict itself and is only ever held for a lookup or an
assignment.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable

from staticserver_lite.concurrency.keyed_lock import KeyedLock
from staticserver_lite.domain.request import ServerInfo
from staticserver_lite.domain.types import RootPath
from staticserver_lite.server.files import canonical_root
from staticserver_lite.server.static_server import StaticServer

log = logging.getLogger(__name__)

ServerFactory = Callable[[RootPath], StaticServer]


class PathRegistry:
    """Owns every StaticServer, keyed by canonical root path."""

    def __init__(self) -> None:
        self._servers: dict[RootPath, StaticServer] = {}
        self._lock = threading.Lock()  # protects _servers only
        self._root_locks = KeyedLock()

    def get_or_create(self, root: str, factory: ServerFactory) -> ServerInfo:
        """Return the running server's address, starting one if needed.

        factory builds an unstarted StaticServer for the canonical root.

        Raises:
            BindFailure: from StaticServer.start(); nothing is registered.
        """
        root = canonical_root(root)
        with self._root_locks.hold(root):
            existing = self.get(root)
            if existing is not None:
                return existing.info
            server = factory(root)
            info = server.start()
            with self._lock:
                self._servers[root] = server
            log.debug("Registered %s on port %d", root, info.port)
            return info

    def get(self, root: str) -> StaticServer | None:
        root = canonical_root(root)
        with self._lock:
            return self._servers.get(root)

    def close(self, root: str) -> bool:
        """Stop and forget the server for root.

        Returns False when there was none. Never raises for an unknown root.
        """
        root = canonical_root(root)
        with self._root_locks.hold(root):
            with self._lock:
                server = self._servers.pop(root, None)
            if server is None:
                return False
            server.close()
            return True

    def close_all(self) -> int:
        """Close every registered server. Returns how many were closed."""
        closed = 0
        for root in self.roots():
            if self.close(root):
                closed += 1
        return closed

    def roots(self) -> list[RootPath]:
        """Snapshot of registered roots."""
        with self._lock:
            return list(self._servers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._servers)

    def __contains__(self, root: object) -> bool:
        if not isinstance(root, str):
            return False
        return self.get(root) is not None
