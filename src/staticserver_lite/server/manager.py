"""ServerManager: the control surface behind the command channel.

One manager owns:
  - a PathRegistry with every running server
  - one RequestEvents list shared by all of its servers
  - one AtomicRef[InterceptionConfig] shared by all of their pipelines

Nothing here is a module-level global. Two managers in one process
(say, two tests running side by side) never see each other's servers,
subscribers or timeout.
"""
from __future__ import annotations

import logging
import os
from typing import Iterable

from staticserver_lite.concurrency.atomic_ref import AtomicRef
from staticserver_lite.domain.config import InterceptionConfig
from staticserver_lite.domain.errors import RootNotFound, ServerNotFound
from staticserver_lite.domain.request import ServerInfo
from staticserver_lite.domain.types import RequestPath, RootPath
from staticserver_lite.interception.events import RequestEvents
from staticserver_lite.server.files import canonical_root
from staticserver_lite.server.registry import PathRegistry
from staticserver_lite.server.static_server import StaticServer

log = logging.getLogger(__name__)


def normalize_request_path(path: str) -> RequestPath:
    path = str(path)
    if not path.startswith("/"):
        path = "/" + path
    return path


class ServerManager:
    """Start, stop and configure static servers by root folder.

    Args:
        host: loopback address every server binds to.
        max_workers: per-server handler pool size.
        config: initial interception config (default timeout).
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        max_workers: int = 32,
        config: InterceptionConfig | None = None,
    ) -> None:
        self._host = host
        self._max_workers = max_workers
        self._registry = PathRegistry()
        self._events = RequestEvents()
        self._config: AtomicRef[InterceptionConfig] = AtomicRef(config or InterceptionConfig())

    @property
    def events(self) -> RequestEvents:
        return self._events

    @property
    def config(self) -> InterceptionConfig:
        return self._config.get()

    @property
    def registry(self) -> PathRegistry:
        return self._registry

    def get_server(self, root: str) -> ServerInfo:
        """Address of the server for root, starting it on first use.

        Raises:
            RootNotFound: root is not an existing directory.
            BindFailure: no port could be bound.
        """
        root = canonical_root(root)
        if not os.path.isdir(root):
            raise RootNotFound(f"Not a directory: {root}")
        known = root in self._registry
        info = self._registry.get_or_create(root, self._create_server)
        if not known:
            log.info("Static server for %s at %s", root, info.base_url)
        return info

    def close_server(self, root: str) -> bool:
        """Stop the server for root. Idempotent: False if none was running."""
        root = canonical_root(root)
        closed = self._registry.close(root)
        if closed:
            log.info("Stopped static server for %s", root)
        return closed

    def close_all(self) -> int:
        closed = self._registry.close_all()
        if closed:
            log.info("Stopped %d static server(s)", closed)
        return closed

    def set_filtered_paths(
        self, root: str, paths: Iterable[str]
    ) -> frozenset[RequestPath]:
        """Replace the set of request paths routed through interception.

        Raises:
            ServerNotFound: no server is running for root.
        """
        server = self._registry.get(root)
        if server is None:
            raise ServerNotFound(f"No server running for {canonical_root(root)}")
        new = server.set_filtered_paths(normalize_request_path(p) for p in paths)
        log.debug("Filtered paths for %s: %s", server.root, sorted(new))
        return new

    def set_interception_timeout(self, timeout_ms: int | None) -> InterceptionConfig:
        """Set the timeout for every server of this manager.

        Negative restores the default; None disables the timeout.
        """
        config = InterceptionConfig.from_millis(timeout_ms)
        self._config.set(config)
        log.debug("Interception timeout set to %s ms", config.timeout_ms)
        return config

    def roots(self) -> list[RootPath]:
        return self._registry.roots()

    def _create_server(self, root: RootPath) -> StaticServer:
        return StaticServer(
            root,
            events=self._events,
            config=self._config,
            host=self._host,
            max_workers=self._max_workers,
        )

    def __enter__(self) -> ServerManager:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close_all()
