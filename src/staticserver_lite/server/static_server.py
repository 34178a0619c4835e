"""Static file server for a single root folder.

Architecture:
    Accept thread: socket.accept() in a loop, polling so close() is seen
    Worker threads: ThreadPoolExecutor runs one handler per connection
    Per-connection flow: parse -> resolve -> (intercept) -> respond -> close

An intercepted request parks its worker thread for at most the
interception timeout. Other connections keep being served by the rest
of the pool, and other roots have pools of their own.

Lifecycle (see domain.state):
    start():  CREATED -> LISTENING, or CREATED -> CLOSED + BindFailure
    close():  LISTENING -> CLOSING -> CLOSED
              stop accepting, expire pending interceptions, drain the
              pool, release the socket
"""
from __future__ import annotations

import logging
import socket
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable

from staticserver_lite.concurrency.atomic_ref import AtomicRef
from staticserver_lite.domain.config import InterceptionConfig
from staticserver_lite.domain.errors import BindFailure
from staticserver_lite.domain.request import ServerInfo
from staticserver_lite.domain.state import ServerState, check_transition
from staticserver_lite.domain.types import RequestPath, RootPath
from staticserver_lite.interception.events import RequestEvents
from staticserver_lite.interception.pipeline import InterceptionPipeline
from staticserver_lite.server.files import canonical_root
from staticserver_lite.server.handler import StaticRequestHandler

log = logging.getLogger(__name__)

_ACCEPT_POLL_S = 0.25
_LISTEN_BACKLOG = 128


class StaticServer:
    """Serves files under one root on an ephemeral loopback port.

    Args:
        root: folder to serve. Canonicalized on construction.
        events: subscribers notified of filtered requests.
        config: shared interception timeout reference.
        host: bind address (default "127.0.0.1").
        port: bind port (default 0 = OS picks a free port).
        max_workers: connection handler pool size.
    """

    def __init__(
        self,
        root: str,
        events: RequestEvents | None = None,
        config: AtomicRef[InterceptionConfig] | None = None,
        host: str = "127.0.0.1",
        port: int = 0,
        max_workers: int = 32,
    ) -> None:
        self._root = canonical_root(root)
        self._root_path = Path(self._root).resolve()
        self._host = host
        self._port = port
        self._max_workers = max_workers
        self._pipeline = InterceptionPipeline(self._root, events or RequestEvents(), config)
        self._filtered: AtomicRef[frozenset[RequestPath]] = AtomicRef(frozenset())
        self._state = ServerState.CREATED
        self._state_lock = threading.Lock()
        self._server_socket: socket.socket | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._accept_thread: threading.Thread | None = None
        self._info: ServerInfo | None = None
        self._requests_processed = 0
        self._counter_lock = threading.Lock()

    @property
    def root(self) -> RootPath:
        return self._root

    @property
    def root_path(self) -> Path:
        """Root with symlinks resolved; the traversal check compares against this."""
        return self._root_path

    @property
    def pipeline(self) -> InterceptionPipeline:
        return self._pipeline

    @property
    def state(self) -> ServerState:
        with self._state_lock:
            return self._state

    @property
    def info(self) -> ServerInfo:
        """Address and port. Only valid after start()."""
        if self._info is None:
            raise RuntimeError("Server not started")
        return self._info

    @property
    def filtered_paths(self) -> frozenset[RequestPath]:
        return self._filtered.get()

    def set_filtered_paths(self, paths: Iterable[RequestPath]) -> frozenset[RequestPath]:
        """Replace the whole filtered-path set. Not additive."""
        new = frozenset(paths)
        self._filtered.set(new)
        return new

    @property
    def requests_processed(self) -> int:
        """Total connections handled (thread-safe read)."""
        with self._counter_lock:
            return self._requests_processed

    def start(self) -> ServerInfo:
        """Bind, listen, and start the accept thread. Returns immediately.

        Raises:
            BindFailure: the socket could not be bound. The server is
                CLOSED afterwards and cannot be restarted.
        """
        with self._state_lock:
            check_transition(self._state, ServerState.LISTENING)
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            try:
                sock.bind((self._host, self._port))
                sock.listen(_LISTEN_BACKLOG)
                sock.settimeout(_ACCEPT_POLL_S)
            except OSError as exc:
                sock.close()
                self._state = ServerState.CLOSED
                raise BindFailure(
                    f"Cannot bind {self._host}:{self._port} for {self._root}: {exc}"
                ) from exc
            self._server_socket = sock
            host, port = sock.getsockname()[:2]
            self._info = ServerInfo(address=host, port=port)
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix=f"static-{port}",
            )
            self._state = ServerState.LISTENING

        self._accept_thread = threading.Thread(
            target=self._accept_loop, daemon=True, name=f"static-accept-{port}"
        )
        self._accept_thread.start()
        log.debug("Serving %s on %s:%d", self._root, host, port)
        return self._info

    def close(self) -> None:
        """Graceful shutdown: stop accepting, drain in-flight requests.

        Idempotent. Closing a server that never started just marks it
        CLOSED.
        """
        with self._state_lock:
            if self._state is ServerState.CREATED:
                self._state = ServerState.CLOSED
                return
            if self._state is not ServerState.LISTENING:
                return
            self._state = ServerState.CLOSING

        self._pipeline.close()
        if self._accept_thread is not None:
            self._accept_thread.join()
            self._accept_thread = None
        if self._server_socket is not None:
            try:
                self._server_socket.close()
            except OSError:
                pass
            self._server_socket = None
        if self._executor is not None:
            self._executor.shutdown(wait=True, cancel_futures=False)
            self._executor = None

        with self._state_lock:
            check_transition(self._state, ServerState.CLOSED)
            self._state = ServerState.CLOSED
        log.debug("Closed server for %s", self._root)

    def _accept_loop(self) -> None:
        """Accept connections and submit them to the pool.

        The listening socket has a short timeout so the loop notices
        CLOSING without needing the socket to be closed under it.
        """
        while self.state is ServerState.LISTENING:
            try:
                client_sock, addr = self._server_socket.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            if self.state is not ServerState.LISTENING:
                client_sock.close()
                break
            self._executor.submit(self._handle_connection, client_sock, addr)

    def _handle_connection(self, client_sock: socket.socket, addr: tuple[str, int]) -> None:
        try:
            StaticRequestHandler(client_sock, addr, self)
        except ConnectionError:
            log.debug("Client %s disconnected", addr)
        except Exception:
            log.exception("Error handling %s under %s", addr, self._root)
        finally:
            try:
                client_sock.close()
            except OSError:
                pass
            with self._counter_lock:
                self._requests_processed += 1
