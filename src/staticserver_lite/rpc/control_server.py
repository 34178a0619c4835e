"""Threaded control server: the command channel in front of a ServerManager.

Architecture:
    Accept thread: socket.accept() in a loop
    One reader thread per client: read frame -> hand to the command pool
    One writer thread per client: drains that client's outbox of replies
    and events
    Command pool: ThreadPoolExecutor runs manager calls, writes replies
    writeFilteredResponse runs inline on the reader thread, so a client's
    answers settle in the order it sent them
    Request threads (inside StaticServer): broadcast "request" events

Connections are long-lived, unlike the one-shot HTTP connections of the
static servers. Replies and events share a socket, so every write to a
client goes through that client's outbox and writer thread.

A client that disconnects is dropped on its own. The static servers
keep running, and commands still queued for that client are answered
into the void.

Filtered requests reach clients as "request" events carrying a
request_id. A client settles one with
writeFilteredResponse(request_id, override_or_null). A request that
no client answers is served from disk once the timeout runs out.
"""
from __future__ import annotations

import itertools
import logging
import queue
import socket
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from staticserver_lite.domain.errors import StaticServerError
from staticserver_lite.domain.request import ResponseOverride
from staticserver_lite.domain.types import RequestId
from staticserver_lite.interception.events import Subscription
from staticserver_lite.interception.pending import InterceptedRequest, PendingResponse, ResponseState
from staticserver_lite.rpc.protocol import (
    Command,
    Event,
    Reply,
    decode_message,
    read_message,
    write_message,
)
from staticserver_lite.server.manager import ServerManager

log = logging.getLogger(__name__)

_ACCEPT_POLL_S = 0.25
_MAX_BACKLOG = 1024
REQUEST_EVENT = "request"
_SESSION = "control-server"

# Never block, and must apply in the order the client sent them.
_INLINE_COMMANDS = frozenset({"writeFilteredResponse"})


class _ClientConnection:
    """One connected control client.

    Writes go through an outbox drained by a writer thread, so a request
    thread broadcasting an event never blocks on a client that stopped
    reading. A client whose outbox backs up past max_backlog is dropped.
    """

    def __init__(
        self, sock: socket.socket, addr: tuple[str, int], max_backlog: int = _MAX_BACKLOG
    ) -> None:
        self.sock = sock
        self.addr = addr
        self.closed = False
        self._max_backlog = max_backlog
        self._outbox: queue.Queue[bytes | None] = queue.Queue()
        self._lock = threading.Lock()  # protects closed and the outbox sentinel
        self._writer = threading.Thread(
            target=self._write_loop, daemon=True, name=f"control-writer-{addr[1]}"
        )
        self._writer.start()

    @property
    def backlog(self) -> int:
        return self._outbox.qsize()

    def send(self, payload: bytes) -> bool:
        """Queue payload for the client. False if the client is gone."""
        with self._lock:
            if self.closed:
                return False
            if self._outbox.qsize() < self._max_backlog:
                self._outbox.put(payload)
                return True
        log.warning("Control client %s stopped reading, dropping it", self.addr)
        self.close()
        return False

    def _write_loop(self) -> None:
        while True:
            payload = self._outbox.get()
            if payload is None:
                return
            try:
                write_message(self.sock, payload)
            except OSError:
                log.debug("Control client %s went away during write", self.addr)
                self.close()
                return

    def close(self) -> None:
        with self._lock:
            if self.closed:
                return
            self.closed = True
            self._outbox.put(None)
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            self.sock.close()
        except OSError:
            pass


class ControlServer:
    """Serves ServerManager commands over length-prefixed JSON frames.

    Args:
        manager: the manager to control (a fresh one if omitted).
        host: bind address (default "127.0.0.1").
        port: bind port (default 0 = OS picks a free port).
        max_workers: command pool size.
    """

    def __init__(
        self,
        manager: ServerManager | None = None,
        host: str = "127.0.0.1",
        port: int = 0,
        max_workers: int = 8,
    ) -> None:
        self._manager = manager or ServerManager()
        self._host = host
        self._port = port
        self._max_workers = max_workers
        self._server_socket: socket.socket | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._accept_thread: threading.Thread | None = None
        self._running = False
        self._ready = threading.Event()
        self._clients: dict[int, _ClientConnection] = {}
        self._client_ids = itertools.count(1)
        self._request_ids = itertools.count(1)
        self._pending: dict[RequestId, PendingResponse] = {}
        self._lock = threading.Lock()  # protects _clients and _pending
        self._subscription: Subscription | None = None
        self._commands: dict[str, Callable[..., Any]] = {
            "getServer": self._cmd_get_server,
            "closeServer": self._cmd_close_server,
            "closeAllServers": self._cmd_close_all,
            "setRequestFilterPaths": self._cmd_set_filter_paths,
            "setRequestFilterTimeout": self._cmd_set_filter_timeout,
            "writeFilteredResponse": self._cmd_write_filtered_response,
        }

    @property
    def manager(self) -> ServerManager:
        return self._manager

    @property
    def address(self) -> tuple[str, int]:
        """Return (host, port) the server is bound to. Only valid after start()."""
        if self._server_socket is None:
            raise RuntimeError("Server not started")
        return self._server_socket.getsockname()[:2]

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def start(self) -> tuple[str, int]:
        """Bind and start accepting in a background thread."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self._host, self._port))
        sock.listen(16)
        sock.settimeout(_ACCEPT_POLL_S)
        self._server_socket = sock
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="control-cmd"
        )
        self._subscription = self._manager.events.subscribe(self._on_request, session=_SESSION)
        self._running = True
        self._accept_thread = threading.Thread(
            target=self._accept_loop, daemon=True, name="control-accept"
        )
        self._accept_thread.start()
        self._ready.set()
        log.info("Control channel listening on %s:%d", *self.address)
        return self.address

    def serve_forever(self) -> None:
        """start() and block until stop() is called from another thread."""
        self.start()
        self._accept_thread.join()

    def wait_ready(self, timeout: float = 5.0) -> None:
        self._ready.wait(timeout=timeout)

    def stop(self, close_servers: bool = True) -> None:
        """Disconnect clients, stop accepting, optionally close all servers."""
        self._running = False
        if self._subscription is not None:
            self._manager.events.unsubscribe(self._subscription)
            self._subscription = None
        if self._accept_thread is not None:
            self._accept_thread.join()
            self._accept_thread = None
        if self._server_socket is not None:
            try:
                self._server_socket.close()
            except OSError:
                pass
            self._server_socket = None
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
            pending = list(self._pending.values())
            self._pending.clear()
        for client in clients:
            client.close()
        for token in pending:
            token.expire()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        if close_servers:
            self._manager.close_all()

    def _accept_loop(self) -> None:
        while self._running:
            try:
                client_sock, addr = self._server_socket.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            client_sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            client = _ClientConnection(client_sock, addr)
            client_id = next(self._client_ids)
            with self._lock:
                self._clients[client_id] = client
            threading.Thread(
                target=self._read_loop,
                args=(client_id, client),
                daemon=True,
                name=f"control-client-{client_id}",
            ).start()
            log.debug("Control client %s connected", addr)

    def _read_loop(self, client_id: int, client: _ClientConnection) -> None:
        try:
            while self._running:
                raw = read_message(client.sock)
                try:
                    msg = decode_message(raw)
                except ValueError:
                    log.warning("Dropping malformed frame from %s", client.addr)
                    continue
                if not isinstance(msg, Command):
                    log.debug("Ignoring non-command frame from %s", client.addr)
                    continue
                if msg.command in _INLINE_COMMANDS:
                    self._dispatch(client, msg)
                    continue
                executor = self._executor
                if executor is None:
                    break
                executor.submit(self._dispatch, client, msg)
        except (ConnectionError, OSError):
            log.debug("Control client %s disconnected", client.addr)
        except ValueError:
            log.warning("Oversized frame from %s, dropping client", client.addr)
        except RuntimeError:
            # executor shut down between the check and submit()
            pass
        finally:
            with self._lock:
                self._clients.pop(client_id, None)
            client.close()

    def _dispatch(self, client: _ClientConnection, cmd: Command) -> None:
        handler = self._commands.get(cmd.command)
        if handler is None:
            reply = Reply(id=cmd.id, ok=False, error=f"Unknown command: {cmd.command}")
        else:
            try:
                reply = Reply(id=cmd.id, ok=True, result=handler(*cmd.args))
            except (StaticServerError, ValueError, TypeError) as exc:
                reply = Reply(id=cmd.id, ok=False, error=f"{type(exc).__name__}: {exc}")
            except Exception as exc:
                log.exception("Command %s failed", cmd.command)
                reply = Reply(id=cmd.id, ok=False, error=f"{type(exc).__name__}: {exc}")
        client.send(reply.to_payload())

    # -- request events ----------------------------------------------------

    def _on_request(self, event: InterceptedRequest) -> None:
        request_id = next(self._request_ids)
        with self._lock:
            self._prune_settled()
            clients = list(self._clients.values())
            self._pending[request_id] = event.token
        payload = Event(
            event=REQUEST_EVENT,
            data={
                "root": event.root,
                "request_id": request_id,
                "location": event.location.to_dict(),
            },
        ).to_payload()
        for client in clients:
            client.send(payload)

    def _prune_settled(self) -> None:
        """Forget tokens that already resolved. Caller holds self._lock."""
        done = [rid for rid, t in self._pending.items() if t.state is not ResponseState.PENDING]
        for rid in done:
            del self._pending[rid]

    # -- commands ----------------------------------------------------------

    def _cmd_get_server(self, root: str) -> dict[str, Any]:
        return self._manager.get_server(root).to_dict()

    def _cmd_close_server(self, root: str) -> bool:
        return self._manager.close_server(root)

    def _cmd_close_all(self) -> int:
        return self._manager.close_all()

    def _cmd_set_filter_paths(self, root: str, paths: list[str]) -> list[str]:
        if not isinstance(paths, list):
            raise TypeError("paths must be a list")
        return sorted(self._manager.set_filtered_paths(root, paths))

    def _cmd_set_filter_timeout(self, timeout_ms: int | None) -> int | None:
        return self._manager.set_interception_timeout(timeout_ms).timeout_ms

    def _cmd_write_filtered_response(
        self, request_id: int, override: dict[str, Any] | None = None
    ) -> bool:
        override = ResponseOverride.coerce(override)
        with self._lock:
            token = self._pending.pop(int(request_id), None)
        if token is None:
            return False
        return token.send(override)
