"""Control-channel clients.

Both channels expose the same surface, so callers (PreviewProvider,
tests, the CLI) do not care which side of a process boundary the
servers live on:

    get_server(root)                    -> Future[ServerInfo]
    close_server(root)                  -> Future[bool]
    close_all_servers()                 -> Future[int]
    set_request_filter_paths(root, ps)  -> Future[list[str]]
    set_request_filter_timeout(ms)      -> Future[int | None]
    on_request(callback, session)       -> Subscription
    off_request(session)                -> int

ControlClient talks to a ControlServer over TCP. Every command returns
a concurrent.futures.Future; a rejected command fails it with
ChannelError, a dropped connection with ConnectionError. Request
callbacks run on the client's reader thread: they may call
request.send(), which only queues a command, but must not block on a
future or the reader stalls.

LocalChannel runs the same commands against an in-process
ServerManager on a small thread pool.
"""
from __future__ import annotations

import itertools
import logging
import socket
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from staticserver_lite.domain.errors import ChannelError
from staticserver_lite.domain.request import Location, ResponseOverride, ServerInfo
from staticserver_lite.domain.types import RequestId, RootPath
from staticserver_lite.interception.events import (
    DEFAULT_SESSION,
    RequestCallback,
    RequestEvents,
    Subscription,
)
from staticserver_lite.rpc.control_server import REQUEST_EVENT
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

T = TypeVar("T")
R = TypeVar("R")


def map_future(source: Future, convert: Callable[[Any], R]) -> Future:
    """Future that resolves to convert(source.result()).

    The target settles only after convert has run, so side effects in
    convert are visible to whoever waits on the target.
    """
    target: Future = Future()

    def _done(f: Future) -> None:
        exc = f.exception()
        if exc is not None:
            target.set_exception(exc)
            return
        try:
            target.set_result(convert(f.result()))
        except Exception as conv_exc:
            target.set_exception(conv_exc)

    source.add_done_callback(_done)
    return target


@dataclass(frozen=True, slots=True)
class RemoteRequest:
    """A filtered request seen from the far side of the channel.

    Same surface as InterceptedRequest: location, root, send().
    """
    root: RootPath
    request_id: RequestId
    location: Location
    _client: ControlClient

    def send(self, override: ResponseOverride | dict[str, Any] | None = None) -> Future:
        override = ResponseOverride.coerce(override)
        payload = override.to_dict() if override is not None else None
        return self._client.call("writeFilteredResponse", self.request_id, payload)


class ControlClient:
    """Future-based client for a ControlServer.

    Args:
        host: control server address.
        port: control server port.
        connect_timeout: seconds to wait for the TCP connect.
    """

    def __init__(self, host: str, port: int, connect_timeout: float = 5.0) -> None:
        self._host = host
        self._port = port
        self._connect_timeout = connect_timeout
        self._sock: socket.socket | None = None
        self._reader: threading.Thread | None = None
        self._ids = itertools.count(1)
        self._pending: dict[int, Future] = {}
        self._lock = threading.Lock()  # protects _pending, _connected, socket writes
        self._connected = False
        self._events = RequestEvents()

    @property
    def connected(self) -> bool:
        with self._lock:
            return self._connected

    def connect(self) -> ControlClient:
        sock = socket.create_connection((self._host, self._port), timeout=self._connect_timeout)
        sock.settimeout(None)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        with self._lock:
            self._sock = sock
            self._connected = True
        self._reader = threading.Thread(target=self._read_loop, daemon=True, name="control-reader")
        self._reader.start()
        return self

    def disconnect(self) -> None:
        """Close the connection. Pending commands fail with ConnectionError."""
        with self._lock:
            sock = self._sock
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()
        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout=5.0)
        self._fail_pending(ConnectionError("Control channel disconnected"))

    def __enter__(self) -> ControlClient:
        return self.connect()

    def __exit__(self, *exc_info) -> None:
        self.disconnect()

    def call(self, command: str, *args: Any) -> Future:
        """Send a raw command. The future resolves with the reply's result."""
        fut: Future = Future()
        cmd = Command(id=next(self._ids), command=command, args=list(args))
        with self._lock:
            if not self._connected or self._sock is None:
                fut.set_exception(ConnectionError("Control channel is not connected"))
                return fut
            self._pending[cmd.id] = fut
            try:
                write_message(self._sock, cmd.to_payload())
            except OSError as exc:
                self._pending.pop(cmd.id, None)
                fut.set_exception(ConnectionError(f"Control channel write failed: {exc}"))
        return fut

    # -- domain commands ---------------------------------------------------

    def get_server(self, root: str) -> Future:
        return map_future(self.call("getServer", str(root)), ServerInfo.from_dict)

    def close_server(self, root: str) -> Future:
        return self.call("closeServer", str(root))

    def close_all_servers(self) -> Future:
        return self.call("closeAllServers")

    def set_request_filter_paths(self, root: str, paths: list[str]) -> Future:
        return self.call("setRequestFilterPaths", str(root), list(paths))

    def set_request_filter_timeout(self, timeout_ms: int | None) -> Future:
        return self.call("setRequestFilterTimeout", timeout_ms)

    def on_request(self, callback: RequestCallback, session: str = DEFAULT_SESSION) -> Subscription:
        return self._events.subscribe(callback, session=session)

    def off_request(self, session: str = DEFAULT_SESSION) -> int:
        return self._events.unsubscribe_session(session)

    # -- reader --------------------------------------------------------------

    def _read_loop(self) -> None:
        sock = self._sock
        try:
            while True:
                raw = read_message(sock)
                try:
                    msg = decode_message(raw)
                except ValueError:
                    log.warning("Dropping malformed frame from control server")
                    continue
                if isinstance(msg, Reply):
                    self._resolve(msg)
                elif isinstance(msg, Event):
                    self._handle_event(msg)
        except (ConnectionError, OSError, ValueError):
            log.debug("Control channel to %s:%d closed", self._host, self._port)
        finally:
            self._fail_pending(ConnectionError("Control channel disconnected"))

    def _resolve(self, reply: Reply) -> None:
        with self._lock:
            fut = self._pending.pop(reply.id, None)
        if fut is None:
            log.debug("Reply for unknown command id %d", reply.id)
            return
        if reply.ok:
            fut.set_result(reply.result)
        else:
            fut.set_exception(ChannelError(reply.error or "command failed"))

    def _handle_event(self, event: Event) -> None:
        if event.event != REQUEST_EVENT:
            log.debug("Ignoring event %r", event.event)
            return
        data = event.data
        request = RemoteRequest(
            root=data["root"],
            request_id=int(data["request_id"]),
            location=Location.from_dict(data["location"]),
            _client=self,
        )
        self._events.emit(request)

    def _fail_pending(self, exc: Exception) -> None:
        with self._lock:
            self._connected = False
            pending = list(self._pending.values())
            self._pending.clear()
        for fut in pending:
            if not fut.done():
                fut.set_exception(exc)


class LocalChannel:
    """In-process channel: same surface as ControlClient, no socket.

    Commands run on a worker pool so callers get the same Future-based
    completion either way.
    """

    def __init__(self, manager: ServerManager | None = None, max_workers: int = 4) -> None:
        self._manager = manager or ServerManager()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="local-channel")

    @property
    def manager(self) -> ServerManager:
        return self._manager

    def _submit(self, func: Callable[..., T], *args: Any) -> Future:
        return self._executor.submit(func, *args)

    def get_server(self, root: str) -> Future:
        return self._submit(self._manager.get_server, root)

    def close_server(self, root: str) -> Future:
        return self._submit(self._manager.close_server, root)

    def close_all_servers(self) -> Future:
        return self._submit(self._manager.close_all)

    def set_request_filter_paths(self, root: str, paths: list[str]) -> Future:
        return map_future(self._submit(self._manager.set_filtered_paths, root, paths), sorted)

    def set_request_filter_timeout(self, timeout_ms: int | None) -> Future:
        return map_future(
            self._submit(self._manager.set_interception_timeout, timeout_ms),
            lambda config: config.timeout_ms,
        )

    def on_request(self, callback: RequestCallback, session: str = DEFAULT_SESSION) -> Subscription:
        return self._manager.events.subscribe(callback, session=session)

    def off_request(self, session: str = DEFAULT_SESSION) -> int:
        return self._manager.events.unsubscribe_session(session)

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        self._manager.close_all()
