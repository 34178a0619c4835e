"""Length-prefixed JSON frames for the control channel.

Message format:
    4 bytes: message length (big-endian uint32)
    N bytes: JSON payload (UTF-8)

Three payload shapes travel over one connection:

    command  client -> server
        {"type": "command", "id": 7, "command": "getServer",
         "args": ["/projects/site"]}

    reply    server -> client, one per command, matched by id
        {"type": "reply", "id": 7, "ok": true,
         "result": {"address": "127.0.0.1", "port": 53122}}
        {"type": "reply", "id": 8, "ok": false,
         "error": "ServerNotFound: No server running for /x"}

    event    server -> client, unsolicited
        {"type": "event", "event": "request",
         "data": {"root": "/projects/site", "request_id": 3,
                  "location": {"pathname": "/index.html", "search": ""}}}

Replies may arrive out of order relative to the commands; the id is the
only thing tying them together.
"""
from __future__ import annotations

import json
import socket
import struct
from dataclasses import dataclass, field
from typing import Any, Union

HEADER_SIZE = 4          # 4 bytes, big-endian uint32
MAX_MESSAGE_SIZE = 16 * 1024 * 1024  # overrides can carry whole pages


def _encode(obj: dict[str, Any]) -> bytes:
    return json.dumps(obj, separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True, slots=True)
class Command:
    id: int
    command: str
    args: list[Any] = field(default_factory=list)

    def to_payload(self) -> bytes:
        return _encode({"type": "command", "id": self.id, "command": self.command, "args": self.args})


@dataclass(frozen=True, slots=True)
class Reply:
    id: int
    ok: bool
    result: Any = None
    error: str | None = None

    def to_payload(self) -> bytes:
        obj: dict[str, Any] = {"type": "reply", "id": self.id, "ok": self.ok}
        if self.ok:
            obj["result"] = self.result
        else:
            obj["error"] = self.error
        return _encode(obj)


@dataclass(frozen=True, slots=True)
class Event:
    event: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> bytes:
        return _encode({"type": "event", "event": self.event, "data": self.data})


Message = Union[Command, Reply, Event]


def decode_message(data: bytes) -> Message:
    """Parse a frame payload (without length prefix).

    Raises:
        ValueError: malformed JSON or an unknown message type.
    """
    obj = json.loads(data.decode("utf-8"))
    if not isinstance(obj, dict):
        raise ValueError("Frame payload must be a JSON object")
    kind = obj.get("type")
    try:
        if kind == "command":
            return Command(id=int(obj["id"]), command=str(obj["command"]), args=list(obj.get("args", [])))
        if kind == "reply":
            return Reply(id=int(obj["id"]), ok=bool(obj["ok"]), result=obj.get("result"), error=obj.get("error"))
        if kind == "event":
            return Event(event=str(obj["event"]), data=dict(obj.get("data", {})))
    except KeyError as exc:
        raise ValueError(f"{kind} frame missing field {exc}") from exc
    raise ValueError(f"Unknown frame type: {kind!r}")


def _recv_exactly(sock: socket.socket, n: int) -> bytes:
    """Read exactly n bytes from a socket, or raise ConnectionError."""
    chunks: list[bytes] = []
    remaining = n
    while remaining > 0:
        chunk = sock.recv(remaining)
        if not chunk:
            raise ConnectionError(
                f"Socket closed with {remaining} bytes still expected"
            )
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_message(sock: socket.socket) -> bytes:
    """Read one length-prefixed frame and return its payload.

    Raises:
        ConnectionError: if the socket closes mid-read
        ValueError: if the announced length exceeds MAX_MESSAGE_SIZE
    """
    header = _recv_exactly(sock, HEADER_SIZE)
    (msg_len,) = struct.unpack("!I", header)
    if msg_len > MAX_MESSAGE_SIZE:
        raise ValueError(
            f"Message size {msg_len} exceeds limit {MAX_MESSAGE_SIZE}"
        )
    return _recv_exactly(sock, msg_len)


def write_message(sock: socket.socket, payload: bytes) -> None:
    """Write one length-prefixed frame in a single sendall call."""
    if len(payload) > MAX_MESSAGE_SIZE:
        raise ValueError(
            f"Message size {len(payload)} exceeds limit {MAX_MESSAGE_SIZE}"
        )
    header = struct.pack("!I", len(payload))
    sock.sendall(header + payload)
