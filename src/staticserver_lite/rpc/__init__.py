"""Command channel: start, stop and configure servers from another thread or process."""
from staticserver_lite.rpc.client import ControlClient, LocalChannel, RemoteRequest
from staticserver_lite.rpc.control_server import REQUEST_EVENT, ControlServer
from staticserver_lite.rpc.protocol import (
    Command,
    Event,
    Reply,
    decode_message,
    read_message,
    write_message,
)

__all__ = [
    "ControlClient",
    "LocalChannel",
    "RemoteRequest",
    "REQUEST_EVENT",
    "ControlServer",
    "Command",
    "Event",
    "Reply",
    "decode_message",
    "read_message",
    "write_message",
]
