"""Static file servers: one per root folder, managed through a registry."""
from staticserver_lite.server.files import canonical_root, resolve_request_path
from staticserver_lite.server.handler import StaticRequestHandler
from staticserver_lite.server.manager import ServerManager
from staticserver_lite.server.registry import PathRegistry
from staticserver_lite.server.static_server import StaticServer

__all__ = [
    "canonical_root",
    "resolve_request_path",
    "StaticRequestHandler",
    "ServerManager",
    "PathRegistry",
    "StaticServer",
]
