"""Domain model for staticserver-lite.

Re-exports all public types for convenient access:
    from staticserver_lite.domain import ServerInfo, Location, ServerState
"""
from staticserver_lite.domain.config import DEFAULT_TIMEOUT_MS, InterceptionConfig
from staticserver_lite.domain.errors import (
    BindFailure,
    ChannelError,
    InvalidTransition,
    NotFound,
    PathTraversal,
    ReadFailure,
    RootNotFound,
    ServerNotFound,
    StaticServerError,
)
from staticserver_lite.domain.request import (
    FinalResponse,
    Location,
    Request,
    ResponseOverride,
    ServerInfo,
)
from staticserver_lite.domain.state import VALID_TRANSITIONS, ServerState
from staticserver_lite.domain.types import Headers, RequestId, RequestPath, RootPath

__all__ = [
    "DEFAULT_TIMEOUT_MS",
    "InterceptionConfig",
    "BindFailure",
    "ChannelError",
    "InvalidTransition",
    "NotFound",
    "PathTraversal",
    "ReadFailure",
    "RootNotFound",
    "ServerNotFound",
    "StaticServerError",
    "FinalResponse",
    "Location",
    "Request",
    "ResponseOverride",
    "ServerInfo",
    "VALID_TRANSITIONS",
    "ServerState",
    "Headers",
    "RequestId",
    "RequestPath",
    "RootPath",
]
