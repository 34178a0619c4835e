"""Error taxonomy for the static server subsystem.

Every failure is scoped to one request or one command invocation;
nothing here is meant to take the process down.

A second send() on a settled PendingResponse is deliberately absent
from this list: it returns False and has no other effect.
"""
from __future__ import annotations


class StaticServerError(Exception):
    """Base class for all errors raised by staticserver_lite."""


class BindFailure(StaticServerError):
    """The listening socket could not be created or bound."""


class NotFound(StaticServerError):
    """A root folder or a server for a root does not exist."""


class RootNotFound(NotFound):
    """The root folder passed to get_server() is not a directory."""


class ServerNotFound(NotFound):
    """No server is running for the given root."""


class PathTraversal(StaticServerError):
    """A request path resolves to a location outside the server root."""


class ReadFailure(StaticServerError):
    """An existing file could not be read."""


class InvalidTransition(StaticServerError):
    """Raised when a server lifecycle transition is not allowed."""


class ChannelError(StaticServerError):
    """A command sent over the control channel was rejected remotely."""
