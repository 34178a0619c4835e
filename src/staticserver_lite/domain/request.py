"""Value types that flow between the server, the pipeline and subscribers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import unquote, urlsplit

from staticserver_lite.domain.types import Headers, RequestPath


@dataclass(frozen=True, slots=True)
class ServerInfo:
    """Where a running static server can be reached."""
    address: str
    port: int

    @property
    def base_url(self) -> str:
        return f"http://{self.address}:{self.port}/"

    def to_dict(self) -> dict[str, Any]:
        return {"address": self.address, "port": self.port}

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> ServerInfo:
        return cls(address=obj["address"], port=int(obj["port"]))


@dataclass(frozen=True, slots=True)
class Location:
    """Parsed request location, as reported to subscribers.

    pathname is percent-decoded; search keeps its leading "?" (or is
    empty), the way a browser's window.location reports it.
    """
    pathname: RequestPath
    search: str = ""

    @classmethod
    def from_target(cls, target: str) -> Location:
        """Parse an HTTP request target such as "/a%20b.html?x=1".

        Origin-form targets are split by hand: "//a/b" is a path here,
        not a network location.
        """
        if target.startswith("/"):
            path, _, query = target.partition("?")
        else:
            parts = urlsplit(target)
            path, query = parts.path, parts.query
        pathname = unquote(path) or "/"
        if not pathname.startswith("/"):
            pathname = "/" + pathname
        search = f"?{query}" if query else ""
        return cls(pathname=pathname, search=search)

    def to_dict(self) -> dict[str, str]:
        return {"pathname": self.pathname, "search": self.search}

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> Location:
        return cls(pathname=obj["pathname"], search=obj.get("search", ""))


@dataclass(frozen=True, slots=True)
class Request:
    """Incoming HTTP request, read-only to everyone downstream."""
    method: str
    location: Location
    headers: Headers = field(default_factory=dict)

    @property
    def path(self) -> RequestPath:
        return self.location.pathname

    @property
    def query(self) -> str:
        return self.location.search.lstrip("?")


@dataclass(frozen=True, slots=True)
class ResponseOverride:
    """A subscriber-supplied response that replaces the file content."""
    body: bytes
    status: int = 200
    headers: Headers = field(default_factory=dict)

    @classmethod
    def coerce(cls, value: Any) -> ResponseOverride | None:
        """Accept None, a ResponseOverride, or a {body, status, headers} dict.

        String bodies are UTF-8 encoded.
        """
        if value is None or isinstance(value, ResponseOverride):
            return value
        if not isinstance(value, dict):
            raise TypeError(f"Cannot build a response override from {type(value).__name__}")
        body = value.get("body", b"")
        if isinstance(body, str):
            body = body.encode("utf-8")
        return cls(
            body=bytes(body),
            status=int(value.get("status", 200)),
            headers={str(k): str(v) for k, v in (value.get("headers") or {}).items()},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "body": self.body.decode("utf-8", errors="replace"),
            "status": self.status,
            "headers": dict(self.headers),
        }


@dataclass(frozen=True, slots=True)
class FinalResponse:
    """Outcome of interception.

    overridden=False means "serve the file as if nothing was filtered".
    """
    overridden: bool
    override: ResponseOverride | None = None

    @classmethod
    def fallback(cls) -> FinalResponse:
        return cls(overridden=False)

    @classmethod
    def replaced(cls, override: ResponseOverride) -> FinalResponse:
        return cls(overridden=True, override=override)
