"""HTTP request handler for one static server.

Parsing, status lines and error pages come from the stdlib
BaseHTTPRequestHandler. The handler adds the routing:

    1. Decode the request target into a Location
    2. Resolve it under the root (403 when it escapes)
    3. Filtered path -> InterceptionPipeline; an override is written
       as-is, otherwise fall through
    4. Stream the file (404 missing, 500 unreadable)

Exactly one response is written per request: the pipeline returns a
single FinalResponse and the handler acts on it once.

Every response carries "Connection: close", so one connection is one
request and a closing server never waits on idle keep-alive sockets.
"""
from __future__ import annotations

import logging
import shutil
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler
from pathlib import Path
from typing import TYPE_CHECKING

from staticserver_lite import __version__
from staticserver_lite.domain.errors import PathTraversal, ReadFailure
from staticserver_lite.domain.request import Location, Request, ResponseOverride
from staticserver_lite.server.files import (
    CHUNK_SIZE,
    guess_content_type,
    open_file,
    resolve_request_path,
)

if TYPE_CHECKING:
    from staticserver_lite.server.static_server import StaticServer

log = logging.getLogger(__name__)


class StaticRequestHandler(BaseHTTPRequestHandler):
    server: StaticServer

    protocol_version = "HTTP/1.1"
    server_version = f"staticserver-lite/{__version__}"
    timeout = 30  # seconds to wait on a silent client

    def do_GET(self) -> None:  # noqa: N802 - required by BaseHTTPRequestHandler
        self._serve(head=False)

    def do_HEAD(self) -> None:  # noqa: N802 - required by BaseHTTPRequestHandler
        self._serve(head=True)

    def _serve(self, head: bool) -> None:
        location = Location.from_target(self.path)
        try:
            file_path = resolve_request_path(self.server.root_path, location.pathname)
        except PathTraversal:
            log.warning("Rejected path outside %s: %r", self.server.root, self.path)
            self.send_error(HTTPStatus.FORBIDDEN)
            return

        if location.pathname in self.server.filtered_paths:
            request = Request(
                method=self.command,
                location=location,
                headers=dict(self.headers.items()),
            )
            final = self.server.pipeline.intercept(request)
            if final.overridden:
                self._write_override(final.override, file_path, head)
                return

        self._write_file(file_path, head)

    def _write_override(self, override: ResponseOverride, file_path: Path, head: bool) -> None:
        log.debug("Writing override for %s (status %d)", self.path, override.status)
        headers = {k.lower(): (k, v) for k, v in override.headers.items()}
        self.send_response(override.status)
        if "content-type" not in headers:
            self.send_header("Content-Type", guess_content_type(file_path))
        for name, value in headers.values():
            if name.lower() in ("content-length", "connection"):
                continue
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(override.body)))
        self.send_header("Connection", "close")
        self.end_headers()
        if not head:
            self.wfile.write(override.body)

    def _write_file(self, file_path: Path, head: bool) -> None:
        try:
            opened = open_file(file_path)
        except ReadFailure:
            log.exception("Failed to read %s", file_path)
            self.send_error(HTTPStatus.INTERNAL_SERVER_ERROR)
            return
        if opened is None:
            self.send_error(HTTPStatus.NOT_FOUND)
            return

        try:
            self.send_response(HTTPStatus.OK)
            self.send_header("Content-Type", opened.content_type)
            self.send_header("Content-Length", str(opened.size))
            self.send_header("Connection", "close")
            self.end_headers()
            if not head:
                shutil.copyfileobj(opened.stream, self.wfile, CHUNK_SIZE)
        finally:
            opened.close()

    def log_message(self, format: str, *args) -> None:  # noqa: A002 - signature
        log.debug("%s %s", self.address_string(), format % args)
