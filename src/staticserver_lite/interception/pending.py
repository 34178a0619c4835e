"""One-shot response token for an intercepted request.

Each filtered request gets exactly one PendingResponse. Two parties
race to settle it:

    subscriber:  send() / send(override)   PENDING -> SENT
    pipeline:    expire() on timeout       PENDING -> EXPIRED

Whichever transition takes the lock first wins. Every later attempt,
from either side, returns False and changes nothing: no second
response is written and nothing is raised. The waiting request thread
is woken through a threading.Event, which is set exactly once, by the
winner.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from staticserver_lite.domain.request import (
    FinalResponse,
    Location,
    Request,
    ResponseOverride,
)
from staticserver_lite.domain.types import RequestId, RootPath

log = logging.getLogger(__name__)


class ResponseState(Enum):
    PENDING = auto()
    SENT = auto()
    EXPIRED = auto()


class PendingResponse:
    """Single-resolution future for one intercepted request."""

    def __init__(self, request_id: RequestId) -> None:
        self._request_id = request_id
        self._state = ResponseState.PENDING
        self._override: ResponseOverride | None = None
        self._lock = threading.Lock()
        self._settled = threading.Event()

    @property
    def request_id(self) -> RequestId:
        return self._request_id

    @property
    def state(self) -> ResponseState:
        with self._lock:
            return self._state

    def send(self, override: ResponseOverride | dict[str, Any] | None = None) -> bool:
        """Settle the request.

        With no override the file is served unchanged. Returns True if
        this call won; False if the token was already sent or expired.
        """
        override = ResponseOverride.coerce(override)
        with self._lock:
            if self._state is not ResponseState.PENDING:
                log.debug(
                    "Ignoring send for request %d, already %s",
                    self._request_id, self._state.name,
                )
                return False
            self._state = ResponseState.SENT
            self._override = override
        self._settled.set()
        return True

    def expire(self) -> bool:
        """Give up waiting. Returns True if the token was still pending."""
        with self._lock:
            if self._state is not ResponseState.PENDING:
                return False
            self._state = ResponseState.EXPIRED
        self._settled.set()
        return True

    def wait(self, timeout: float | None) -> FinalResponse:
        """Block until settled or until timeout seconds pass.

        timeout=None waits forever. On timeout the token expires, unless
        a send() slipped in first, in which case the send wins.
        """
        if not self._settled.wait(timeout):
            self.expire()
        return self.result()

    def result(self) -> FinalResponse:
        with self._lock:
            if self._state is ResponseState.SENT and self._override is not None:
                return FinalResponse.replaced(self._override)
            return FinalResponse.fallback()


@dataclass(frozen=True, slots=True)
class InterceptedRequest:
    """What subscribers receive for each filtered request.

    location mirrors the browser's view of the URL; send() is the only
    way to answer before the timeout.
    """
    root: RootPath
    request: Request
    token: PendingResponse

    @property
    def location(self) -> Location:
        return self.request.location

    @property
    def request_id(self) -> RequestId:
        return self.token.request_id

    def send(self, override: ResponseOverride | dict[str, Any] | None = None) -> bool:
        return self.token.send(override)
