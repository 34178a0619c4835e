"""Interception pipeline: give subscribers a bounded chance to answer.

For every request to a filtered path:

    1. Create a PendingResponse in state PENDING
    2. Broadcast (root, request, token) to all subscribers, synchronously
    3. Race the token against the configured timeout
         token settles first -> use the override, or the file if send()
                                carried none
         timer fires first   -> token EXPIRED, serve the file
    4. Return a FinalResponse; the caller writes exactly one response

The only place a request thread suspends is step 3. A subscriber that
never answers costs at most the timeout; it cannot hang the server.

The wait happens whether or not anyone is subscribed: a request to a
filtered path always gets the full window for a late subscriber.
"""
from __future__ import annotations

import itertools
import logging
import threading

from staticserver_lite.concurrency.atomic_ref import AtomicRef
from staticserver_lite.domain.config import InterceptionConfig
from staticserver_lite.domain.request import FinalResponse, Request
from staticserver_lite.domain.types import RequestId, RootPath
from staticserver_lite.interception.events import RequestEvents
from staticserver_lite.interception.pending import (
    InterceptedRequest,
    PendingResponse,
    ResponseState,
)

log = logging.getLogger(__name__)


class InterceptionPipeline:
    """Per-server interception step.

    Args:
        root: the server root, reported with every event.
        events: the subscriber list to broadcast to (usually shared by
            every server of one manager).
        config: shared reference to the current InterceptionConfig.
    """

    def __init__(
        self,
        root: RootPath,
        events: RequestEvents,
        config: AtomicRef[InterceptionConfig] | None = None,
    ) -> None:
        self._root = root
        self._events = events
        self._config = config or AtomicRef(InterceptionConfig())
        self._ids = itertools.count(1)
        self._pending: dict[RequestId, PendingResponse] = {}
        self._closed = False
        self._lock = threading.Lock()  # protects _pending and _closed

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def intercept(self, request: Request) -> FinalResponse:
        """Broadcast request and wait for the single winning outcome."""
        token = PendingResponse(next(self._ids))
        with self._lock:
            if self._closed:
                return FinalResponse.fallback()
            self._pending[token.request_id] = token
        try:
            event = InterceptedRequest(root=self._root, request=request, token=token)
            self._events.emit(event)
            config = self._config.get()
            result = token.wait(config.timeout_seconds)
            if token.state is ResponseState.EXPIRED:
                log.warning(
                    "No response for %s within %s ms, serving file",
                    request.path, config.timeout_ms,
                )
            return result
        finally:
            with self._lock:
                self._pending.pop(token.request_id, None)

    def close(self) -> int:
        """Stop waiting for subscribers.

        Called when the server starts closing: every outstanding token
        expires so its request falls back to the file, and later
        intercepts skip the wait. Returns how many tokens were expired.
        """
        with self._lock:
            self._closed = True
            tokens = list(self._pending.values())
        expired = sum(1 for t in tokens if t.expire())
        if expired:
            log.debug("Expired %d pending responses under %s", expired, self._root)
        return expired
