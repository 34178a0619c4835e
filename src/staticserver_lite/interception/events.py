"""Observer list for intercepted-request notifications.

Broadcasting is a synchronous fan-out on the request thread, in
subscription order, not a queue: by the time emit() returns every
subscriber has seen the event, and the HTTP client has not yet
received a byte.

Subscribers are grouped by session name so a consumer (an editor
window, a test) can drop all of its callbacks at once.
"""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Callable

from staticserver_lite.concurrency.atomic_ref import AtomicRef
from staticserver_lite.interception.pending import InterceptedRequest

log = logging.getLogger(__name__)

RequestCallback = Callable[[InterceptedRequest], None]

DEFAULT_SESSION = "default"


@dataclass(frozen=True, slots=True)
class Subscription:
    sub_id: int
    session: str
    callback: RequestCallback


class RequestEvents:
    """Ordered, thread-safe set of request subscribers.

    The subscriber list is an immutable tuple behind an AtomicRef, so
    emit() iterates a snapshot and a callback may unsubscribe itself
    (or others) without disturbing the broadcast in progress.
    """

    def __init__(self) -> None:
        self._subs: AtomicRef[tuple[Subscription, ...]] = AtomicRef(())
        self._ids = itertools.count(1)

    def subscribe(
        self, callback: RequestCallback, session: str = DEFAULT_SESSION
    ) -> Subscription:
        sub = Subscription(sub_id=next(self._ids), session=session, callback=callback)
        self._subs.update(lambda subs: subs + (sub,))
        return sub

    def unsubscribe(self, sub: Subscription) -> bool:
        """Remove one subscription. Returns True if it was present."""
        removed = False

        def _drop(subs: tuple[Subscription, ...]) -> tuple[Subscription, ...]:
            nonlocal removed
            kept = tuple(s for s in subs if s.sub_id != sub.sub_id)
            removed = len(kept) < len(subs)
            return kept

        self._subs.update(_drop)
        return removed

    def unsubscribe_session(self, session: str) -> int:
        """Remove every subscription of a session. Returns how many went."""
        removed = 0

        def _drop(subs: tuple[Subscription, ...]) -> tuple[Subscription, ...]:
            nonlocal removed
            kept = tuple(s for s in subs if s.session != session)
            removed = len(subs) - len(kept)
            return kept

        self._subs.update(_drop)
        return removed

    def emit(self, event: InterceptedRequest) -> int:
        """Deliver event to every subscriber. Returns the subscriber count.

        A subscriber that raises is logged and skipped; it never breaks
        the fan-out or the request.
        """
        subs = self._subs.get()
        for sub in subs:
            try:
                sub.callback(event)
            except Exception:
                log.exception(
                    "Request subscriber %d (session %r) failed on %s",
                    sub.sub_id, sub.session, event.location.pathname,
                )
        return len(subs)

    def __len__(self) -> int:
        return len(self._subs.get())
