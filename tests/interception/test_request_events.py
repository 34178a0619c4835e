"""Tests for RequestEvents: ordered fan-out and per-session unsubscription."""
from __future__ import annotations

import logging

from staticserver_lite.domain.request import Location, Request
from staticserver_lite.interception.events import RequestEvents
from staticserver_lite.interception.pending import InterceptedRequest, PendingResponse


def _event(path: str = "/index.txt") -> InterceptedRequest:
    request = Request(method="GET", location=Location(pathname=path))
    return InterceptedRequest(root="/srv/site", request=request, token=PendingResponse(1))


def test_emit_in_subscription_order():
    events = RequestEvents()
    seen = []
    events.subscribe(lambda e: seen.append("first"))
    events.subscribe(lambda e: seen.append("second"))
    assert events.emit(_event()) == 2
    assert seen == ["first", "second"]


def test_unsubscribe_one():
    events = RequestEvents()
    seen = []
    sub = events.subscribe(lambda e: seen.append("gone"))
    events.subscribe(lambda e: seen.append("kept"))
    assert events.unsubscribe(sub) is True
    assert events.unsubscribe(sub) is False
    events.emit(_event())
    assert seen == ["kept"]


def test_unsubscribe_session_removes_all_of_it():
    events = RequestEvents()
    events.subscribe(lambda e: None, session="test")
    events.subscribe(lambda e: None, session="test")
    events.subscribe(lambda e: None, session="editor")
    assert events.unsubscribe_session("test") == 2
    assert len(events) == 1


def test_failing_subscriber_does_not_stop_fanout(caplog):
    events = RequestEvents()
    seen = []

    def broken(e):
        raise RuntimeError("subscriber bug")

    events.subscribe(broken)
    events.subscribe(lambda e: seen.append(e.location.pathname))
    with caplog.at_level(logging.ERROR):
        events.emit(_event("/a.html"))
    assert seen == ["/a.html"]
    assert "subscriber" in caplog.text.lower()


def test_subscriber_may_unsubscribe_during_emit():
    events = RequestEvents()
    seen = []

    def once(e):
        seen.append("once")
        events.unsubscribe(sub)

    sub = events.subscribe(once)
    events.subscribe(lambda e: seen.append("always"))
    events.emit(_event())
    events.emit(_event())
    assert seen == ["once", "always", "always"]


def test_event_exposes_location_and_send():
    event = _event("/page.html")
    assert event.location.pathname == "/page.html"
    assert event.send({"body": "hi"}) is True
    assert event.send() is False
