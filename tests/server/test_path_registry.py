"""Tests for PathRegistry: one server per root, isolation between roots."""
from __future__ import annotations

import os
import socket
import threading

import pytest

from staticserver_lite.domain.errors import BindFailure
from staticserver_lite.domain.state import ServerState
from staticserver_lite.server.registry import PathRegistry
from staticserver_lite.server.static_server import StaticServer

from tests.conftest import FOLDER2_TEXT
from tests.httputil import fetch


@pytest.fixture()
def registry():
    reg = PathRegistry()
    yield reg
    reg.close_all()


class CountingFactory:
    """StaticServer factory that records every construction."""

    def __init__(self) -> None:
        self.created: list[StaticServer] = []
        self._lock = threading.Lock()

    def __call__(self, root: str) -> StaticServer:
        srv = StaticServer(root)
        with self._lock:
            self.created.append(srv)
        return srv


def test_same_root_reuses_server(registry, roots):
    factory = CountingFactory()
    first = registry.get_or_create(str(roots.folder1), factory)
    second = registry.get_or_create(str(roots.folder1), factory)
    assert first == second
    assert len(factory.created) == 1
    assert len(registry) == 1


def test_trailing_slash_is_same_root(registry, roots):
    factory = CountingFactory()
    first = registry.get_or_create(str(roots.folder1), factory)
    second = registry.get_or_create(str(roots.folder1) + os.sep, factory)
    assert first.port == second.port
    assert len(factory.created) == 1


def test_different_roots_get_different_ports(registry, roots):
    factory = CountingFactory()
    info1 = registry.get_or_create(str(roots.folder1), factory)
    info2 = registry.get_or_create(str(roots.folder2), factory)
    assert info1.port != info2.port
    assert len(registry) == 2


def test_concurrent_creation_for_one_root(registry, roots):
    """Eight racing callers share a single listener."""
    factory = CountingFactory()
    barrier = threading.Barrier(8)
    ports = []
    ports_lock = threading.Lock()

    def worker():
        barrier.wait(timeout=5.0)
        info = registry.get_or_create(str(roots.folder1), factory)
        with ports_lock:
            ports.append(info.port)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10.0)

    assert len(set(ports)) == 1
    assert len(factory.created) == 1


def test_close_then_close_again(registry, roots):
    factory = CountingFactory()
    registry.get_or_create(str(roots.folder1), factory)
    assert registry.close(str(roots.folder1)) is True
    assert registry.close(str(roots.folder1)) is False
    assert factory.created[0].state is ServerState.CLOSED
    assert str(roots.folder1) not in registry


def test_close_unknown_root_is_noop(registry, roots):
    assert registry.close(str(roots.base / "never-started")) is False


def test_close_one_root_keeps_other_serving(registry, roots):
    factory = CountingFactory()
    registry.get_or_create(str(roots.folder1), factory)
    info2 = registry.get_or_create(str(roots.folder2), factory)
    registry.close(str(roots.folder1))
    assert fetch(info2, "/index.txt").text == FOLDER2_TEXT


def test_recreate_after_close(registry, roots):
    factory = CountingFactory()
    registry.get_or_create(str(roots.folder1), factory)
    registry.close(str(roots.folder1))
    registry.get_or_create(str(roots.folder1), factory)
    assert len(factory.created) == 2
    assert factory.created[1].state is ServerState.LISTENING


def test_close_all(registry, roots):
    factory = CountingFactory()
    registry.get_or_create(str(roots.folder1), factory)
    registry.get_or_create(str(roots.folder2), factory)
    assert registry.close_all() == 2
    assert len(registry) == 0
    assert all(s.state is ServerState.CLOSED for s in factory.created)


def test_bind_failure_registers_nothing(registry, roots):
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(("127.0.0.1", 0))
    blocker.listen(1)
    port = blocker.getsockname()[1]
    try:
        with pytest.raises(BindFailure):
            registry.get_or_create(str(roots.folder1), lambda root: StaticServer(root, port=port))
        assert len(registry) == 0
    finally:
        blocker.close()
