"""Tests for PreviewProvider: what may be previewed, and from where."""
from __future__ import annotations

import os

import pytest

from staticserver_lite.preview import PreviewProvider
from staticserver_lite.rpc.client import ControlClient, LocalChannel
from staticserver_lite.rpc.control_server import ControlServer
from staticserver_lite.server.manager import ServerManager

from tests.conftest import PAGE_HTML
from tests.httputil import fetch

CALL_TIMEOUT = 10.0


@pytest.fixture()
def channel():
    ch = LocalChannel()
    yield ch
    ch.close()


@pytest.fixture()
def provider(channel, roots):
    return PreviewProvider(channel, project_root=str(roots.folder1))


@pytest.mark.parametrize(
    "rel,expected",
    [
        ("page.html", True),
        ("sub/index.html", True),
        ("file.htm", True),
        ("UPPER.HTML", True),
        ("index.txt", False),
        ("data.json", False),
        ("script.js", False),
    ],
)
def test_can_serve_inside_root(provider, roots, rel, expected):
    assert provider.can_serve(str(roots.folder1 / rel)) is expected


def test_can_serve_root_itself(provider, roots):
    assert provider.can_serve(str(roots.folder1)) is True
    assert provider.can_serve(str(roots.folder1) + os.sep) is True


def test_cannot_serve_outside_root(provider, roots):
    assert provider.can_serve(str(roots.folder2 / "index.html")) is False
    assert provider.can_serve(str(roots.base / "page.html")) is False
    # sibling folder sharing the prefix "folder1"
    assert provider.can_serve(str(roots.base / "folder1-copy" / "page.html")) is False


def test_no_project_means_nothing_servable(channel, roots):
    provider = PreviewProvider(channel)
    assert provider.can_serve(str(roots.folder1 / "page.html")) is False
    with pytest.raises(RuntimeError):
        provider.ready_to_serve().result(CALL_TIMEOUT)
    with pytest.raises(RuntimeError):
        provider.set_filtered_paths(["/page.html"]).result(CALL_TIMEOUT)


def test_can_serve_needs_no_running_server(provider, channel, roots):
    assert channel.manager.roots() == []
    assert provider.can_serve(str(roots.folder1 / "page.html")) is True
    assert channel.manager.roots() == []


def test_ready_to_serve_and_urls(provider, roots):
    assert provider.get_base_url() is None
    info = provider.ready_to_serve().result(CALL_TIMEOUT)
    assert provider.get_base_url() == info.base_url
    url = provider.url_for(str(roots.folder1 / "sub" / "index.html"))
    assert url == info.base_url + "sub/index.html"
    assert provider.url_for(str(roots.folder1 / "index.txt")) is None
    assert fetch(info, "/page.html").text == PAGE_HTML


def test_switching_project_closes_old_server(provider, channel, roots):
    provider.ready_to_serve().result(CALL_TIMEOUT)
    close_future = provider.set_project_root(str(roots.folder2))
    assert close_future.result(CALL_TIMEOUT) is True
    assert channel.manager.roots() == []
    assert provider.get_base_url() is None
    assert provider.can_serve(str(roots.folder2 / "index.html")) is True
    assert provider.can_serve(str(roots.folder1 / "page.html")) is False


def test_filtered_request_through_provider(provider, roots):
    provider.on_request(lambda req: req.send({"body": "live edit"}), session="editor")
    info = provider.ready_to_serve().result(CALL_TIMEOUT)
    provider.set_filtered_paths(["/page.html"]).result(CALL_TIMEOUT)
    assert fetch(info, "/page.html").text == "live edit"
    assert provider.off_request("editor") == 1


def test_declines_serving_when_channel_disconnected(roots):
    control = ControlServer(ServerManager())
    control.start()
    host, port = control.address
    client = ControlClient(host, port).connect()
    try:
        provider = PreviewProvider(client, project_root=str(roots.folder1))
        assert provider.can_serve(str(roots.folder1 / "foo.html")) is True
        client.disconnect()
        assert client.connected is False
        assert provider.can_serve(str(roots.folder1 / "foo.html")) is False
        assert provider.can_serve(str(roots.folder1)) is False
    finally:
        client.disconnect()
        control.stop()
