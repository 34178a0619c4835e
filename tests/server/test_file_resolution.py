"""Tests for root canonicalization and safe path resolution."""
from __future__ import annotations

import os
from pathlib import Path

import pytest

from staticserver_lite.domain.errors import PathTraversal, ReadFailure
from staticserver_lite.server.files import (
    DEFAULT_CONTENT_TYPE,
    canonical_root,
    guess_content_type,
    open_file,
    resolve_request_path,
)

from tests.conftest import FOLDER1_TEXT, SUB_INDEX_HTML


def test_canonical_root_strips_trailing_slash(roots):
    plain = canonical_root(roots.folder1)
    assert canonical_root(str(roots.folder1) + os.sep) == plain
    assert canonical_root(str(roots.folder1 / "sub" / "..")) == plain
    assert os.path.isabs(plain)


def test_resolve_inside_root(roots):
    root = roots.folder1.resolve()
    assert resolve_request_path(root, "/index.txt") == root / "index.txt"
    assert resolve_request_path(root, "/") == root


@pytest.mark.parametrize(
    "pathname",
    ["/../secret.txt", "/sub/../../secret.txt", "/../folder2/index.txt"],
)
def test_resolve_rejects_traversal(roots, pathname):
    with pytest.raises(PathTraversal):
        resolve_request_path(roots.folder1.resolve(), pathname)


def test_resolve_rejects_symlink_escape(roots):
    link = roots.folder1 / "escape.txt"
    try:
        link.symlink_to(roots.secret)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported here")
    with pytest.raises(PathTraversal):
        resolve_request_path(roots.folder1.resolve(), "/escape.txt")


def test_resolve_rejects_nul_byte(roots):
    with pytest.raises(PathTraversal):
        resolve_request_path(roots.folder1.resolve(), "/index.txt\x00.html")


def test_content_types():
    assert guess_content_type("a.html").startswith("text/html")
    assert guess_content_type("a.txt") == "text/plain; charset=utf-8"
    assert guess_content_type("a.json") == "application/json"
    assert guess_content_type("a.unknownext") == DEFAULT_CONTENT_TYPE


def test_open_file_reads_size_and_type(roots):
    opened = open_file(roots.folder1 / "index.txt")
    try:
        assert opened.size == len(FOLDER1_TEXT)
        assert opened.content_type.startswith("text/plain")
        assert opened.stream.read().decode() == FOLDER1_TEXT
    finally:
        opened.close()


def test_open_file_directory_uses_index(roots):
    opened = open_file(roots.folder1 / "sub")
    try:
        assert opened.path.name == "index.html"
        assert opened.stream.read().decode() == SUB_INDEX_HTML
    finally:
        opened.close()


def test_open_file_missing_is_none(roots):
    assert open_file(roots.folder1 / "nope.txt") is None
    assert open_file(roots.folder2) is None  # directory without index.html


def test_open_file_unreadable_raises(roots, monkeypatch):
    def deny(*args, **kwargs):
        raise PermissionError("denied")

    monkeypatch.setattr("staticserver_lite.server.files.open", deny, raising=False)
    with pytest.raises(ReadFailure):
        open_file(Path(roots.folder1 / "index.txt"))
