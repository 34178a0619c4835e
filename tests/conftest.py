"""Shared fixtures: on-disk roots and a manager that cleans up after itself.

folder1 and folder2 are built fresh in tmp_path for every test:

    tmp_path/
        secret.txt                  outside every root
        folder1/
            index.txt               "This is a file in folder 1."
            page.html
            sub/index.html
            data.json
        folder2/
            index.txt               "This is a file in folder 2."
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest

from staticserver_lite.server.manager import ServerManager

FOLDER1_TEXT = "This is a file in folder 1."
FOLDER2_TEXT = "This is a file in folder 2."
PAGE_HTML = "<!doctype html><title>page</title><p>hello</p>"
SUB_INDEX_HTML = "<!doctype html><title>sub</title>"
SECRET_TEXT = "do not serve me"


@dataclass(frozen=True)
class Roots:
    base: Path
    folder1: Path
    folder2: Path
    secret: Path


@pytest.fixture()
def roots(tmp_path: Path) -> Roots:
    folder1 = tmp_path / "folder1"
    folder2 = tmp_path / "folder2"
    (folder1 / "sub").mkdir(parents=True)
    folder2.mkdir()
    (folder1 / "index.txt").write_text(FOLDER1_TEXT)
    (folder1 / "page.html").write_text(PAGE_HTML)
    (folder1 / "sub" / "index.html").write_text(SUB_INDEX_HTML)
    (folder1 / "data.json").write_text('{"a": 1}')
    (folder2 / "index.txt").write_text(FOLDER2_TEXT)
    secret = tmp_path / "secret.txt"
    secret.write_text(SECRET_TEXT)
    return Roots(base=tmp_path, folder1=folder1, folder2=folder2, secret=secret)


@pytest.fixture()
def manager():
    """ServerManager closed after the test, whatever it started."""
    m = ServerManager()
    yield m
    m.close_all()
