"""Filesystem side of serving: root canonicalization, safe path
resolution, and opening files for streaming.

Every request path is resolved against the server root and the result
must stay inside it. Resolution follows symlinks, so a link inside the
root that points elsewhere is rejected too. This check is the server's
own security boundary and holds no matter what the caller decided
about which files are servable.
"""
from __future__ import annotations

import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from staticserver_lite.domain.errors import PathTraversal, ReadFailure
from staticserver_lite.domain.types import RequestPath, RootPath

INDEX_FILE = "index.html"
CHUNK_SIZE = 256 * 1024
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def canonical_root(path: str | os.PathLike[str]) -> RootPath:
    """Absolute, normalized folder path without a trailing slash.

    Two spellings of the same folder ("site/", "./site", "/abs/site")
    map to the same registry key.
    """
    return os.path.normpath(os.path.abspath(os.path.expanduser(os.fspath(path))))


def resolve_request_path(root: Path, pathname: RequestPath) -> Path:
    """Map a decoded URL pathname to a filesystem path under root.

    root must already be resolved. Raises PathTraversal when the result
    escapes it.
    """
    try:
        candidate = (root / pathname.lstrip("/")).resolve()
    except ValueError as exc:  # embedded NUL
        raise PathTraversal(f"{pathname!r} is not a valid path") from exc
    if candidate != root and not candidate.is_relative_to(root):
        raise PathTraversal(f"{pathname!r} resolves outside {root}")
    return candidate


def guess_content_type(path: Path | str) -> str:
    mime, _ = mimetypes.guess_type(str(path))
    if mime is None:
        return DEFAULT_CONTENT_TYPE
    if mime.startswith("text/"):
        return f"{mime}; charset=utf-8"
    return mime


@dataclass(slots=True)
class OpenedFile:
    path: Path
    stream: BinaryIO
    size: int
    content_type: str

    def close(self) -> None:
        self.stream.close()


def open_file(path: Path) -> OpenedFile | None:
    """Open path for streaming. Returns None when there is nothing to serve.

    A directory is served through its index.html, if it has one.

    Raises:
        ReadFailure: the file exists but cannot be opened or stat'ed.
    """
    if path.is_dir():
        path = path / INDEX_FILE
    try:
        stream = open(path, "rb")
    except (FileNotFoundError, NotADirectoryError, IsADirectoryError):
        return None
    except OSError as exc:
        raise ReadFailure(f"Cannot read {path}: {exc}") from exc
    try:
        size = os.fstat(stream.fileno()).st_size
    except OSError as exc:
        stream.close()
        raise ReadFailure(f"Cannot stat {path}: {exc}") from exc
    return OpenedFile(path=path, stream=stream, size=size, content_type=guess_content_type(path))
