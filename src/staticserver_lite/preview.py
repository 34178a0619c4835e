"""Editor-side provider: decides what the preview server may serve and
keeps one server running for the current project root.

can_serve() is a pure predicate over paths. It answers from the project
root and the channel state, so it can be asked before any server
exists (with no project open, or the channel disconnected, it is
always False). It is a policy for the editor, not a
security check: the server enforces its own root boundary regardless.
"""
from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Future
from typing import Any, Iterable

from staticserver_lite.domain.request import ServerInfo
from staticserver_lite.domain.types import RootPath
from staticserver_lite.interception.events import DEFAULT_SESSION, RequestCallback, Subscription
from staticserver_lite.rpc.client import map_future
from staticserver_lite.server.files import canonical_root

log = logging.getLogger(__name__)

HTML_EXTENSIONS = frozenset({".htm", ".html"})


def is_html_path(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in HTML_EXTENSIONS


class PreviewProvider:
    """Project-scoped wrapper over a LocalChannel or ControlClient.

    Args:
        channel: anything with the channel surface (see rpc.client).
        project_root: folder of the open project, or None.
    """

    def __init__(self, channel: Any, project_root: str | None = None) -> None:
        self._channel = channel
        self._lock = threading.Lock()
        self._root: RootPath | None = canonical_root(project_root) if project_root else None
        self._info: ServerInfo | None = None

    @property
    def project_root(self) -> RootPath | None:
        with self._lock:
            return self._root

    def can_serve(self, path: str) -> bool:
        """True for the project root itself and for HTML files under it.

        Always False while the channel is disconnected.
        """
        with self._lock:
            root = self._root
        if root is None or not getattr(self._channel, "connected", True):
            return False
        path = canonical_root(path)
        if path == root:
            return True
        if not path.startswith(root.rstrip(os.sep) + os.sep):
            return False
        return is_html_path(path)

    def set_project_root(self, root: str | None) -> Future | None:
        """Switch projects. The previous project's server is closed.

        Returns the close future, or None when nothing was running.
        """
        new_root = canonical_root(root) if root else None
        with self._lock:
            if new_root == self._root:
                return None
            old_root, old_info = self._root, self._info
            self._root = new_root
            self._info = None
        log.debug("Project root changed: %s -> %s", old_root, new_root)
        if old_root is not None and old_info is not None:
            return self._channel.close_server(old_root)
        return None

    def ready_to_serve(self) -> Future:
        """Start (or reuse) the server for the project root."""
        root = self.project_root
        if root is None:
            fut: Future = Future()
            fut.set_exception(RuntimeError("No project root set"))
            return fut

        def _remember(info: ServerInfo) -> ServerInfo:
            with self._lock:
                if self._root == root:
                    self._info = info
            return info

        return map_future(self._channel.get_server(root), _remember)

    def get_base_url(self) -> str | None:
        """Base URL of the project server once ready_to_serve() has resolved."""
        with self._lock:
            return self._info.base_url if self._info is not None else None

    def url_for(self, path: str) -> str | None:
        """Preview URL of a servable file, or None."""
        base = self.get_base_url()
        root = self.project_root
        if base is None or root is None or not self.can_serve(path):
            return None
        rel = os.path.relpath(canonical_root(path), root)
        if rel == ".":
            return base
        return base + "/".join(rel.split(os.sep))

    def set_filtered_paths(self, paths: Iterable[str]) -> Future:
        root = self.project_root
        if root is None:
            fut: Future = Future()
            fut.set_exception(RuntimeError("No project root set"))
            return fut
        return self._channel.set_request_filter_paths(root, list(paths))

    def on_request(self, callback: RequestCallback, session: str = DEFAULT_SESSION) -> Subscription:
        return self._channel.on_request(callback, session=session)

    def off_request(self, session: str = DEFAULT_SESSION) -> int:
        return self._channel.off_request(session)

    def close(self) -> Future | None:
        """Stop the project's server, if one was started."""
        return self.set_project_root(None)
