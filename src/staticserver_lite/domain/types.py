"""Shared type aliases used across the domain."""
from __future__ import annotations

from typing import TypeAlias

RootPath: TypeAlias = str      # canonical absolute folder path, no trailing slash
RequestPath: TypeAlias = str   # URL pathname, always starts with "/"
RequestId: TypeAlias = int
Headers: TypeAlias = dict[str, str]
