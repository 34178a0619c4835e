"""Interception timeout configuration.

The timeout is a plain frozen value. Whoever owns a set of servers
(normally a ServerManager) holds it in an AtomicRef and hands the same
reference to every pipeline it builds, so an update is seen by all of
that owner's servers and by nobody else's.
"""
from __future__ import annotations

from dataclasses import dataclass

DEFAULT_TIMEOUT_MS = 5000


@dataclass(frozen=True, slots=True)
class InterceptionConfig:
    """How long an intercepted request waits for a subscriber to respond.

    timeout_ms=None disables the timeout entirely: the request blocks
    until some subscriber calls send() or the server closes. Only
    useful in tests.
    """
    timeout_ms: int | None = DEFAULT_TIMEOUT_MS

    def __post_init__(self) -> None:
        if self.timeout_ms is not None and self.timeout_ms < 0:
            raise ValueError(f"timeout_ms must be >= 0 or None, got {self.timeout_ms}")

    @property
    def timeout_seconds(self) -> float | None:
        if self.timeout_ms is None:
            return None
        return self.timeout_ms / 1000.0

    @classmethod
    def from_millis(cls, value: int | None) -> InterceptionConfig:
        """Build a config from a wire value.

        Negative restores the default, None disables the timeout.
        """
        if value is None:
            return cls(timeout_ms=None)
        value = int(value)
        if value < 0:
            return cls()
        return cls(timeout_ms=value)
