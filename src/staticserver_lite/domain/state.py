r"""Server lifecycle state machine.

    CREATED -> LISTENING -> CLOSING -> CLOSED
        \____________________________/^

A server that fails to bind goes straight from CREATED to CLOSED.
Once CLOSING begins no new connections are accepted; in-flight
requests drain before CLOSED.
"""
from __future__ import annotations

from enum import Enum, auto

from staticserver_lite.domain.errors import InvalidTransition


class ServerState(Enum):
    CREATED = auto()
    LISTENING = auto()
    CLOSING = auto()
    CLOSED = auto()

    def accepts_requests(self) -> bool:
        return self is ServerState.LISTENING


VALID_TRANSITIONS: dict[ServerState, set[ServerState]] = {
    ServerState.CREATED: {ServerState.LISTENING, ServerState.CLOSED},
    ServerState.LISTENING: {ServerState.CLOSING},
    ServerState.CLOSING: {ServerState.CLOSED},
    ServerState.CLOSED: set(),
}


def check_transition(current: ServerState, target: ServerState) -> None:
    """Raise InvalidTransition unless current -> target is allowed."""
    if target not in VALID_TRANSITIONS[current]:
        raise InvalidTransition(
            f"Cannot transition server from {current.name} to {target.name}"
        )
