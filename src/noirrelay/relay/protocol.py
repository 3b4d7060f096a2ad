"""
Relay Protocol

Session states, queue overflow policies and the payloads the relay itself
emits. Frames between client and upstream are opaque and never parsed.
"""

from enum import Enum, IntEnum
from typing import Union

from pydantic import BaseModel

# A text or binary WebSocket frame, forwarded unmodified.
Frame = Union[str, bytes]


class SessionState(str, Enum):
    """Relay session lifecycle."""

    INIT = "init"
    UPSTREAM_CONNECTING = "upstream_connecting"
    UPSTREAM_READY = "upstream_ready"
    CLOSED = "closed"


# Allowed forward transitions. CLOSED is reachable from every state.
TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.INIT: frozenset(
        {SessionState.UPSTREAM_CONNECTING, SessionState.CLOSED}
    ),
    SessionState.UPSTREAM_CONNECTING: frozenset(
        {SessionState.UPSTREAM_READY, SessionState.CLOSED}
    ),
    SessionState.UPSTREAM_READY: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
}


class OverflowPolicy(str, Enum):
    """What the pending queue does when it is full."""

    CLOSE = "close"
    DROP_OLDEST = "drop_oldest"
    DROP_NEWEST = "drop_newest"


class CloseCode(IntEnum):
    """WebSocket close codes used by the relay (RFC 6455)."""

    NORMAL = 1000
    GOING_AWAY = 1001
    POLICY_VIOLATION = 1008
    INTERNAL_ERROR = 1011
    TRY_AGAIN_LATER = 1013


class ErrorPayload(BaseModel):
    """Structured error frame sent to the client before closing."""

    error: str


ACCESS_DENIED = "Access Denied: Wrong Password"
