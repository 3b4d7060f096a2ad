"""
Noir Relay Core

Access gate, pending frame queue, upstream connector and the relay session
state machine.
"""

from .gate import AccessGate
from .protocol import CloseCode, ErrorPayload, Frame, OverflowPolicy, SessionState
from .queue import PendingFrameQueue, PendingQueueOverflow, QueueSealedError
from .registry import SessionRegistry
from .session import IllegalTransition, RelaySession
from .upstream import UpstreamConfigError, UpstreamConnector

__all__ = [
    # Access control
    "AccessGate",
    # Session
    "RelaySession",
    "SessionRegistry",
    "IllegalTransition",
    # Queue
    "PendingFrameQueue",
    "PendingQueueOverflow",
    "QueueSealedError",
    # Upstream
    "UpstreamConnector",
    "UpstreamConfigError",
    # Protocol
    "CloseCode",
    "ErrorPayload",
    "Frame",
    "OverflowPolicy",
    "SessionState",
]
