"""
Relay WebSocket Route

Accepts browser clients, applies the access gate and runs a relay session
to the upstream live endpoint for each accepted connection.
"""

import structlog
from fastapi import APIRouter, Depends, Query, WebSocket

from noirrelay.config import Settings, get_settings
from noirrelay.relay import (
    AccessGate,
    OverflowPolicy,
    RelaySession,
    SessionRegistry,
    UpstreamConnector,
)
from noirrelay.relay.registry import get_session_registry

logger = structlog.get_logger()

router = APIRouter()


# ══════════════════════════════════════════════════════════════
# Dependencies
# ══════════════════════════════════════════════════════════════


def get_access_gate(settings: Settings = Depends(get_settings)) -> AccessGate:
    return AccessGate(settings.app_password)


def get_upstream_connector(
    settings: Settings = Depends(get_settings),
) -> UpstreamConnector:
    return UpstreamConnector.from_settings(settings)


# ══════════════════════════════════════════════════════════════
# WebSocket Endpoint
# ══════════════════════════════════════════════════════════════


@router.websocket("/")
async def relay_websocket(
    websocket: WebSocket,
    password: str | None = Query(None),
    settings: Settings = Depends(get_settings),
    gate: AccessGate = Depends(get_access_gate),
    connector: UpstreamConnector = Depends(get_upstream_connector),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """
    Relay endpoint.

    Protocol:
    1. Client connects to /?password=<secret>
    2. On a wrong password the server sends {"error": ...} and closes
    3. Client sends its setup frame and media frames; frames sent before the
       upstream handshake completes are buffered and delivered in order
    4. Upstream frames are passed back to the client unmodified
    5. Either side closing ends the session
    """
    await websocket.accept()

    if not gate.check(password):
        registry.record_rejection()
        await gate.reject(websocket)
        return

    session = RelaySession(
        websocket,
        connector,
        open_timeout=settings.upstream_open_timeout,
        queue_max_frames=settings.pending_queue_max_frames,
        queue_overflow=OverflowPolicy(settings.pending_queue_overflow),
    )

    await registry.register(session)
    try:
        await session.run()
    finally:
        await registry.unregister(session)
