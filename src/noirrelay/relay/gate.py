"""
Access Gate

Shared-secret check evaluated once per inbound connection.
"""

import hmac

import orjson
import structlog
from fastapi import WebSocket, WebSocketDisconnect

from .protocol import ACCESS_DENIED, CloseCode, ErrorPayload

logger = structlog.get_logger()


class AccessGate:
    """
    Compares the client's ``password`` query value with the configured secret.

    With no secret configured the gate is in open mode and accepts every
    connection, whatever credential it carries.
    """

    def __init__(self, secret: str | None) -> None:
        self._secret = secret or None

    @property
    def open_mode(self) -> bool:
        return self._secret is None

    def check(self, credential: str | None) -> bool:
        """Return True if the connection may proceed to a relay session."""
        if self._secret is None:
            logger.info("Client accepted", open_mode=True)
            return True

        if credential is not None and hmac.compare_digest(
            credential.encode("utf-8"), self._secret.encode("utf-8")
        ):
            logger.info("Client authenticated")
            return True

        logger.warning(
            "Access denied",
            reason="wrong password" if credential else "missing password",
        )
        return False

    async def reject(self, websocket: WebSocket, reason: str = ACCESS_DENIED) -> None:
        """Send a single error frame to an accepted socket, then close it."""
        payload = ErrorPayload(error=reason)
        try:
            await websocket.send_text(orjson.dumps(payload.model_dump()).decode())
            await websocket.close(code=CloseCode.POLICY_VIOLATION, reason="access denied")
        except (WebSocketDisconnect, RuntimeError) as e:
            # Client left before reading the rejection
            logger.debug("Rejected client already gone", error=str(e))
