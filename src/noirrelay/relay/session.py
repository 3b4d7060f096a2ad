"""
Relay Session

Owns one client WebSocket and one upstream connection. Client frames are
staged in a pending queue until the upstream handshake completes, flushed in
order, then forwarded directly. Upstream frames go straight to the client.
When either side closes the other is closed too.
"""

import asyncio
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

import structlog
from fastapi import WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from .protocol import TRANSITIONS, CloseCode, Frame, OverflowPolicy, SessionState
from .queue import PendingFrameQueue, PendingQueueOverflow
from .upstream import UpstreamConfigError, UpstreamConnector

logger = structlog.get_logger()


class IllegalTransition(RuntimeError):
    """A state change not permitted by the session lifecycle."""


class RelaySession:
    """
    Bidirectional relay between a client socket and an upstream connection.

    Lifecycle: INIT -> UPSTREAM_CONNECTING -> UPSTREAM_READY -> CLOSED, with
    CLOSED reachable from any state. ``run`` drives the whole lifecycle and
    returns once both sides are closed.
    """

    def __init__(
        self,
        websocket: WebSocket,
        connector: UpstreamConnector,
        open_timeout: float | None = None,
        queue_max_frames: int = 0,
        queue_overflow: OverflowPolicy = OverflowPolicy.CLOSE,
        session_id: UUID | None = None,
    ) -> None:
        self.session_id = session_id or uuid4()
        self.websocket = websocket
        self.upstream: Any = None
        self.queue = PendingFrameQueue(
            queue_max_frames,
            queue_overflow,
            log=logger.bind(session_id=str(self.session_id)),
        )
        self.state = SessionState.INIT
        self.created_at = datetime.utcnow()

        self._connector = connector
        self._open_timeout = open_timeout
        self._tasks: list[asyncio.Task] = []
        self._finished = asyncio.Event()

        # Close code/reason for the client, set by whichever side ends first
        self._close_code: int = CloseCode.NORMAL
        self._close_reason: str = ""
        self._close_decided = False

        # Counters
        self.frames_to_upstream = 0
        self.frames_to_client = 0
        self._undelivered = 0

    def __repr__(self) -> str:
        return f"<RelaySession {self.session_id} {self.state.value}>"

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.UPSTREAM_READY

    @property
    def is_closed(self) -> bool:
        return self.state is SessionState.CLOSED

    @property
    def frames_dropped(self) -> int:
        """Frames discarded in either direction, including queue overflow drops."""
        return self._undelivered + self.queue.dropped

    def _log(self) -> Any:
        return logger.bind(session_id=str(self.session_id))

    def _transition(self, new_state: SessionState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise IllegalTransition(f"{self.state.value} -> {new_state.value}")
        self._log().debug("Session state", previous=self.state.value, state=new_state.value)
        self.state = new_state

    def _decide_close(self, code: int, reason: str = "") -> None:
        """Record how the client will be closed; the first decision wins."""
        if not self._close_decided:
            self._close_code = int(code)
            self._close_reason = reason
            self._close_decided = True

    # ══════════════════════════════════════════════════════════════
    # Lifecycle
    # ══════════════════════════════════════════════════════════════

    async def run(self) -> None:
        """Run the session until either side closes."""
        log = self._log()

        if self.is_closed:
            return

        try:
            url = self._connector.build_url()
        except UpstreamConfigError as e:
            log.error("Upstream configuration error", error=str(e))
            self._decide_close(CloseCode.INTERNAL_ERROR, "server misconfigured")
            await self._teardown()
            return

        self._transition(SessionState.UPSTREAM_CONNECTING)

        self._tasks = [
            asyncio.create_task(self._pump_client(), name=f"client-{self.session_id}"),
            asyncio.create_task(self._run_upstream(url), name=f"upstream-{self.session_id}"),
        ]

        try:
            await asyncio.wait(self._tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in self._tasks:
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            await self._teardown()

    async def close(
        self,
        code: int = CloseCode.NORMAL,
        reason: str = "",
    ) -> None:
        """Stop the session from outside, e.g. on server shutdown."""
        self._decide_close(code, reason)

        if not self._tasks:
            await self._teardown()
            return

        for task in self._tasks:
            task.cancel()
        await self._finished.wait()

    async def _teardown(self) -> None:
        if self._finished.is_set():
            return

        if self.state is not SessionState.CLOSED:
            self._transition(SessionState.CLOSED)

        if self.upstream is not None:
            await self.upstream.close()

        await self._close_client()
        self._finished.set()

        self._log().info(
            "Session closed",
            code=self._close_code,
            reason=self._close_reason or None,
            frames_to_upstream=self.frames_to_upstream,
            frames_to_client=self.frames_to_client,
            frames_dropped=self.frames_dropped,
        )

    async def _close_client(self) -> None:
        if (
            self.websocket.application_state is not WebSocketState.CONNECTED
            or self.websocket.client_state is not WebSocketState.CONNECTED
        ):
            return

        try:
            await self.websocket.close(code=self._close_code, reason=self._close_reason)
        except (WebSocketDisconnect, RuntimeError) as e:
            # Client went away between the state check and the close frame
            self._log().debug("Client already gone", error=str(e))

    # ══════════════════════════════════════════════════════════════
    # Client -> Upstream
    # ══════════════════════════════════════════════════════════════

    async def _pump_client(self) -> None:
        log = self._log()

        try:
            while True:
                message = await self.websocket.receive()

                if message["type"] == "websocket.disconnect":
                    log.info("Client disconnected", state=self.state.value)
                    self._decide_close(CloseCode.NORMAL)
                    return

                frame: Frame | None = message.get("text")
                if frame is None:
                    frame = message.get("bytes")
                if frame is None:
                    continue

                await self.on_client_frame(frame)

        except PendingQueueOverflow as e:
            log.warning("Pending queue overflow", error=str(e))
            self._decide_close(CloseCode.TRY_AGAIN_LATER, "upstream not ready")

        except WebSocketDisconnect:
            log.info("Client disconnected", state=self.state.value)
            self._decide_close(CloseCode.NORMAL)

        except ConnectionClosed as e:
            log.error("Upstream send failed", error=str(e))
            self._decide_close(CloseCode.INTERNAL_ERROR, "upstream error")

        except Exception as e:
            log.error("Client receive failed", error=str(e))
            self._decide_close(CloseCode.INTERNAL_ERROR, "relay error")

    async def on_client_frame(self, frame: Frame) -> None:
        """Stage or forward a frame received from the client."""
        if self.state is SessionState.UPSTREAM_CONNECTING:
            self.queue.append(frame)
            self._log().debug("Buffering frame", queued=len(self.queue))

        elif self.state is SessionState.UPSTREAM_READY:
            await self._send_upstream(frame)

        else:
            self._undelivered += 1

    async def _send_upstream(self, frame: Frame) -> None:
        await self.upstream.send(frame)
        self.frames_to_upstream += 1

    # ══════════════════════════════════════════════════════════════
    # Upstream -> Client
    # ══════════════════════════════════════════════════════════════

    async def _run_upstream(self, url: str) -> None:
        log = self._log()

        try:
            self.upstream = await asyncio.wait_for(
                self._connector.open(url), timeout=self._open_timeout
            )
        except asyncio.TimeoutError:
            log.error("Upstream handshake timed out", timeout=self._open_timeout)
            self._decide_close(CloseCode.INTERNAL_ERROR, "upstream timeout")
            return
        except Exception as e:
            log.error("Failed to connect to upstream", error=str(e))
            self._decide_close(CloseCode.INTERNAL_ERROR, "upstream unavailable")
            return

        try:
            flushed = await self.queue.flush(self._send_upstream)
            self._transition(SessionState.UPSTREAM_READY)
            log.info("Connected to upstream", flushed=flushed)

            await self._pump_upstream()

            log.info(
                "Upstream closed connection",
                code=self.upstream.close_code,
                reason=self.upstream.close_reason,
            )
            self._decide_close(CloseCode.NORMAL, "upstream closed")

        except ConnectionClosedOK as e:
            log.info("Upstream closed connection", error=str(e))
            self._decide_close(CloseCode.NORMAL, "upstream closed")

        except ConnectionClosed as e:
            log.error("Upstream connection error", error=str(e))
            self._decide_close(CloseCode.INTERNAL_ERROR, "upstream error")

        except Exception as e:
            log.error("Upstream relay failed", error=str(e))
            self._decide_close(CloseCode.INTERNAL_ERROR, "relay error")

    async def _pump_upstream(self) -> None:
        async for frame in self.upstream:
            await self.on_upstream_frame(frame)

    async def on_upstream_frame(self, frame: Frame) -> None:
        """Forward a frame from upstream, or drop it if the client is gone."""
        if self.websocket.client_state is not WebSocketState.CONNECTED:
            self._undelivered += 1
            return

        try:
            if isinstance(frame, bytes):
                await self.websocket.send_bytes(frame)
            else:
                await self.websocket.send_text(frame)
        except (WebSocketDisconnect, RuntimeError) as e:
            # Disconnect not yet read by the client pump
            self._undelivered += 1
            self._log().debug("Client gone, dropping upstream frame", error=str(e))
            return

        self.frames_to_client += 1

    def get_stats(self) -> dict[str, Any]:
        return {
            "session_id": str(self.session_id),
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "queued": len(self.queue),
            "frames_to_upstream": self.frames_to_upstream,
            "frames_to_client": self.frames_to_client,
            "frames_dropped": self.frames_dropped,
        }
