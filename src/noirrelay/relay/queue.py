"""
Pending Frame Queue

One-time FIFO staging buffer for client frames that arrive while the
upstream connection is still opening.
"""

from collections import deque
from typing import Any, Awaitable, Callable

import structlog

from .protocol import Frame, OverflowPolicy

logger = structlog.get_logger()


class PendingQueueOverflow(RuntimeError):
    """The queue is full and its policy is to end the session."""


class QueueSealedError(RuntimeError):
    """A frame was offered to a queue that has already been flushed."""


class PendingFrameQueue:
    """
    Ordered staging buffer, flushed exactly once.

    After ``flush`` completes the queue is sealed: the session forwards
    directly from then on and any further ``append`` is a state bug.
    """

    def __init__(
        self,
        max_frames: int = 0,
        overflow: OverflowPolicy = OverflowPolicy.CLOSE,
        log: Any = None,
    ) -> None:
        self._frames: deque[Frame] = deque()
        self._max_frames = max_frames
        self._overflow = OverflowPolicy(overflow)
        self._sealed = False
        self.dropped = 0
        self._log = log or logger

    def __len__(self) -> int:
        return len(self._frames)

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def bounded(self) -> bool:
        return self._max_frames > 0

    def append(self, frame: Frame) -> None:
        """Stage a frame, applying the overflow policy when full."""
        if self._sealed:
            raise QueueSealedError("Pending queue already flushed")

        if self.bounded and len(self._frames) >= self._max_frames:
            if self._overflow is OverflowPolicy.CLOSE:
                raise PendingQueueOverflow(
                    f"Pending queue full ({self._max_frames} frames)"
                )

            self.dropped += 1
            if self._overflow is OverflowPolicy.DROP_NEWEST:
                self._log.warning(
                    "Pending queue full, dropping newest frame", dropped=self.dropped
                )
                return

            self._frames.popleft()
            self._log.warning(
                "Pending queue full, dropping oldest frame", dropped=self.dropped
            )

        self._frames.append(frame)

    async def flush(self, send: Callable[[Frame], Awaitable[None]]) -> int:
        """
        Send every staged frame in arrival order and seal the queue.

        Frames appended while a send is awaiting are picked up by the same
        pass, so nothing can overtake a staged frame.

        Returns:
            Number of frames sent
        """
        if self._sealed:
            raise QueueSealedError("Pending queue already flushed")

        sent = 0
        while self._frames:
            await send(self._frames.popleft())
            sent += 1

        self._sealed = True
        return sent
