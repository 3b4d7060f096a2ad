"""
Session Registry

Tracks live relay sessions for health statistics and graceful shutdown.
Sessions never reach each other through the registry.
"""

import asyncio
from collections import Counter
from typing import Any
from uuid import UUID

import structlog

from .protocol import CloseCode
from .session import RelaySession

logger = structlog.get_logger()


class SessionRegistry:
    """Holds references to every active relay session."""

    def __init__(self) -> None:
        # Active sessions by session_id
        self._sessions: dict[UUID, RelaySession] = {}

        # Lifetime counters
        self._total_sessions = 0
        self._rejected_connections = 0

        self._lock = asyncio.Lock()

    @property
    def active_session_count(self) -> int:
        """Get number of active sessions."""
        return len(self._sessions)

    async def register(self, session: RelaySession) -> None:
        async with self._lock:
            if session.session_id in self._sessions:
                raise ValueError(f"Session {session.session_id} already active")
            self._sessions[session.session_id] = session
            self._total_sessions += 1

        logger.info(
            "Session registered",
            session_id=str(session.session_id),
            active_sessions=len(self._sessions),
        )

    async def unregister(self, session: RelaySession) -> None:
        async with self._lock:
            self._sessions.pop(session.session_id, None)

    def record_rejection(self) -> None:
        self._rejected_connections += 1

    async def close_all(self, reason: str = "server shutting down") -> int:
        """
        Close every live session.

        Returns:
            Number of sessions closed
        """
        async with self._lock:
            sessions = list(self._sessions.values())

        if not sessions:
            return 0

        logger.info("Closing active sessions", count=len(sessions))
        results = await asyncio.gather(
            *(s.close(CloseCode.GOING_AWAY, reason) for s in sessions),
            return_exceptions=True,
        )
        for session, result in zip(sessions, results):
            if isinstance(result, Exception):
                logger.error(
                    "Failed to close session",
                    session_id=str(session.session_id),
                    error=str(result),
                )

        return len(sessions)

    def get_stats(self) -> dict[str, Any]:
        """Get registry statistics."""
        states = Counter(s.state.value for s in self._sessions.values())
        return {
            "active_sessions": len(self._sessions),
            "sessions_by_state": dict(states),
            "total_sessions": self._total_sessions,
            "rejected_connections": self._rejected_connections,
            "sessions": [s.get_stats() for s in self._sessions.values()],
        }


# Global session registry instance
registry = SessionRegistry()


async def get_session_registry() -> SessionRegistry:
    """Dependency to get the session registry."""
    return registry
