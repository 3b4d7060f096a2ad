"""
Unit Tests for the Session Registry
"""

from unittest.mock import AsyncMock

import pytest

from noirrelay.relay import RelaySession, SessionRegistry, SessionState
from noirrelay.relay.registry import get_session_registry, registry


class TestSessionRegistry:
    """Test registering and unregistering sessions."""

    @pytest.mark.asyncio
    async def test_register_and_unregister(self, client_ws, connector):
        reg = SessionRegistry()
        session = RelaySession(client_ws, connector)

        await reg.register(session)
        assert reg.active_session_count == 1
        assert reg.get_stats()["sessions"][0]["session_id"] == str(session.session_id)

        await reg.unregister(session)
        assert reg.active_session_count == 0
        assert reg.get_stats()["sessions"] == []

    @pytest.mark.asyncio
    async def test_register_duplicate(self, client_ws, connector):
        reg = SessionRegistry()
        session = RelaySession(client_ws, connector)
        await reg.register(session)

        with pytest.raises(ValueError):
            await reg.register(session)

    @pytest.mark.asyncio
    async def test_unregister_unknown_is_noop(self, client_ws, connector):
        reg = SessionRegistry()

        await reg.unregister(RelaySession(client_ws, connector))

        assert reg.active_session_count == 0

    @pytest.mark.asyncio
    async def test_stats(self, client_ws, connector):
        reg = SessionRegistry()
        a = RelaySession(client_ws, connector)
        b = RelaySession(client_ws, connector)
        b.state = SessionState.UPSTREAM_READY

        await reg.register(a)
        await reg.register(b)
        await reg.unregister(a)
        reg.record_rejection()

        stats = reg.get_stats()

        assert stats["active_sessions"] == 1
        assert stats["sessions_by_state"] == {"upstream_ready": 1}
        assert stats["total_sessions"] == 2
        assert stats["rejected_connections"] == 1
        assert [s["session_id"] for s in stats["sessions"]] == [str(b.session_id)]
        assert stats["sessions"][0]["state"] == "upstream_ready"


class TestCloseAll:
    """Test shutdown handling."""

    @pytest.mark.asyncio
    async def test_close_all_empty(self):
        assert await SessionRegistry().close_all() == 0

    @pytest.mark.asyncio
    async def test_close_all_closes_every_session(self, client_ws, connector):
        reg = SessionRegistry()
        sessions = [RelaySession(client_ws, connector) for _ in range(3)]
        for session in sessions:
            session.close = AsyncMock()
            await reg.register(session)

        closed = await reg.close_all()

        assert closed == 3
        for session in sessions:
            session.close.assert_awaited_once_with(1001, "server shutting down")

    @pytest.mark.asyncio
    async def test_close_all_continues_after_failure(self, client_ws, connector):
        reg = SessionRegistry()
        failing = RelaySession(client_ws, connector)
        failing.close = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = RelaySession(client_ws, connector)
        healthy.close = AsyncMock()
        await reg.register(failing)
        await reg.register(healthy)

        assert await reg.close_all() == 2
        healthy.close.assert_awaited_once()


class TestDependency:
    """Test the dependency accessor."""

    @pytest.mark.asyncio
    async def test_get_session_registry(self):
        assert await get_session_registry() is registry
