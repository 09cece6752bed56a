"""Tests for SessionManager."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from mudauth.auth.errors import AuthError, AuthErrorKind, StorageError
from mudauth.auth.models import UNBOUND, Bound, DeviceInfo
from mudauth.auth.session_manager import SessionManager

T0 = 1_700_000_000.0
HOUR = 3600


class TestCreateSession:
    async def test_creates_unbound_session(self, session_manager):
        session = await session_manager.create_session("p1", "alice")

        assert session.player_id == "p1"
        assert session.player_username == "alice"
        assert session.character == UNBOUND
        assert session.device_info is None
        assert session.expires_at - session.created_at == 24 * HOUR
        assert session.last_activity_at == session.created_at

    async def test_token_format(self, session_manager):
        session = await session_manager.create_session("p1", "alice")

        assert session.token.startswith("sess_")
        assert len(session.token) == len("sess_") + 43

    async def test_tokens_and_ids_are_unique(self, session_manager):
        s1 = await session_manager.create_session("p1", "alice")
        s2 = await session_manager.create_session("p1", "alice")

        assert s1.token != s2.token
        assert s1.session_id != s2.session_id

    async def test_stores_device_info(self, session_manager):
        info = DeviceInfo(os="linux", version="1.2.0", client="mud-tui")
        session = await session_manager.create_session("p1", "alice", info)

        stored = await session_manager.get_session(session.session_id)

        assert stored is not None
        assert stored.device_info == info

    async def test_custom_ttl(self, session_repo):
        manager = SessionManager(session_repo, ttl_seconds=HOUR)

        session = await manager.create_session("p1", "alice")

        assert session.expires_at - session.created_at == HOUR


class TestValidateSession:
    async def test_returns_session_info(self, session_manager):
        session = await session_manager.create_session("p1", "alice")

        info = await session_manager.validate_session(session.token)

        assert info.player_id == "p1"
        assert info.username == "alice"
        assert info.character is None
        assert info.session.session_id == session.session_id

    async def test_records_activity_without_extending(self, session_manager):
        with patch("mudauth.auth.session_manager.time") as mock_time:
            mock_time.time.return_value = T0
            session = await session_manager.create_session("p1", "alice")
            mock_time.time.return_value = T0 + HOUR
            info = await session_manager.validate_session(session.token)

        assert info.session.last_activity_at == T0 + HOUR
        assert info.session.expires_at == session.expires_at
        stored = await session_manager.get_session(session.session_id)
        assert stored is not None
        assert stored.last_activity_at == T0 + HOUR

    async def test_unknown_token_not_found(self, session_manager):
        with pytest.raises(AuthError) as exc_info:
            await session_manager.validate_session("sess_nope")

        assert exc_info.value.kind == AuthErrorKind.SESSION_NOT_FOUND

    async def test_expired_session_is_deleted(self, session_manager):
        with patch("mudauth.auth.session_manager.time") as mock_time:
            mock_time.time.return_value = T0
            session = await session_manager.create_session("p1", "alice")
            mock_time.time.return_value = T0 + 25 * HOUR

            with pytest.raises(AuthError) as exc_info:
                await session_manager.validate_session(session.token)

        assert exc_info.value.kind == AuthErrorKind.SESSION_EXPIRED
        assert await session_manager.get_session(session.session_id) is None

        with pytest.raises(AuthError) as again:
            await session_manager.validate_session(session.token)
        assert again.value.kind == AuthErrorKind.SESSION_NOT_FOUND

    async def test_activity_write_failure_is_tolerated(self, session_manager, session_repo):
        session = await session_manager.create_session("p1", "alice")

        with patch.object(session_repo, "touch_activity", side_effect=StorageError("disk full")):
            info = await session_manager.validate_session(session.token)

        assert info.player_id == "p1"


class TestCharacterBinding:
    async def test_attach_character(self, session_manager):
        session = await session_manager.create_session("p1", "alice")

        await session_manager.attach_character(session.session_id, "c1", "Gandalf", "middle-earth")
        info = await session_manager.validate_session(session.token)

        assert info.character == Bound(character_id="c1", character_name="Gandalf", realm_id="middle-earth")

    async def test_attach_replaces_previous_binding(self, session_manager):
        session = await session_manager.create_session("p1", "alice")

        await session_manager.attach_character(session.session_id, "c1", "Gandalf", "middle-earth")
        await session_manager.attach_character(session.session_id, "c2", "Conan", "hyboria")
        info = await session_manager.validate_session(session.token)

        assert info.character == Bound(character_id="c2", character_name="Conan", realm_id="hyboria")

    async def test_detach_character(self, session_manager):
        session = await session_manager.create_session("p1", "alice")
        await session_manager.attach_character(session.session_id, "c1", "Gandalf", "middle-earth")

        await session_manager.detach_character(session.session_id)
        info = await session_manager.validate_session(session.token)

        assert info.character is None
        assert info.session.character == UNBOUND

    async def test_detach_unbound_session_is_noop(self, session_manager):
        session = await session_manager.create_session("p1", "alice")

        await session_manager.detach_character(session.session_id)

        assert (await session_manager.validate_session(session.token)).character is None

    async def test_attach_unknown_session(self, session_manager):
        with pytest.raises(AuthError) as exc_info:
            await session_manager.attach_character("missing", "c1", "Gandalf", "middle-earth")

        assert exc_info.value.kind == AuthErrorKind.SESSION_NOT_FOUND

    async def test_detach_unknown_session(self, session_manager):
        with pytest.raises(AuthError) as exc_info:
            await session_manager.detach_character("missing")

        assert exc_info.value.kind == AuthErrorKind.SESSION_NOT_FOUND

    async def test_concurrent_attaches_leave_one_whole_binding(self, session_manager):
        session = await session_manager.create_session("p1", "alice")
        candidates = [
            Bound(character_id=f"c{i}", character_name=f"Hero{i}", realm_id=f"realm{i}") for i in range(5)
        ]

        await asyncio.gather(
            *(
                session_manager.attach_character(session.session_id, c.character_id, c.character_name, c.realm_id)
                for c in candidates
            ),
        )
        info = await session_manager.validate_session(session.token)

        assert info.character in candidates
        assert session_manager._binding_locks == {}

    async def test_binding_is_per_session(self, session_manager):
        s1 = await session_manager.create_session("p1", "alice")
        s2 = await session_manager.create_session("p1", "alice")

        await session_manager.attach_character(s1.session_id, "c1", "Gandalf", "middle-earth")

        assert (await session_manager.validate_session(s2.token)).character is None


class TestInvalidateSession:
    async def test_logout_deletes_session(self, session_manager):
        session = await session_manager.create_session("p1", "alice")

        await session_manager.invalidate_session(session.token)

        with pytest.raises(AuthError) as exc_info:
            await session_manager.validate_session(session.token)
        assert exc_info.value.kind == AuthErrorKind.SESSION_NOT_FOUND

    async def test_logout_twice(self, session_manager):
        session = await session_manager.create_session("p1", "alice")
        await session_manager.invalidate_session(session.token)

        with pytest.raises(AuthError) as exc_info:
            await session_manager.invalidate_session(session.token)

        assert exc_info.value.kind == AuthErrorKind.SESSION_NOT_FOUND


class TestExtendSession:
    async def test_extends_to_full_ttl_from_now(self, session_manager):
        with patch("mudauth.auth.session_manager.time") as mock_time:
            mock_time.time.return_value = T0
            session = await session_manager.create_session("p1", "alice")
            mock_time.time.return_value = T0 + 20 * HOUR
            await session_manager.extend_session(session.session_id)

        stored = await session_manager.get_session(session.session_id)
        assert stored is not None
        assert stored.expires_at == T0 + 44 * HOUR

    async def test_unknown_session(self, session_manager):
        with pytest.raises(AuthError) as exc_info:
            await session_manager.extend_session("missing")

        assert exc_info.value.kind == AuthErrorKind.SESSION_NOT_FOUND

    async def test_expired_session_is_not_revived(self, session_manager):
        with patch("mudauth.auth.session_manager.time") as mock_time:
            mock_time.time.return_value = T0
            session = await session_manager.create_session("p1", "alice")
            mock_time.time.return_value = T0 + 25 * HOUR

            with pytest.raises(AuthError) as exc_info:
                await session_manager.extend_session(session.session_id)

        assert exc_info.value.kind == AuthErrorKind.SESSION_EXPIRED
        assert await session_manager.get_session(session.session_id) is None


class TestPlayerSessions:
    async def test_lists_active_sessions_only(self, session_manager):
        with patch("mudauth.auth.session_manager.time") as mock_time:
            mock_time.time.return_value = T0
            old = await session_manager.create_session("p1", "alice")
            mock_time.time.return_value = T0 + 20 * HOUR
            fresh = await session_manager.create_session("p1", "alice")
            await session_manager.create_session("p2", "bob")
            mock_time.time.return_value = T0 + 30 * HOUR

            sessions = await session_manager.get_player_sessions("p1")

        assert [s.session_id for s in sessions] == [fresh.session_id]
        assert old.session_id not in {s.session_id for s in sessions}

    async def test_player_without_sessions(self, session_manager):
        assert await session_manager.get_player_sessions("nobody") == []


class TestCleanup:
    async def test_removes_only_expired_sessions(self, session_repo):
        manager = SessionManager(session_repo, ttl_seconds=HOUR)
        with patch("mudauth.auth.session_manager.time") as mock_time:
            mock_time.time.return_value = T0
            expired = await manager.create_session("p1", "alice")
            mock_time.time.return_value = T0 + 50 * 60
            active = await manager.create_session("p2", "bob")
            mock_time.time.return_value = T0 + 61 * 60

            removed = await manager.cleanup_expired_sessions()

        assert removed == 1
        assert await manager.get_session(expired.session_id) is None
        assert await manager.get_session(active.session_id) is not None

    async def test_nothing_to_clean(self, session_manager):
        await session_manager.create_session("p1", "alice")

        assert await session_manager.cleanup_expired_sessions() == 0

    async def test_background_cleanup_runs(self, session_repo):
        manager = SessionManager(session_repo, ttl_seconds=HOUR, cleanup_interval_seconds=0.01)
        with patch("mudauth.auth.session_manager.time") as mock_time:
            mock_time.time.return_value = T0
            session = await manager.create_session("p1", "alice")

        manager.start_cleanup()
        try:
            await asyncio.sleep(0.1)
        finally:
            await manager.stop_cleanup()

        assert await manager.get_session(session.session_id) is None
