"""Unit tests for session stores and extension hooks."""

import json

import pytest
from unittest.mock import AsyncMock, Mock

from multiauth.core.session import (
    SESSION_KEY_PREFIX,
    InMemorySessionStore,
    RedisSessionStore,
    new_session_id,
)
from multiauth.services.identity.hooks import (
    AFTER_GET_USER,
    BEFORE_LOGOUT,
    GET_AUTH_PROVIDERS,
    AuthHooks,
)
from multiauth.utils.logging_utils import redact_email, redact_token


# ---------------------------------------------------------------------------
# Session stores
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestInMemorySessionStore:
    """Test the dict-backed session."""

    @pytest.mark.asyncio
    async def test_changes_are_visible_after_save(self):
        session = InMemorySessionStore()
        session.set("a", 1)

        assert session.get("a") == 1
        assert session.saved == {}

        await session.save()

        assert session.saved == {"a": 1}
        assert session.save_count == 1

    def test_pop_removes_key(self):
        session = InMemorySessionStore({"a": 1})

        assert session.pop("a") == 1
        assert not session.exists("a")
        assert session.pop("a", "gone") == "gone"

    def test_exists_with_none_value(self):
        session = InMemorySessionStore({"key": None})

        assert session.exists("key")
        session.remove("key")
        assert not session.exists("key")


@pytest.mark.unit
class TestRedisSessionStore:
    """Test the Redis-backed session."""

    @pytest.fixture
    def mock_redis(self):
        client = Mock()
        client.get = AsyncMock(return_value=None)
        client.setex = AsyncMock()
        client.delete = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_load_missing_session(self, mock_redis):
        session = await RedisSessionStore.load(mock_redis, "abc", 60)

        mock_redis.get.assert_awaited_once_with(f"{SESSION_KEY_PREFIX}abc")
        assert session.session_id == "abc"
        assert not session.exists("anything")

    @pytest.mark.asyncio
    async def test_load_existing_session(self, mock_redis):
        mock_redis.get.return_value = json.dumps({"oauth_request_key": "k"})

        session = await RedisSessionStore.load(mock_redis, "abc", 60)

        assert session.get("oauth_request_key") == "k"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["{not json", json.dumps(["a", "list"])])
    async def test_load_discards_unreadable_document(self, mock_redis, raw):
        mock_redis.get.return_value = raw

        session = await RedisSessionStore.load(mock_redis, "abc", 60)

        assert session.get("oauth_request_key") is None

    @pytest.mark.asyncio
    async def test_save_writes_with_ttl(self, mock_redis):
        session = RedisSessionStore(mock_redis, "abc", 60)
        session.set("user_id", 7)

        await session.save()

        mock_redis.setex.assert_awaited_once_with(f"{SESSION_KEY_PREFIX}abc", 60, '{"user_id": 7}')

    @pytest.mark.asyncio
    async def test_save_of_empty_session_deletes_it(self, mock_redis):
        session = RedisSessionStore(mock_redis, "abc", 60, {"user_id": 7})
        session.remove("user_id")

        await session.save()

        mock_redis.delete.assert_awaited_once_with(f"{SESSION_KEY_PREFIX}abc")
        mock_redis.setex.assert_not_called()

    def test_session_ids_are_unique(self):
        assert new_session_id() != new_session_id()


# ---------------------------------------------------------------------------
# AuthHooks
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestAuthHooks:
    """Test callback chains."""

    def test_unknown_event(self):
        with pytest.raises(ValueError, match="Unknown hook event"):
            AuthHooks().register("on_everything", lambda: None)

    @pytest.mark.asyncio
    async def test_empty_chain_allows(self):
        assert await AuthHooks().run(BEFORE_LOGOUT, object()) is True

    @pytest.mark.asyncio
    async def test_callbacks_run_in_order(self):
        hooks = AuthHooks()
        calls = []

        async def second(value):
            calls.append(("second", value))

        hooks.register(AFTER_GET_USER, lambda value: calls.append(("first", value)))
        hooks.register(AFTER_GET_USER, second)

        assert await hooks.run(AFTER_GET_USER, "ctx") is True
        assert calls == [("first", "ctx"), ("second", "ctx")]

    @pytest.mark.asyncio
    async def test_false_stops_the_chain(self):
        hooks = AuthHooks()
        later = Mock()

        async def veto(value):
            return False

        hooks.register(AFTER_GET_USER, veto)
        hooks.register(AFTER_GET_USER, later)

        assert await hooks.run(AFTER_GET_USER, "ctx") is False
        later.assert_not_called()

    def test_provider_bindings_survive_failing_callback(self):
        hooks = AuthHooks()
        hooks.register(GET_AUTH_PROVIDERS, Mock(side_effect=RuntimeError("boom")))
        hooks.register(GET_AUTH_PROVIDERS, lambda bindings: bindings.update(extra="pkg:Provider"))
        bindings = {"mediawiki": "builtin"}

        hooks.run_provider_bindings(bindings)

        assert bindings == {"mediawiki": "builtin", "extra": "pkg:Provider"}


# ---------------------------------------------------------------------------
# Log redaction
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestLogRedaction:
    def test_redact_token(self):
        assert redact_token("abcdefghijkl") == "abcd…(12)"
        assert redact_token(None) == "N/A"

    def test_redact_email(self):
        assert "alice" not in redact_email("alice@example.com")
        assert redact_email("alice@example.com").endswith("@example.com")
