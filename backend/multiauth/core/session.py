"""Request-scoped session storage.

The two legs of a remote login are separate HTTP requests that may be served by
different workers, so the handshake artifacts live in a session store keyed by
the session cookie. Reads and writes are local to the store instance until
``save()`` is awaited.
"""

import json
import logging
import secrets
from abc import ABC, abstractmethod
from typing import Any, Optional

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "multiauth:session:"


def new_session_id() -> str:
    """Return a fresh, unguessable session id."""
    return secrets.token_urlsafe(32)


class SessionStore(ABC):
    """Key/value persistence scoped to one browser session."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under ``key`` or ``default``."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key`` (not persisted until ``save()``)."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove ``key`` if present (not persisted until ``save()``)."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Return True if ``key`` holds a value."""

    @abstractmethod
    async def save(self) -> None:
        """Persist all pending changes."""

    def pop(self, key: str, default: Any = None) -> Any:
        """Return and remove the value stored under ``key``."""
        try:
            return self.get(key, default)
        finally:
            self.remove(key)


class InMemorySessionStore(SessionStore):
    """Dict-backed session, for tests and single-process development."""

    def __init__(self, data: Optional[dict[str, Any]] = None) -> None:
        self._data: dict[str, Any] = dict(data or {})
        self.saved: dict[str, Any] = dict(self._data)
        self.save_count = 0

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def exists(self, key: str) -> bool:
        return key in self._data

    async def save(self) -> None:
        self.saved = dict(self._data)
        self.save_count += 1


class RedisSessionStore(SessionStore):
    """Session persisted as one JSON document per session id in Redis.

    Use :meth:`load` to build an instance; the document expires ``ttl`` seconds
    after the last ``save()``.
    """

    def __init__(self, redis_client, session_id: str, ttl: int, data: Optional[dict] = None) -> None:
        self._redis = redis_client
        self.session_id = session_id
        self._ttl = ttl
        self._data: dict[str, Any] = dict(data or {})

    @property
    def redis_key(self) -> str:
        return f"{SESSION_KEY_PREFIX}{self.session_id}"

    @classmethod
    async def load(cls, redis_client, session_id: str, ttl: int) -> "RedisSessionStore":
        """Read the session document for ``session_id`` (empty if absent or corrupt)."""
        data: dict[str, Any] = {}
        raw = await redis_client.get(f"{SESSION_KEY_PREFIX}{session_id}")
        if raw:
            try:
                loaded = json.loads(raw)
            except ValueError:
                logger.warning("Discarding unreadable session document %s…", session_id[:6])
            else:
                if isinstance(loaded, dict):
                    data = loaded
        return cls(redis_client, session_id, ttl, data)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def exists(self, key: str) -> bool:
        return key in self._data

    async def save(self) -> None:
        if self._data:
            await self._redis.setex(self.redis_key, self._ttl, json.dumps(self._data))
        else:
            await self._redis.delete(self.redis_key)
