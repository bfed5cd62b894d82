"""FastAPI dependencies for sessions, the provider registry and the current user."""

from typing import AsyncGenerator, Optional

import redis.asyncio as redis
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from multiauth.config import settings
from multiauth.core.database import get_db
from multiauth.core.session import RedisSessionStore, SessionStore, new_session_id
from multiauth.crud.user import UserDirectory
from multiauth.models.user import LocalUser
from multiauth.services.identity.registry import AuthProviderRegistry

# Session key holding the id of the locally logged-in user
SESSION_USER_ID_KEY = "user_id"

redis_client = redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)


async def get_session(request: Request) -> AsyncGenerator[SessionStore, None]:
    """Load the session named by the session cookie (or start a new one)."""
    session_id = request.cookies.get(settings.SESSION_COOKIE_NAME) or new_session_id()
    session = await RedisSessionStore.load(redis_client, session_id, settings.SESSION_TTL_SECONDS)
    yield session


def get_auth_registry(request: Request) -> AuthProviderRegistry:
    """The provider registry built at application startup."""
    return request.app.state.auth_registry


async def get_current_user(
    session: SessionStore = Depends(get_session),
    db: AsyncSession = Depends(get_db),
) -> Optional[LocalUser]:
    """The locally logged-in user of this session, or None when anonymous."""
    user_id = session.get(SESSION_USER_ID_KEY)
    if not user_id:
        return None
    return await UserDirectory(db).get_by_id(int(user_id))
