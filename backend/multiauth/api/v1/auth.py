"""Remote login API endpoints.

Both legs of the handshake hit the same endpoint: the provider's callback URL
(``redirectUri``) must point back at ``/api/v1/auth/oauth/{provider_id}/login``.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, RedirectResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from multiauth.config import settings
from multiauth.core.database import get_db
from multiauth.core.session import SessionStore
from multiauth.crud.user import UserDirectory
from multiauth.dependencies import (
    SESSION_USER_ID_KEY,
    get_auth_registry,
    get_current_user,
    get_session,
)
from multiauth.models.user import LocalUser
from multiauth.services.identity.exceptions import FinalisationFailure, StorageError
from multiauth.services.identity.groups import populate_groups
from multiauth.services.identity.orchestrator import (
    AuthFailure,
    AuthRedirect,
    AuthSuccess,
    OAuthAuthenticator,
)
from multiauth.services.identity.registry import AuthProviderRegistry
from multiauth.utils.logging_utils import redact_email

router = APIRouter()
logger = logging.getLogger(__name__)


def _set_session_cookie(response: Response, session: SessionStore) -> None:
    """Attach the session cookie when the store is cookie-addressed."""
    session_id = getattr(session, "session_id", None)
    if not session_id:
        return
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session_id,
        httponly=True,
        secure=not settings.DEBUG,
        samesite="lax",
        max_age=settings.SESSION_TTL_SECONDS,
    )


def _get_authenticator(
    provider_id: str,
    db: AsyncSession,
    session: SessionStore,
    registry: AuthProviderRegistry,
) -> OAuthAuthenticator:
    if settings.get_provider_data(provider_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown login provider {provider_id!r}",
        )
    return OAuthAuthenticator.from_config(provider_id, db, session, registry)


async def _materialize_account(
    authenticator: OAuthAuthenticator,
    directory: UserDirectory,
    result: AuthSuccess,
) -> LocalUser:
    """Load the decided account, creating and linking it if it is new."""
    if result.user_id is not None:
        user = await directory.get_by_id(result.user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown account")
        return user

    try:
        user = await directory.create(result.username, result.realname, result.email)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    logger.info(
        "Created local account %s (%r, email=%s) from remote login",
        user.id,
        user.name,
        redact_email(user.email),
    )
    user_id = user.id
    try:
        await authenticator.save_extra_attributes(user_id)
    except (FinalisationFailure, StorageError) as exc:
        # No account may outlive a failed link to its remote identity
        await directory.delete_by_id(user_id)
        logger.warning("Removed local account %s after linking failed: %s", user_id, exc)
        if isinstance(exc, StorageError):
            raise
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    return user


@router.get("/oauth/{provider_id}/login")
async def remote_login(
    provider_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    session: SessionStore = Depends(get_session),
    registry: AuthProviderRegistry = Depends(get_auth_registry),
    current_user: Optional[LocalUser] = Depends(get_current_user),
):
    """
    Start a remote login, or complete it when the provider redirects back.

    Returns a 302 to the provider on the first leg, the logged-in account on
    success and 401 with a message on failure.
    """
    authenticator = _get_authenticator(provider_id, db, session, registry)
    try:
        result = await authenticator.authenticate(current_user, dict(request.query_params))
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    if isinstance(result, AuthRedirect):
        response: Response = RedirectResponse(result.url, status_code=status.HTTP_302_FOUND)
        _set_session_cookie(response, session)
        return response

    if isinstance(result, AuthFailure):
        response = JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": result.message},
        )
        _set_session_cookie(response, session)
        return response

    directory = UserDirectory(db)
    try:
        user = await _materialize_account(authenticator, directory, result)
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    await populate_groups(user, directory, registry.hooks, settings.OAUTH_AUTO_POPULATE_GROUPS)

    session.set(SESSION_USER_ID_KEY, user.id)
    await session.save()

    response = JSONResponse(content={"user_id": user.id, "username": user.name})
    _set_session_cookie(response, session)
    return response


@router.post("/oauth/{provider_id}/logout")
async def remote_logout(
    provider_id: str,
    db: AsyncSession = Depends(get_db),
    session: SessionStore = Depends(get_session),
    registry: AuthProviderRegistry = Depends(get_auth_registry),
    current_user: Optional[LocalUser] = Depends(get_current_user),
):
    """Log the current user out locally and at the provider."""
    if current_user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not logged in")

    authenticator = _get_authenticator(provider_id, db, session, registry)
    await authenticator.deauthenticate(current_user)

    session.remove(SESSION_USER_ID_KEY)
    await session.save()
    return {"message": "Logged out"}
