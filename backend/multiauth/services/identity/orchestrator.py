"""Remote login orchestrator: the 3-legged handshake and account resolution.

A login spans two requests that share nothing but the session:

1. No handshake pending: the provider issues a redirect target plus opaque
   ``key``/``secret`` artifacts, which are saved in the session before the
   caller is told to redirect (:class:`AuthRedirect`).
2. Handshake pending: the artifacts are popped from the session (and the
   removal saved) before the provider sees them, so a replayed callback starts
   a fresh login instead of completing twice. The provider resolves the remote
   user, which is then mapped to a local account:

   * a mapping for (remote name, provider id) exists -> log into that account;
   * someone is logged in locally -> link the remote account to them;
   * otherwise create an account (or usurp one with the same name when
     ``migrate_users_by_username`` is on), unless remote-only accounts are
     disallowed.

New accounts are returned with ``user_id=None``; the host creates the account
and then calls :meth:`OAuthAuthenticator.save_extra_attributes` with its id.
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from multiauth.config import Settings, settings as default_settings
from multiauth.core.session import SessionStore
from multiauth.crud.user import UserDirectory, ucfirst
from multiauth.models.user import LocalUser
from multiauth.services.identity.base import AuthProvider, ProviderConfig, RemoteUserInfo
from multiauth.services.identity.exceptions import (
    ContinuationFailure,
    FinalisationFailure,
    InitiationFailure,
    ProviderError,
)
from multiauth.services.identity.hooks import (
    AFTER_GET_USER,
    BEFORE_LOGOUT,
    AfterGetUserContext,
    AuthHooks,
)
from multiauth.services.identity.mapping import MappingStore
from multiauth.services.identity.registry import AuthProviderRegistry, get_provider_config
from multiauth.utils.logging_utils import redact_token

logger = logging.getLogger(__name__)

REQUEST_KEY_SESSION_KEY = "oauth_request_key"
REQUEST_SECRET_SESSION_KEY = "oauth_request_secret"
REMOTE_USERNAME_SESSION_KEY = "oauth_remote_username"

# Base name plus suffixes " 1" .. " 255"
UNIQUE_NAME_MAX_TRIES = 256

MSG_INITIATE_FAILURE = "Could not start the remote login. Please try again."
MSG_AUTHENTICATION_FAILURE = "Authentication with the remote provider failed."
MSG_INVALID_USERNAME = "The remote username is invalid."
MSG_REMOTE_ONLY_DISABLED = "Creating accounts through a remote login is disabled."
MSG_ACCOUNT_EXISTS = "An account with this username already exists."
MSG_NO_UNIQUE_NAME = "Unable to find a unique username."
MSG_MAPPED_ACCOUNT_MISSING = "The account linked to this remote user no longer exists."
MSG_COULD_NOT_CREATE_MAPPING = "Could not link the new account to the remote user."


@dataclass(frozen=True)
class AuthRedirect:
    """Send the user agent to ``url``; nothing else happens in this request."""

    url: str


@dataclass(frozen=True)
class AuthSuccess:
    """Log in as ``user_id``; ``None`` means create ``username`` first."""

    user_id: Optional[int]
    username: str
    realname: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class AuthFailure:
    """The login failed with a user-facing ``message``."""

    message: str


AuthResult = Union[AuthRedirect, AuthSuccess, AuthFailure]


@dataclass(frozen=True)
class LoginPolicy:
    """Account creation policy for one provider."""

    disallow_remote_only_accounts: bool = False
    use_real_name_as_username: bool = False
    migrate_users_by_username: bool = False

    @classmethod
    def resolve(cls, config: ProviderConfig, app_settings: Settings) -> "LoginPolicy":
        """Per-provider overrides, falling back to the global settings."""

        def pick(override: Optional[bool], default: bool) -> bool:
            return default if override is None else bool(override)

        return cls(
            disallow_remote_only_accounts=pick(
                config.disallow_remote_only_accounts,
                app_settings.OAUTH_DISALLOW_REMOTE_ONLY_ACCOUNTS,
            ),
            use_real_name_as_username=pick(
                config.use_real_name_as_username,
                app_settings.OAUTH_USE_REAL_NAME_AS_USERNAME,
            ),
            migrate_users_by_username=pick(
                config.migrate_users_by_username,
                app_settings.OAUTH_MIGRATE_USERS_BY_USERNAME,
            ),
        )


class OAuthAuthenticator:
    """Drives one remote login attempt for a configured provider."""

    def __init__(
        self,
        provider_id: str,
        provider: AuthProvider,
        session: SessionStore,
        mappings: MappingStore,
        directory: UserDirectory,
        hooks: Optional[AuthHooks] = None,
        policy: Optional[LoginPolicy] = None,
    ) -> None:
        self.provider_id = provider_id
        self.provider = provider
        self.session = session
        self.mappings = mappings
        self.directory = directory
        self.hooks = hooks or AuthHooks()
        self.policy = policy or LoginPolicy()

    @classmethod
    def from_config(
        cls,
        provider_id: str,
        db: AsyncSession,
        session: SessionStore,
        registry: AuthProviderRegistry,
        app_settings: Optional[Settings] = None,
    ) -> "OAuthAuthenticator":
        """Build an authenticator for a configured provider id.

        Raises:
            ConfigurationError: unknown/misconfigured provider or provider type
        """
        app_settings = app_settings or default_settings
        config = get_provider_config(provider_id, app_settings)
        return cls(
            provider_id=provider_id,
            provider=registry.create(config),
            session=session,
            mappings=MappingStore(db),
            directory=UserDirectory(db),
            hooks=registry.hooks,
            policy=LoginPolicy.resolve(config, app_settings),
        )

    # ------------------------------------------------------------------
    # Entry points used by the host
    # ------------------------------------------------------------------

    async def authenticate(
        self,
        current_user: Optional[LocalUser] = None,
        callback_params: Optional[Mapping[str, str]] = None,
    ) -> AuthResult:
        """Start or complete the handshake and decide which account to log into.

        Only the login failure types are converted into :class:`AuthFailure`;
        storage errors and anything unexpected propagate.
        """
        try:
            if not self.is_continuation():
                return await self._initiate_login()

            key = self.session.pop(REQUEST_KEY_SESSION_KEY)
            secret = self.session.pop(REQUEST_SECRET_SESSION_KEY)
            await self.session.save()

            return await self._continue_login(key, secret, current_user, callback_params or {})
        except (InitiationFailure, ContinuationFailure, FinalisationFailure) as exc:
            logger.info("Remote login through %r failed: %s", self.provider_id, exc)
            return AuthFailure(str(exc))

    async def save_extra_attributes(self, user_id: int) -> None:
        """Link the account ``user_id`` to the remote user of this session.

        Raises:
            FinalisationFailure: no remote user was resolved in this session
            StorageError: the mapping could not be written
        """
        remote_username = self.session.get(REMOTE_USERNAME_SESSION_KEY)
        if remote_username is None:
            raise FinalisationFailure(MSG_COULD_NOT_CREATE_MAPPING)

        await self.mappings.insert_mapping(user_id, remote_username, self.provider_id)
        await self.provider.save_extra_attributes(user_id)

    async def deauthenticate(self, user: LocalUser) -> None:
        """Run logout hooks, then the provider's remote logout."""
        await self.hooks.run(BEFORE_LOGOUT, user)
        await self.provider.logout(user)

    def is_continuation(self) -> bool:
        """True when this request completes a handshake started earlier."""
        return self.session.exists(REQUEST_KEY_SESSION_KEY) and self.session.exists(
            REQUEST_SECRET_SESSION_KEY
        )

    # ------------------------------------------------------------------
    # Handshake legs
    # ------------------------------------------------------------------

    async def _initiate_login(self) -> AuthRedirect:
        logger.debug("Initiating remote login through %r", self.provider_id)
        redirect = await self.provider.login()

        if redirect is None or not redirect.redirect_url:
            logger.debug("Provider %r returned no redirect URL", self.provider_id)
            raise InitiationFailure(MSG_INITIATE_FAILURE)

        self.session.set(REQUEST_KEY_SESSION_KEY, redirect.key)
        self.session.set(REQUEST_SECRET_SESSION_KEY, redirect.secret)
        await self.session.save()

        logger.debug("Handshake started with key %s", redact_token(redirect.key))
        return AuthRedirect(redirect.redirect_url)

    async def _continue_login(
        self,
        key: Optional[str],
        secret: Optional[str],
        current_user: Optional[LocalUser],
        callback_params: Mapping[str, str],
    ) -> AuthSuccess:
        logger.debug("Continuing remote login through %r", self.provider_id)
        user_info = await self._resolve_remote_user(key, secret, callback_params)

        if not user_info.name or not self.directory.is_valid_name(ucfirst(user_info.name)):
            raise ContinuationFailure(MSG_INVALID_USERNAME)

        realname = user_info.realname or None
        email = user_info.email or None
        remote_username = ucfirst(user_info.name)
        local_user_id = await self.mappings.find_local_user(remote_username, self.provider_id)

        self.session.set(REMOTE_USERNAME_SESSION_KEY, remote_username)
        await self.session.save()

        if local_user_id:
            # Known remote account: log into the linked account
            user = await self.directory.get_by_id(local_user_id)
            if user is None:
                raise ContinuationFailure(MSG_MAPPED_ACCOUNT_MISSING)
            return AuthSuccess(user.id, user.name, realname, email)

        if current_user is not None and current_user.id:
            # Logged in locally: link this remote account to the current account
            await self.mappings.insert_mapping(current_user.id, remote_username, self.provider_id)
            return AuthSuccess(current_user.id, current_user.name, realname, email)

        return await self._resolve_new_account(remote_username, realname, email)

    async def _resolve_remote_user(
        self,
        key: Optional[str],
        secret: Optional[str],
        callback_params: Mapping[str, str],
    ) -> RemoteUserInfo:
        user_info: Optional[RemoteUserInfo] = None
        error_message: Optional[str] = None
        try:
            user_info = await self.provider.complete_login(key or "", secret or "", callback_params)
        except ProviderError as exc:
            error_message = exc.message

        context = AfterGetUserContext(
            user_info=user_info,
            error_message=error_message,
            provider_id=self.provider_id,
        )
        allowed = await self.hooks.run(AFTER_GET_USER, context)

        if context.user_info is None or not allowed:
            logger.debug("Remote request failed or user is not authorised")
            raise ContinuationFailure(context.error_message or MSG_AUTHENTICATION_FAILURE)
        return context.user_info

    async def _resolve_new_account(
        self,
        remote_username: str,
        realname: Optional[str],
        email: Optional[str],
    ) -> AuthSuccess:
        if self.policy.disallow_remote_only_accounts:
            raise ContinuationFailure(MSG_REMOTE_ONLY_DISABLED)

        if self.policy.use_real_name_as_username and realname:
            desired_username = realname
        else:
            desired_username = remote_username

        existing_id = await self.directory.id_for_name(desired_username)
        if existing_id:
            if not self.policy.migrate_users_by_username:
                raise ContinuationFailure(MSG_ACCOUNT_EXISTS)

            # Usurp the account that already carries the desired name
            await self.save_extra_attributes(existing_id)
            logger.info(
                "Remote account %r (%s) took over local account %s",
                remote_username,
                self.provider_id,
                existing_id,
            )
            return AuthSuccess(existing_id, ucfirst(desired_username), realname, email)

        return AuthSuccess(None, await self.get_unique_name(desired_username), realname, email)

    async def get_unique_name(self, name: str) -> str:
        """Return ``name`` if free, else the first free ``"<name> <n>"``.

        Raises:
            ContinuationFailure: the name is invalid, or no free name was found
        """
        name = ucfirst(name)
        if not self.directory.is_valid_name(name):
            raise ContinuationFailure(MSG_INVALID_USERNAME)

        if not await self.directory.id_for_name(name):
            return name

        for i in range(1, UNIQUE_NAME_MAX_TRIES):
            candidate = f"{name} {i}"
            if not await self.directory.id_for_name(candidate):
                return candidate

        raise ContinuationFailure(MSG_NO_UNIQUE_NAME)
