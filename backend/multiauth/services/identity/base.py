"""Base classes for remote identity providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Mapping, Optional

from multiauth.models.user import LocalUser
from multiauth.services.identity.exceptions import ConfigurationError


@dataclass
class RemoteUserInfo:
    """Identity attributes returned by a provider after a completed handshake.

    ``after_get_user`` hooks may rewrite it in place.
    """

    name: str
    realname: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class LoginRedirect:
    """Outcome of ``AuthProvider.login()``.

    ``key`` and ``secret`` are opaque handshake artifacts that must survive the
    redirect; either may be ``None`` for providers that do not need them.
    """

    redirect_url: str
    key: Optional[str] = None
    secret: Optional[str] = None


@dataclass(frozen=True)
class ProviderConfig:
    """Static configuration of one provider instance."""

    provider_id: str
    type: str
    client_id: str
    client_secret: str
    auth_uri: Optional[str] = None
    redirect_uri: Optional[str] = None

    # Policy overrides; None means "use the global setting"
    disallow_remote_only_accounts: Optional[bool] = None
    use_real_name_as_username: Optional[bool] = None
    migrate_users_by_username: Optional[bool] = None

    @classmethod
    def from_mapping(cls, provider_id: str, data: Optional[Mapping[str, Any]]) -> "ProviderConfig":
        """Build a config from the external (camelCase) configuration block.

        Raises:
            ConfigurationError: if the block is missing or lacks ``type``,
                ``clientId`` or ``clientSecret``
        """
        if not data or not data.get("type"):
            raise ConfigurationError(
                f"Remote login provider {provider_id!r} is not configured."
            )
        if not data.get("clientId"):
            raise ConfigurationError(f"Provider {provider_id!r} is missing 'clientId'.")
        if not data.get("clientSecret"):
            raise ConfigurationError(f"Provider {provider_id!r} is missing 'clientSecret'.")

        return cls(
            provider_id=provider_id,
            type=str(data["type"]),
            client_id=str(data["clientId"]),
            client_secret=str(data["clientSecret"]),
            auth_uri=data.get("uri"),
            redirect_uri=data.get("redirectUri"),
            disallow_remote_only_accounts=data.get("disallowRemoteOnlyAccounts"),
            use_real_name_as_username=data.get("useRealNameAsUsername"),
            migrate_users_by_username=data.get("migrateUsersByUsername"),
        )


class AuthProvider(ABC):
    """Abstract base for all remote identity providers.

    Implementations must never let a transport or protocol exception escape:
    ``login()`` signals failure by returning ``None`` and ``complete_login()``
    by raising ``ProviderError``.
    """

    provider_type: ClassVar[str]

    def __init__(self, config: ProviderConfig) -> None:
        self.config = config

    @abstractmethod
    async def login(self) -> Optional[LoginRedirect]:
        """Start the handshake and return where to send the user agent.

        Returns ``None`` if the handshake could not be started.
        """

    @abstractmethod
    async def complete_login(
        self,
        key: str,
        secret: str,
        callback_params: Mapping[str, str],
    ) -> RemoteUserInfo:
        """Validate the callback request against the stored artifacts.

        ``callback_params`` are the query parameters the provider redirected
        back with (verifier, authorization code, state ...).

        Raises:
            ProviderError: if the user is not authorised or the exchange failed
        """

    async def logout(self, user: LocalUser) -> None:
        """Best-effort remote logout. No-op by default."""

    async def save_extra_attributes(self, user_id: int) -> None:
        """Called once the local account id is final. No-op by default."""
