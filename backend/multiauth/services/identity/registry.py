"""Resolves a configured provider ``type`` to its implementation class."""

import importlib
import inspect
import logging
from typing import Any, Mapping, Optional

from multiauth.config import Settings, settings as default_settings
from multiauth.services.identity.base import AuthProvider, ProviderConfig
from multiauth.services.identity.exceptions import (
    InvalidAuthProviderClassError,
    UnknownAuthProviderError,
)
from multiauth.services.identity.facebook import FacebookAuthProvider
from multiauth.services.identity.hooks import AuthHooks
from multiauth.services.identity.mediawiki import MediaWikiAuthProvider

logger = logging.getLogger(__name__)

DEFAULT_AUTH_PROVIDERS: dict[str, type[AuthProvider]] = {
    "mediawiki": MediaWikiAuthProvider,
    "facebook": FacebookAuthProvider,
}


def validate_provider_class(candidate: Any) -> type[AuthProvider]:
    """Return ``candidate`` if it is a concrete ``AuthProvider`` subclass.

    Raises:
        InvalidAuthProviderClassError: otherwise
    """
    if not inspect.isclass(candidate) or not issubclass(candidate, AuthProvider):
        raise InvalidAuthProviderClassError(
            f"{candidate!r} is not a subclass of AuthProvider."
        )
    if inspect.isabstract(candidate):
        missing = ", ".join(sorted(candidate.__abstractmethods__))
        raise InvalidAuthProviderClassError(
            f"{candidate.__name__} does not implement: {missing}."
        )
    return candidate


def import_provider_class(path: str) -> type[AuthProvider]:
    """Import ``package.module:ClassName`` (or ``package.module.ClassName``)."""
    module_name, _, attr = path.partition(":")
    if not attr:
        module_name, _, attr = path.rpartition(".")
    try:
        module = importlib.import_module(module_name)
        candidate = getattr(module, attr)
    except (ImportError, AttributeError, ValueError) as exc:
        raise InvalidAuthProviderClassError(
            f"Cannot import auth provider class {path!r}: {exc}"
        ) from exc
    return validate_provider_class(candidate)


class AuthProviderRegistry:
    """Type -> implementation bindings.

    Resolution order (later wins): built-in defaults, ``get_auth_providers``
    hooks, configured custom providers, classes passed to :meth:`register`.
    """

    def __init__(
        self,
        hooks: Optional[AuthHooks] = None,
        custom_providers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.hooks = hooks or AuthHooks()
        # Imported and validated now so a bad path fails at startup
        self._custom: dict[str, type[AuthProvider]] = {
            provider_type: (
                import_provider_class(target)
                if isinstance(target, str)
                else validate_provider_class(target)
            )
            for provider_type, target in (custom_providers or {}).items()
        }
        self._registered: dict[str, type[AuthProvider]] = {}

    def register(self, provider_type: str, provider_class: Any) -> None:
        """Bind ``provider_type`` to ``provider_class`` after validating it."""
        self._registered[provider_type] = validate_provider_class(provider_class)
        logger.info("Registered auth provider type %r -> %s", provider_type, provider_class.__name__)

    def bindings(self) -> dict[str, Any]:
        bindings: dict[str, Any] = dict(DEFAULT_AUTH_PROVIDERS)
        self.hooks.run_provider_bindings(bindings)
        bindings.update(self._custom)
        bindings.update(self._registered)
        return bindings

    def resolve(self, provider_type: str) -> type[AuthProvider]:
        """Return the implementation class for ``provider_type``.

        Raises:
            UnknownAuthProviderError: no binding for the type
            InvalidAuthProviderClassError: the binding is not a usable provider
        """
        bindings = self.bindings()
        if provider_type not in bindings:
            raise UnknownAuthProviderError(f"Unknown auth provider type {provider_type!r}.")

        target = bindings[provider_type]
        if isinstance(target, str):
            return import_provider_class(target)
        return validate_provider_class(target)

    def create(self, config: ProviderConfig) -> AuthProvider:
        """Instantiate the provider for ``config``."""
        provider_class = self.resolve(config.type)
        return provider_class(config)

    def check_configured_providers(self, app_settings: Optional[Settings] = None) -> list[str]:
        """Build every configured provider once and return their ids.

        Raises:
            ConfigurationError: a provider block is incomplete, its type is
                unknown, or its implementation rejects the configuration
        """
        app_settings = app_settings or default_settings
        provider_ids = list(app_settings.OAUTH_PROVIDERS)
        for provider_id in provider_ids:
            self.create(get_provider_config(provider_id, app_settings))
        return provider_ids


def get_provider_config(provider_id: str, app_settings: Optional[Settings] = None) -> ProviderConfig:
    """Look up and validate the configuration block of ``provider_id``.

    Raises:
        ConfigurationError: if the provider is not configured or incomplete
    """
    app_settings = app_settings or default_settings
    return ProviderConfig.from_mapping(provider_id, app_settings.get_provider_data(provider_id))
