"""Pluggable remote identity providers and the login orchestrator."""

from multiauth.services.identity.base import (
    AuthProvider,
    LoginRedirect,
    ProviderConfig,
    RemoteUserInfo,
)
from multiauth.services.identity.facebook import FacebookAuthProvider
from multiauth.services.identity.hooks import AfterGetUserContext, AuthHooks
from multiauth.services.identity.mapping import MappingStore
from multiauth.services.identity.mediawiki import MediaWikiAuthProvider
from multiauth.services.identity.orchestrator import (
    AuthFailure,
    AuthRedirect,
    AuthResult,
    AuthSuccess,
    LoginPolicy,
    OAuthAuthenticator,
)
from multiauth.services.identity.registry import (
    DEFAULT_AUTH_PROVIDERS,
    AuthProviderRegistry,
    get_provider_config,
)

__all__ = [
    "AuthProvider",
    "LoginRedirect",
    "ProviderConfig",
    "RemoteUserInfo",
    "FacebookAuthProvider",
    "MediaWikiAuthProvider",
    "AfterGetUserContext",
    "AuthHooks",
    "MappingStore",
    "AuthFailure",
    "AuthRedirect",
    "AuthResult",
    "AuthSuccess",
    "LoginPolicy",
    "OAuthAuthenticator",
    "DEFAULT_AUTH_PROVIDERS",
    "AuthProviderRegistry",
    "get_provider_config",
]
