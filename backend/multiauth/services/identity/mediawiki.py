"""MediaWiki identity provider (OAuth 1.0a against Special:OAuth)."""

import logging
from typing import Mapping, Optional
from urllib.parse import urlencode

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth1Client
from jose import JWTError, jwt as jose_jwt

from multiauth.services.identity.base import (
    AuthProvider,
    LoginRedirect,
    ProviderConfig,
    RemoteUserInfo,
)
from multiauth.services.identity.exceptions import ConfigurationError, ProviderError
from multiauth.utils.logging_utils import redact_token

logger = logging.getLogger(__name__)

# Used when no redirect URI is configured (the wiki's registered callback wins)
OUT_OF_BAND_CALLBACK = "oob"


class MediaWikiAuthProvider(AuthProvider):
    """Token-handshake provider for any MediaWiki site running Extension:OAuth.

    ``auth_uri`` is the Special:OAuth endpoint, e.g.
    ``https://meta.wikimedia.org/w/index.php?title=Special:OAuth``. The request
    token pair issued during ``login()`` is the handshake ``key``/``secret``.
    """

    provider_type = "mediawiki"

    def __init__(self, config: ProviderConfig) -> None:
        super().__init__(config)
        if not config.auth_uri:
            raise ConfigurationError(
                f"Provider {config.provider_id!r} of type 'mediawiki' requires 'uri'."
            )
        self.endpoint = config.auth_uri.rstrip("/")
        self.callback = config.redirect_uri or OUT_OF_BAND_CALLBACK

    # ------------------------------------------------------------------
    # AuthProvider interface
    # ------------------------------------------------------------------

    async def login(self) -> Optional[LoginRedirect]:
        """Fetch a request token and point the user at Special:OAuth/authenticate."""
        try:
            async with self._client(redirect_uri=self.callback) as client:
                request_token = await client.fetch_request_token(f"{self.endpoint}/initiate")
            key = request_token["oauth_token"]
            secret = request_token["oauth_token_secret"]
        except (httpx.HTTPError, AuthlibBaseError, KeyError, ValueError) as exc:
            logger.debug("Failed to get request token from %s: %s", self.endpoint, exc)
            return None

        query = urlencode({"oauth_token": key, "oauth_consumer_key": self.config.client_id})
        redirect_url = f"{self.endpoint}/authenticate&{query}"
        logger.debug("Issued request token %s", redact_token(key))
        return LoginRedirect(redirect_url=redirect_url, key=key, secret=secret)

    async def complete_login(
        self,
        key: str,
        secret: str,
        callback_params: Mapping[str, str],
    ) -> RemoteUserInfo:
        """Exchange the verified request token and identify the wiki user."""
        verifier = callback_params.get("oauth_verifier")
        if not verifier:
            logger.debug("No oauth_verifier found in callback parameters")
            raise ProviderError()

        try:
            async with self._client(token=key, token_secret=secret) as client:
                access_token = await client.fetch_access_token(
                    f"{self.endpoint}/token", verifier=verifier
                )
            async with self._client(
                token=access_token["oauth_token"],
                token_secret=access_token["oauth_token_secret"],
            ) as client:
                response = await client.get(f"{self.endpoint}/identify")
                response.raise_for_status()
            identity = self._decode_identity(response.text)
        except (httpx.HTTPError, AuthlibBaseError, JWTError, KeyError, ValueError) as exc:
            logger.debug("Failed to get user from %s: %s", self.endpoint, exc)
            raise ProviderError() from exc

        logger.debug("Identified remote user %r", identity.get("username"))
        username = identity.get("username")
        if not username:
            raise ProviderError()
        return RemoteUserInfo(name=username, email=identity.get("email"))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _client(self, **kwargs) -> AsyncOAuth1Client:
        return AsyncOAuth1Client(
            self.config.client_id,
            client_secret=self.config.client_secret,
            timeout=10.0,
            **kwargs,
        )

    def _decode_identity(self, token: str) -> dict:
        """Verify the identify JWT (HS256, signed with the consumer secret)."""
        return jose_jwt.decode(
            token.strip(),
            self.config.client_secret,
            algorithms=["HS256"],
            audience=self.config.client_id,
        )
