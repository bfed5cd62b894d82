"""Facebook identity provider (OAuth 2.0 authorization code flow)."""

import hmac
import logging
from typing import Mapping, Optional

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth2Client

from multiauth.services.identity.base import (
    AuthProvider,
    LoginRedirect,
    ProviderConfig,
    RemoteUserInfo,
)
from multiauth.services.identity.exceptions import ProviderError
from multiauth.utils.logging_utils import redact_email

logger = logging.getLogger(__name__)

GRAPH_API_VERSION = "v6.0"
AUTHORIZE_URL = f"https://www.facebook.com/{GRAPH_API_VERSION}/dialog/oauth"
TOKEN_URL = f"https://graph.facebook.com/{GRAPH_API_VERSION}/oauth/access_token"
ME_URL = f"https://graph.facebook.com/{GRAPH_API_VERSION}/me"


class FacebookAuthProvider(AuthProvider):
    """Authorization-code provider for Facebook Login.

    No request key is needed; the anti-forgery ``state`` is the handshake
    secret. The remote name is the (numeric) Facebook user id, the real name
    the profile name.
    """

    provider_type = "facebook"

    def __init__(self, config: ProviderConfig) -> None:
        super().__init__(config)
        self.scope = "email"

    async def login(self) -> Optional[LoginRedirect]:
        """Build the authorization URL; the generated state is kept as the secret."""
        try:
            async with self._client() as client:
                redirect_url, state = client.create_authorization_url(AUTHORIZE_URL)
        except (AuthlibBaseError, ValueError) as exc:
            logger.debug("Failed to build the Facebook authorization URL: %s", exc)
            return None
        return LoginRedirect(redirect_url=redirect_url, key=None, secret=state)

    async def complete_login(
        self,
        key: str,
        secret: str,
        callback_params: Mapping[str, str],
    ) -> RemoteUserInfo:
        """Check the returned state, redeem the code and read the profile."""
        code = callback_params.get("code")
        if not code:
            raise ProviderError()

        state = callback_params.get("state")
        if not state or not secret or not hmac.compare_digest(state, secret):
            logger.debug("Facebook callback state does not match the issued state")
            raise ProviderError()

        try:
            async with self._client(state=secret) as client:
                await client.fetch_token(TOKEN_URL, code=code)
                response = await client.get(ME_URL, params={"fields": "id,name,email"})
                response.raise_for_status()
                profile = response.json()
        except (httpx.HTTPError, AuthlibBaseError, ValueError) as exc:
            logger.debug("Failed to get user from Facebook: %s", exc)
            raise ProviderError() from exc

        if not profile.get("id"):
            raise ProviderError()

        logger.debug(
            "Facebook user %s resolved (email=%s)",
            profile["id"],
            redact_email(profile.get("email")),
        )
        return RemoteUserInfo(
            name=str(profile["id"]),
            realname=profile.get("name"),
            email=profile.get("email"),
        )

    def _client(self, **kwargs) -> AsyncOAuth2Client:
        return AsyncOAuth2Client(
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            scope=self.scope,
            redirect_uri=self.config.redirect_uri,
            token_endpoint_auth_method="client_secret_post",
            timeout=10.0,
            **kwargs,
        )
