"""Callback registries for the documented extension points of the login flow.

Events:

``get_auth_providers(bindings)``
    May add or replace provider type -> class bindings in place. Synchronous.
``after_get_user(context)``
    Runs once per continuation, after the provider resolved the remote user and
    before any mapping or account decision. May rewrite ``context.user_info`` /
    ``context.error_message`` in place; returning ``False`` vetoes the login.
``before_logout(user)``
    Runs before the provider's remote logout.
``before_populate_groups(user)``
    Returning ``False`` skips automatic group population for this user.

Callbacks for the async events may be plain functions or coroutines. The first
callback returning ``False`` stops the chain.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from multiauth.services.identity.base import RemoteUserInfo

logger = logging.getLogger(__name__)

GET_AUTH_PROVIDERS = "get_auth_providers"
AFTER_GET_USER = "after_get_user"
BEFORE_LOGOUT = "before_logout"
BEFORE_POPULATE_GROUPS = "before_populate_groups"

EVENTS = (GET_AUTH_PROVIDERS, AFTER_GET_USER, BEFORE_LOGOUT, BEFORE_POPULATE_GROUPS)


@dataclass
class AfterGetUserContext:
    """Mutable slots handed to ``after_get_user`` callbacks."""

    user_info: Optional[RemoteUserInfo]
    error_message: Optional[str]
    provider_id: str


class AuthHooks:
    """Ordered callbacks per event."""

    def __init__(self) -> None:
        self._callbacks: dict[str, list[Callable[..., Any]]] = {event: [] for event in EVENTS}

    def register(self, event: str, callback: Callable[..., Any]) -> None:
        """Append ``callback`` to the chain for ``event``."""
        if event not in self._callbacks:
            raise ValueError(f"Unknown hook event: {event!r}")
        self._callbacks[event].append(callback)

    def callbacks(self, event: str) -> list[Callable[..., Any]]:
        return list(self._callbacks.get(event, []))

    async def run(self, event: str, *args: Any) -> bool:
        """Run the chain for ``event``; return False if a callback vetoed."""
        for callback in self.callbacks(event):
            result = callback(*args)
            if inspect.isawaitable(result):
                result = await result
            if result is False:
                logger.debug("Hook %s vetoed by %r", event, callback)
                return False
        return True

    def run_provider_bindings(self, bindings: dict[str, Any]) -> None:
        """Let ``get_auth_providers`` callbacks edit ``bindings``.

        A failing callback is logged and skipped; the remaining bindings still apply.
        """
        for callback in self.callbacks(GET_AUTH_PROVIDERS):
            try:
                callback(bindings)
            except Exception:
                logger.warning("get_auth_providers hook %r failed", callback, exc_info=True)
