"""Exceptions raised by the remote login flow."""

from typing import Optional


class MultiAuthError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(MultiAuthError):
    """A provider is missing or misconfigured. Fatal at setup time."""


class UnknownAuthProviderError(ConfigurationError):
    """The configured provider type has no registered implementation."""


class InvalidAuthProviderClassError(ConfigurationError):
    """The registered implementation does not satisfy the provider contract."""


class ProviderError(MultiAuthError):
    """A provider could not complete the handshake.

    ``message`` is shown to the user when set; otherwise a generic failure
    message is used.
    """

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or "")
        self.message = message


class InitiationFailure(MultiAuthError):
    """The provider could not start the handshake."""


class ContinuationFailure(MultiAuthError):
    """The handshake completed but the login was rejected."""


class FinalisationFailure(MultiAuthError):
    """A newly created account could not be linked to its remote identity."""


class StorageError(MultiAuthError):
    """A mapping could not be written (constraint violation or failed transaction)."""


class MigrationError(MultiAuthError):
    """Raised when migrating a legacy user fails; that user's changes are rolled back."""
