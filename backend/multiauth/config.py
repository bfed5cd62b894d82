"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Any, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "MultiAuth"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./multiauth.db"
    DB_ECHO: bool = False

    # Redis (session continuation store)
    REDIS_URL: str = "redis://localhost:6379/0"
    SESSION_COOKIE_NAME: str = "multiauth_session"
    SESSION_TTL_SECONDS: int = 3600

    # Monitoring
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"  # 'text' or 'json' (json for production)

    # ── Remote login ─────────────────────────────────────────────────────────
    # Provider instances keyed by provider id, e.g.
    # OAUTH_PROVIDERS='{"wiki": {"type": "mediawiki", "clientId": "...",
    #                            "clientSecret": "...", "uri": "https://..."}}'
    OAUTH_PROVIDERS: dict[str, dict[str, Any]] = {}
    # Extra provider types: type -> "package.module:ClassName"
    OAUTH_CUSTOM_AUTH_PROVIDERS: dict[str, str] = {}

    # Global policy defaults, overridable per provider
    OAUTH_DISALLOW_REMOTE_ONLY_ACCOUNTS: bool = False
    OAUTH_USE_REAL_NAME_AS_USERNAME: bool = False
    OAUTH_MIGRATE_USERS_BY_USERNAME: bool = False

    # Groups every remotely authenticated user is added to
    OAUTH_AUTO_POPULATE_GROUPS: list[str] = []

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @field_validator("OAUTH_PROVIDERS")
    @classmethod
    def validate_oauth_providers(cls, v: dict[str, dict[str, Any]]) -> dict[str, dict[str, Any]]:
        """Every configured provider must declare its type and client credentials."""
        for provider_id, data in v.items():
            if not isinstance(data, dict) or not data.get("type"):
                raise ValueError(
                    f"OAuth provider {provider_id!r} is not configured: missing 'type'"
                )
            for key in ("clientId", "clientSecret"):
                if not data.get(key):
                    raise ValueError(f"OAuth provider {provider_id!r} is missing {key!r}")
        return v

    def get_provider_data(self, provider_id: str) -> Optional[dict[str, Any]]:
        """Return the raw configuration block for a provider id, if any."""
        return self.OAUTH_PROVIDERS.get(provider_id)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
