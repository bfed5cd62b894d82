"""FastAPI main application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from multiauth.api.v1 import auth
from multiauth.config import settings
from multiauth.core.database import close_db, init_db
from multiauth.core.logging_config import setup_logging
from multiauth.services.identity.hooks import AuthHooks
from multiauth.services.identity.registry import AuthProviderRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    setup_logging()
    if settings.ENVIRONMENT != "production":
        # Production schemas are managed by Alembic
        await init_db()
    logger.info(
        "%s %s started with providers: %s",
        settings.APP_NAME,
        settings.APP_VERSION,
        ", ".join(settings.OAUTH_PROVIDERS) or "(none)",
    )
    yield
    await close_db()


def create_app(hooks: AuthHooks | None = None) -> FastAPI:
    """Build the application; ``hooks`` lets embedders register extension callbacks.

    Raises:
        ConfigurationError: a configured provider cannot be built
    """
    hooks = hooks or AuthHooks()

    registry = AuthProviderRegistry(
        hooks=hooks,
        custom_providers=settings.OAUTH_CUSTOM_AUTH_PROVIDERS,
    )
    registry.check_configured_providers(settings)

    app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)
    app.state.auth_hooks = hooks
    app.state.auth_registry = registry
    app.include_router(auth.router, prefix="/api/v1/auth", tags=["Authentication"])

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": settings.APP_VERSION}

    return app


app = create_app()
