"""FastAPI application setup and configuration."""

import logging

import httpx
import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from bikeshop_sync.api.client import BlingAPIClient
from bikeshop_sync.config.settings import settings
from bikeshop_sync.core.logger import setup_logger
from bikeshop_sync.core.token_manager import TokenManager
from bikeshop_sync.db import get_engine, get_session_factory, init_db

logger = setup_logger(__name__)


def init_monitoring() -> None:
    """Initialize GlitchTip error monitoring (Sentry-compatible) when a DSN is set."""
    if not settings.glitchtip_dsn:
        return

    try:
        sentry_sdk.init(
            dsn=settings.glitchtip_dsn,
            environment=settings.environment,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                LoggingIntegration(
                    level=None,  # Capture all log levels as breadcrumbs
                    event_level=logging.ERROR,  # Send ERROR logs as events
                ),
            ],
            traces_sample_rate=0.1,
            send_default_pii=False,  # Customer data stays out of error reports
        )
        logger.info("GlitchTip error monitoring initialized")
    except Exception as e:
        logger.error(f"Failed to initialize GlitchTip: {e}")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Bike Shop Bling Sync",
        version="1.0.0",
        description="Storefront checkout, stock validation and order reconciliation with Bling ERP",
    )

    init_monitoring()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from bikeshop_sync.server import routes

    app.include_router(routes.router)

    @app.on_event("startup")
    async def startup_handler():
        """
        Initialize resources on application startup.

        Creates the database engine and session factory, the shared HTTP
        client, the token manager and the Bling API client.
        """
        logger.info("Starting application resources...")

        engine = get_engine(settings.database_url)
        await init_db(engine)
        session_factory = get_session_factory(engine)

        http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        token_manager = TokenManager(
            session_factory,
            client_id=settings.bling_client_id,
            client_secret=settings.bling_client_secret,
            api_base=settings.bling_api_base,
            redirect_uri=settings.bling_redirect_uri,
            http_client=http_client,
        )
        api_client = BlingAPIClient(
            token_manager,
            api_base=settings.bling_api_base,
            http_client=http_client,
            invoice_timeout=settings.invoice_timeout_seconds,
        )

        app.state.engine = engine
        app.state.session_factory = session_factory
        app.state.http_client = http_client
        app.state.token_manager = token_manager
        app.state.api_client = api_client

        if not settings.bling_client_id or not settings.bling_client_secret:
            logger.warning("Bling credentials not configured, ERP sync will be skipped")

        logger.info("Application startup completed")

    @app.on_event("shutdown")
    async def shutdown_handler():
        """Close the shared HTTP client and dispose of the database engine."""
        logger.info("Starting graceful shutdown...")

        try:
            await app.state.http_client.aclose()
            await app.state.engine.dispose()
            logger.info("Graceful shutdown completed successfully")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}", exc_info=True)

    return app
