"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
lifespan wiring of the vendor clients, and the v1 API router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.syncbridge.config import get_settings
from src.syncbridge.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.syncbridge.api.deps import register_exception_handlers
from src.syncbridge.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.syncbridge.api.v1.router import router as v1_router
from src.syncbridge.services.graph import build_graph_client
from src.syncbridge.services.oauth import build_microsoft_token_manager, build_zoho_token_manager
from src.syncbridge.services.zoho import build_zoho_client
from src.syncbridge.sync.engine import SyncEngine


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: configure logging and Sentry, wire vendor clients."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()

    # Initialize Sentry if DSN is configured
    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    # Tokens are fetched lazily on first use; nothing here talks to a vendor.
    microsoft_tokens = build_microsoft_token_manager(settings)
    zoho_tokens = build_zoho_token_manager(settings)
    graph_client = build_graph_client(settings, microsoft_tokens)
    zoho_client = build_zoho_client(settings, zoho_tokens)

    app.state.microsoft_tokens = microsoft_tokens
    app.state.zoho_tokens = zoho_tokens
    app.state.graph_client = graph_client
    app.state.zoho_client = zoho_client
    app.state.sync_engine = SyncEngine(
        zoho=zoho_client,
        graph=graph_client,
        zoho_timezone=settings.ZOHO_TIMEZONE,
    )

    log.info(
        "app.started",
        environment=settings.ENVIRONMENT.value,
        zoho_api_base=settings.ZOHO_API_BASE,
        graph_api_base=settings.GRAPH_API_BASE,
    )

    yield

    log.info("app.stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Calendar CRM Bridge",
        version="0.1.0",
        description="Syncs calendar events and CRM records between Outlook and Zoho CRM",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    register_exception_handlers(app)
    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("src.syncbridge.main:app", host="0.0.0.0", port=get_settings().PORT)
