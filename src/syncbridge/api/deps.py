"""FastAPI dependency injection for the vendor clients and sync engine.

Clients are created once in the application lifespan and stored on
app.state; endpoints resolve them here and answer 503 when one is missing.
"""

from __future__ import annotations

import httpx
import structlog
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from src.syncbridge.services.graph import GraphCalendarClient
from src.syncbridge.services.oauth import TokenRefreshError
from src.syncbridge.services.zoho import ZohoCRMClient
from src.syncbridge.sync.engine import SyncEngine

logger = structlog.get_logger(__name__)


class ZohoAuthenticationError(Exception):
    """A Zoho access token could not be obtained for a CRM route."""


def _from_state(request: Request, name: str, label: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return value


def get_zoho_client(request: Request) -> ZohoCRMClient:
    return _from_state(request, "zoho_client", "Zoho CRM client")


def get_graph_client(request: Request) -> GraphCalendarClient:
    return _from_state(request, "graph_client", "Microsoft Graph client")


def get_sync_engine(request: Request) -> SyncEngine:
    return _from_state(request, "sync_engine", "Sync engine")


async def ensure_zoho_token(zoho: ZohoCRMClient = Depends(get_zoho_client)) -> ZohoCRMClient:
    """Make sure a Zoho token has been acquired before the route runs."""
    tokens = zoho.token_manager
    if not tokens.has_token:
        try:
            await tokens.get_access_token()
        except (TokenRefreshError, httpx.HTTPError) as exc:
            logger.error("zoho.authentication_failed", error=str(exc))
            raise ZohoAuthenticationError() from exc
    return zoho


def register_exception_handlers(app: FastAPI) -> None:
    """Attach handlers for errors raised from dependencies."""

    @app.exception_handler(ZohoAuthenticationError)
    async def zoho_auth_error_handler(request: Request, exc: ZohoAuthenticationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to authenticate with Zoho CRM"},
        )
