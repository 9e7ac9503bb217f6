"""Calendar sync endpoints.

Each call runs one sync pass in the request. Vendor failures are answered
with 500 and the upstream error body so the caller can see what Zoho or
Graph rejected.
"""

from __future__ import annotations

import httpx
import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from src.syncbridge.api.deps import get_sync_engine
from src.syncbridge.services.base import upstream_error_body
from src.syncbridge.services.oauth import TokenRefreshError
from src.syncbridge.sync.engine import SyncEngine

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["sync"])


def _sync_error(exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": upstream_error_body(exc)},
    )


@router.get("/sync-and-return-events")
async def sync_and_return_events(engine: SyncEngine = Depends(get_sync_engine)):
    """Copy Outlook events into Zoho CRM and return the created records."""
    try:
        return await engine.sync_outlook_to_zoho()
    except (httpx.HTTPError, TokenRefreshError) as exc:
        logger.error("api.outlook_to_zoho_failed", error=str(exc))
        return _sync_error(exc)


@router.get("/sync-zoho-to-outlook")
async def sync_zoho_to_outlook(engine: SyncEngine = Depends(get_sync_engine)):
    """Copy Zoho CRM events into the Outlook calendar."""
    try:
        summary = await engine.sync_zoho_to_outlook()
    except (httpx.HTTPError, TokenRefreshError) as exc:
        return _sync_error(exc)
    return summary.model_dump(by_alias=True)
