"""Status endpoints.

Provides the landing page (/), the API smoke check (/test-api), and a
liveness check (/health). None of them call a vendor.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

from src.syncbridge.config import get_settings

router = APIRouter(tags=["health"])

_INDEX_HTML = (
    "<h1>Zoho CRM Task Automation</h1>"
    '<p>Check API status <a href="/test-api">here</a>.</p>'
)


@router.get("/", response_class=HTMLResponse)
async def index() -> str:
    return _INDEX_HTML


@router.get("/test-api")
async def test_api():
    """Static confirmation that the service is up."""
    return {"message": "Zoho CRM API is working!"}


@router.get("/health")
async def health_check():
    """Basic liveness check.

    No external dependencies are checked -- just that the server is running.
    """
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}
