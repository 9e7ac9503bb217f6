"""REST API endpoints for Zoho CRM records.

Provides meeting and task creation, the customer interaction summary,
listings of the latest leads, campaigns, deals and contacts, and contact
updates. Records are reshaped in src/syncbridge/sync/field_mapping.py.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import JSONResponse

from src.syncbridge.api.deps import ensure_zoho_token, get_sync_engine, get_zoho_client
from src.syncbridge.services.oauth import TokenRefreshError
from src.syncbridge.services.zoho import ZohoCRMClient
from src.syncbridge.sync.engine import MeetingCreationError, SyncEngine
from src.syncbridge.sync.field_mapping import (
    activity_to_interaction,
    campaign_to_summary,
    contact_to_summary,
    deal_to_summary,
    lead_to_summary,
    task_to_zoho_task,
)
from src.syncbridge.sync.schemas import (
    CampaignsResponse,
    ContactsResponse,
    CreateMeetingRequest,
    CreateTaskRequest,
    CustomerSummaryResponse,
    DealsResponse,
    LeadsResponse,
    MeetingResponse,
    TaskResponse,
    UpdateResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["crm"])

VENDOR_ERRORS = (httpx.HTTPError, TokenRefreshError)


def _error(content: dict[str, Any], status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content)


# ── Meetings & Tasks ─────────────────────────────────────────────────────────


@router.post("/create-meeting")
async def create_meeting(
    body: CreateMeetingRequest | None = Body(default=None),
    _: ZohoCRMClient = Depends(ensure_zoho_token),
    engine: SyncEngine = Depends(get_sync_engine),
):
    """Create a meeting in Zoho CRM Events."""
    if body is None or not body.is_complete():
        return _error(
            {"success": False, "error": "Event Title, Start DateTime, and End DateTime are required."},
            status.HTTP_400_BAD_REQUEST,
        )

    try:
        entry = await engine.create_meeting(body)
    except MeetingCreationError as exc:
        return _error({"success": False, "error": str(exc)})
    except VENDOR_ERRORS as exc:
        logger.error("api.create_meeting_failed", error=str(exc))
        return _error({"success": False, "error": str(exc) or "Failed to create the event."})

    return MeetingResponse(event_response=entry).model_dump(by_alias=True)


@router.post("/create-task")
async def create_task(
    body: CreateTaskRequest | None = Body(default=None),
    zoho: ZohoCRMClient = Depends(ensure_zoho_token),
):
    """Create a task in Zoho CRM Tasks and return Zoho's raw response."""
    if body is None or not body.is_complete():
        return _error(
            {"success": False, "error": "Subject and Due Date are required."},
            status.HTTP_400_BAD_REQUEST,
        )

    try:
        response = await zoho.create_task(task_to_zoho_task(body))
    except VENDOR_ERRORS as exc:
        logger.error("api.create_task_failed", error=str(exc))
        return _error({"success": False, "error": str(exc)})

    return TaskResponse(task_response=response).model_dump(by_alias=True)


# ── Summaries ────────────────────────────────────────────────────────────────


@router.get("/customer-summary")
async def customer_summary(zoho: ZohoCRMClient = Depends(ensure_zoho_token)):
    """Summarise recent Zoho activities per customer."""
    try:
        activities = await zoho.list_activities()
    except VENDOR_ERRORS as exc:
        logger.error("api.customer_summary_failed", error=str(exc))
        return _error({"error": str(exc)})

    summary = [activity_to_interaction(activity) for activity in activities]
    return CustomerSummaryResponse(summary=summary).model_dump()


@router.get("/zoho-leads")
async def zoho_leads(
    per_page: int | None = Query(default=None, ge=1, le=200),
    zoho: ZohoCRMClient = Depends(get_zoho_client),
):
    """Latest leads, newest first."""
    try:
        leads = await zoho.list_records("Leads", per_page=per_page or 5)
    except VENDOR_ERRORS as exc:
        logger.error("api.list_leads_failed", error=str(exc))
        return _error({"error": "Failed to fetch leads from Zoho"})

    return LeadsResponse(leads=[lead_to_summary(lead) for lead in leads]).model_dump()


@router.get("/zoho-campaigns")
async def zoho_campaigns(
    per_page: int | None = Query(default=None, ge=1, le=200),
    zoho: ZohoCRMClient = Depends(get_zoho_client),
):
    """Latest campaigns, newest first."""
    try:
        campaigns = await zoho.list_records("Campaigns", per_page=per_page or 5)
    except VENDOR_ERRORS as exc:
        logger.error("api.list_campaigns_failed", error=str(exc))
        return _error({"error": "Failed to fetch campaigns from Zoho"})

    return CampaignsResponse(campaigns=[campaign_to_summary(c) for c in campaigns]).model_dump()


@router.get("/zoho-deals")
async def zoho_deals(
    per_page: int | None = Query(default=None, ge=1, le=200),
    zoho: ZohoCRMClient = Depends(get_zoho_client),
):
    """Latest deals with owner, account and layout details."""
    try:
        deals = await zoho.list_records("Deals", per_page=per_page or 5)
    except VENDOR_ERRORS as exc:
        logger.error("api.list_deals_failed", error=str(exc))
        return _error({"error": "Failed to fetch deals from Zoho"})

    return DealsResponse(deals=[deal_to_summary(deal) for deal in deals]).model_dump()


@router.get("/zoho-contacts")
async def zoho_contacts(
    per_page: int | None = Query(default=None, ge=1, le=200),
    zoho: ZohoCRMClient = Depends(get_zoho_client),
):
    """Latest contacts with their mailing address."""
    try:
        contacts = await zoho.list_records("Contacts", per_page=per_page or 10)
    except VENDOR_ERRORS as exc:
        logger.error("api.list_contacts_failed", error=str(exc))
        return _error({"error": "Failed to fetch contacts from Zoho"})

    return ContactsResponse(contacts=[contact_to_summary(c) for c in contacts]).model_dump()


# ── Updates ──────────────────────────────────────────────────────────────────


@router.put("/update-zoho-contacts/{record_id}")
async def update_zoho_contact(
    record_id: str,
    data: dict[str, Any] = Body(...),
    zoho: ZohoCRMClient = Depends(get_zoho_client),
):
    """Apply a raw field update to one contact."""
    try:
        result = await zoho.update_record("Contacts", record_id, data)
    except VENDOR_ERRORS as exc:
        logger.error("api.update_contact_failed", record_id=record_id, error=str(exc))
        return _error({"error": "Failed to update contact"})

    return UpdateResponse(result=result).model_dump()
