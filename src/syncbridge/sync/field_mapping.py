"""Field mappings between Outlook (Microsoft Graph) and Zoho CRM payloads.

Defines:
- to_zoho_datetime() / to_graph_datetime(): ISO 8601 normalisation per vendor
- zoho_event_to_graph_event() / zoho_events_to_batch_requests(): Zoho -> Outlook
- graph_event_to_zoho_event(): Outlook -> Zoho
- meeting_to_zoho_event() / task_to_zoho_task(): API request bodies -> Zoho records
- *_to_summary(): Zoho CRM records -> compact response dicts

All functions are pure; nothing here performs I/O.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from src.syncbridge.sync.schemas import CreateMeetingRequest, CreateTaskRequest

logger = structlog.get_logger(__name__)

GRAPH_EVENTS_PATH = "/me/calendar/events"

# Graph emits seven fractional digits ("2024-05-01T09:00:00.0000000"), which
# datetime.fromisoformat does not accept on every supported Python.
_ISO_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(?::\d{2})?)"
    r"(?:\.\d+)?"
    r"(?P<tz>Z|[+-]\d{2}:?\d{2})?$"
)


# ── Datetime Helpers ───────────────────────────────────────────────────────


def parse_iso_datetime(value: str | None) -> datetime | None:
    """Parse an ISO 8601 string into an aware datetime (naive means UTC)."""
    if not value or not isinstance(value, str):
        return None

    match = _ISO_RE.match(value.strip())
    if match is None:
        return None

    base = match.group("base").replace(" ", "T")
    if len(base) == 16:
        base += ":00"
    tz = match.group("tz")
    if tz is None or tz == "Z":
        tz = "+00:00"
    elif ":" not in tz:
        tz = f"{tz[:3]}:{tz[3:]}"

    try:
        return datetime.fromisoformat(base + tz)
    except ValueError:
        return None


def _zone(tz_name: str) -> ZoneInfo | timezone:
    if tz_name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError:
        logger.warning("field_mapping.unknown_timezone", timezone=tz_name)
        return timezone.utc


def to_zoho_datetime(value: str | None, tz_name: str = "UTC") -> str | None:
    """Format a timestamp the way Zoho CRM expects: 2024-05-01T09:00:00+05:30."""
    parsed = parse_iso_datetime(value)
    if parsed is None:
        logger.error("field_mapping.invalid_datetime", value=value)
        return None
    return parsed.astimezone(_zone(tz_name)).isoformat(timespec="seconds")


def to_graph_datetime(value: str | None) -> str | None:
    """Format a timestamp as naive UTC for a Graph dateTimeTimeZone with timeZone=UTC."""
    parsed = parse_iso_datetime(value)
    if parsed is None:
        logger.error("field_mapping.invalid_datetime", value=value)
        return None
    return parsed.astimezone(timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds")


# ── Zoho -> Outlook ────────────────────────────────────────────────────────


def _participant_email(participant: dict[str, Any]) -> str | None:
    email = participant.get("Email") or participant.get("email")
    if not email and participant.get("type") == "email":
        email = participant.get("participant")
    return email or None


def zoho_event_to_graph_event(event: dict[str, Any]) -> dict[str, Any] | None:
    """Convert a Zoho Events record into a Graph event resource.

    Returns None when either timestamp is missing or cannot be parsed.
    """
    start = to_graph_datetime(event.get("Start_DateTime"))
    end = to_graph_datetime(event.get("End_DateTime"))
    if start is None or end is None:
        logger.error(
            "field_mapping.zoho_event_invalid_datetime",
            event_id=event.get("id"),
            start=event.get("Start_DateTime"),
            end=event.get("End_DateTime"),
        )
        return None

    attendees = []
    for participant in event.get("Participants") or []:
        email = _participant_email(participant)
        if email:
            attendees.append({"emailAddress": {"address": email}, "type": "required"})

    return {
        "subject": event.get("Event_Title"),
        "start": {"dateTime": start, "timeZone": "UTC"},
        "end": {"dateTime": end, "timeZone": "UTC"},
        "location": {"displayName": event.get("Venue") or ""},
        "attendees": attendees,
    }


def zoho_events_to_batch_requests(events: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Build Graph $batch sub-requests (ids event1..eventN) for Zoho events.

    Events that cannot be converted are skipped; ids stay consecutive.
    """
    bodies = []
    for event in events:
        body = zoho_event_to_graph_event(event)
        if body is not None:
            bodies.append(body)

    return [
        {
            "id": f"event{index}",
            "method": "POST",
            "url": GRAPH_EVENTS_PATH,
            "body": body,
            "headers": {"Content-Type": "application/json"},
        }
        for index, body in enumerate(bodies, start=1)
    ]


# ── Outlook -> Zoho ────────────────────────────────────────────────────────


def graph_event_to_zoho_event(
    event: dict[str, Any],
    tz_name: str = "UTC",
) -> dict[str, Any] | None:
    """Convert a Graph event into a Zoho Events record.

    Returns None when subject, start or end is missing, or when either
    timestamp cannot be parsed.
    """
    start = (event.get("start") or {}).get("dateTime")
    end = (event.get("end") or {}).get("dateTime")
    if not event.get("subject") or not start or not end:
        logger.error(
            "field_mapping.graph_event_missing_fields",
            event_id=event.get("id"),
            subject=event.get("subject"),
        )
        return None

    start_dt = to_zoho_datetime(start, tz_name)
    end_dt = to_zoho_datetime(end, tz_name)
    if start_dt is None or end_dt is None:
        return None

    participants = []
    for attendee in event.get("attendees") or []:
        address = (attendee.get("emailAddress") or {}).get("address")
        if address:
            participants.append({"type": "email", "participant": address})

    return {
        "Event_Title": event["subject"],
        "Start_DateTime": start_dt,
        "End_DateTime": end_dt,
        "Venue": (event.get("location") or {}).get("displayName") or "N/A",
        "Description": event.get("bodyPreview") or "",
        "Participants": participants,
        "send_notification": True,
    }


# ── API Requests -> Zoho ───────────────────────────────────────────────────


def meeting_to_zoho_event(request: CreateMeetingRequest) -> dict[str, Any]:
    record: dict[str, Any] = {
        "Event_Title": request.subject,
        "Start_DateTime": request.start_datetime,
        "End_DateTime": request.end_datetime,
        "Venue": request.venue or "N/A",
        "Description": request.description or "",
        "Participants": request.participants or [],
    }
    if request.who_id is not None:
        record["Who_Id"] = {"id": request.who_id}
    return record


def task_to_zoho_task(request: CreateTaskRequest) -> dict[str, Any]:
    record: dict[str, Any] = {
        "Subject": request.subject,
        "Due_Date": request.due_date,
    }
    if request.who_id is not None:
        record["Who_Id"] = {"id": request.who_id}
    optional = {
        "Status": request.status,
        "Priority": request.priority,
        "Description": request.description,
    }
    record.update({key: value for key, value in optional.items() if value is not None})
    return record


# ── Zoho Records -> Summaries ──────────────────────────────────────────────


def _lookup(record: dict[str, Any], field: str, key: str) -> Any:
    value = record.get(field)
    return value.get(key) if isinstance(value, dict) else None


def _user_ref(record: dict[str, Any], field: str) -> dict[str, Any]:
    return {
        "id": _lookup(record, field, "id"),
        "name": _lookup(record, field, "name"),
        "email": _lookup(record, field, "email"),
    }


def activity_to_interaction(activity: dict[str, Any]) -> dict[str, Any]:
    return {
        "customer": _lookup(activity, "Who_Id", "name") or "Unknown Customer",
        "interaction": activity.get("Subject") or "No Subject",
        "date": activity.get("Created_Time") or "No Date",
        "status": activity.get("Status") or "No Status",
    }


def lead_to_summary(lead: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": lead.get("Full_Name"),
        "email": lead.get("Email"),
        "company": lead.get("Company"),
        "phone": lead.get("Phone"),
        "status": lead.get("Lead_Status"),
        "created_at": lead.get("Created_Time"),
    }


def campaign_to_summary(campaign: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": campaign.get("Campaign_Name"),
        "type": campaign.get("Type"),
        "status": campaign.get("Status"),
        "start_date": campaign.get("Start_Date"),
        "end_date": campaign.get("End_Date"),
        "expected_revenue": campaign.get("Expected_Revenue"),
        "actual_cost": campaign.get("Actual_Cost"),
        "budgeted_cost": campaign.get("Budgeted_Cost"),
        "created_at": campaign.get("Created_Time"),
    }


def deal_to_summary(deal: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": deal.get("id"),
        "deal_name": deal.get("Deal_Name"),
        "description": deal.get("Description"),
        "stage": deal.get("Stage"),
        "type": deal.get("Type"),
        "probability": deal.get("Probability"),
        "amount": deal.get("Amount"),
        "expected_revenue": deal.get("Expected_Revenue"),
        "closing_date": deal.get("Closing_Date"),
        "created_at": deal.get("Created_Time"),
        "modified_at": deal.get("Modified_Time"),
        "overall_sales_duration": deal.get("Overall_Sales_Duration"),
        "sales_cycle_duration": deal.get("Sales_Cycle_Duration"),
        "lead_source": deal.get("Lead_Source"),
        "next_step": deal.get("Next_Step"),
        "campaign_source": deal.get("Campaign_Source"),
        "reason_for_loss": deal.get("Reason_For_Loss__s"),
        "owner": _user_ref(deal, "Owner"),
        "account_name": _lookup(deal, "Account_Name", "name"),
        "account_id": _lookup(deal, "Account_Name", "id"),
        "created_by": _user_ref(deal, "Created_By"),
        "modified_by": _user_ref(deal, "Modified_By"),
        "approval_state": deal.get("$approval_state"),
        "is_editable": deal.get("$editable"),
        "layout_id": _lookup(deal, "$layout_id", "id"),
        "layout_name": _lookup(deal, "$layout_id", "name"),
    }


def contact_to_summary(contact: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": contact.get("id"),
        "full_name": contact.get("Full_Name"),
        "email": contact.get("Email"),
        "phone": contact.get("Phone"),
        "mobile": contact.get("Mobile"),
        "title": contact.get("Title"),
        "department": contact.get("Department"),
        "mailing_address": {
            "street": contact.get("Mailing_Street"),
            "city": contact.get("Mailing_City"),
            "state": contact.get("Mailing_State"),
            "zip": contact.get("Mailing_Zip"),
            "country": contact.get("Mailing_Country"),
        },
        "created_at": contact.get("Created_Time"),
    }
