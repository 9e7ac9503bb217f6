"""Pydantic schemas for sync results and CRM request/response bodies.

Request field names follow the public API (camelCase plus Zoho's Who_Id);
Python attribute names are snake_case and mapped through aliases.
CRM record summaries are relayed as plain dicts because Zoho decides the
value types.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ── Sync ────────────────────────────────────────────────────────────────────


class BatchResult(BaseModel):
    """Outcome of one Graph $batch call."""

    batch_number: int
    request_ids: list[str] = Field(default_factory=list)
    failed_ids: list[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.request_ids) - len(self.failed_ids)


class SyncSummary(BaseModel):
    """Result of a Zoho -> Outlook sync run."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    synced_events: list[dict[str, Any]] = Field(default_factory=list, alias="syncedEvents")
    batches: list[BatchResult] = Field(default_factory=list)


# ── CRM Requests ────────────────────────────────────────────────────────────


class CreateMeetingRequest(BaseModel):
    """Request body for creating a Zoho CRM meeting.

    Required fields are checked by the endpoint so that a missing value
    yields the API's 400 error body rather than a validation error.
    """

    model_config = ConfigDict(populate_by_name=True)

    subject: str | None = None
    start_datetime: str | None = Field(default=None, alias="startDateTime")
    end_datetime: str | None = Field(default=None, alias="endDateTime")
    venue: str | None = None
    description: str | None = None
    participants: list[dict[str, Any]] | None = None
    who_id: str | int | None = Field(default=None, alias="Who_Id")

    def is_complete(self) -> bool:
        return bool(self.subject and self.start_datetime and self.end_datetime)


class CreateTaskRequest(BaseModel):
    """Request body for creating a Zoho CRM task."""

    model_config = ConfigDict(populate_by_name=True)

    subject: str | None = None
    due_date: str | None = Field(default=None, alias="dueDate")
    status: str | None = None
    priority: str | None = None
    description: str | None = None
    who_id: str | int | None = Field(default=None, alias="Who_Id")

    def is_complete(self) -> bool:
        return bool(self.subject and self.due_date)


# ── CRM Responses ───────────────────────────────────────────────────────────


class MeetingResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    event_response: dict[str, Any] = Field(alias="eventResponse")


class TaskResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    task_response: dict[str, Any] = Field(alias="taskResponse")


class UpdateResponse(BaseModel):
    success: bool = True
    result: dict[str, Any] = Field(default_factory=dict)


class CustomerSummaryResponse(BaseModel):
    summary: list[dict[str, Any]] = Field(default_factory=list)


class LeadsResponse(BaseModel):
    leads: list[dict[str, Any]] = Field(default_factory=list)


class CampaignsResponse(BaseModel):
    campaigns: list[dict[str, Any]] = Field(default_factory=list)


class DealsResponse(BaseModel):
    deals: list[dict[str, Any]] = Field(default_factory=list)


class ContactsResponse(BaseModel):
    contacts: list[dict[str, Any]] = Field(default_factory=list)
