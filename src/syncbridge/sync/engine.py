"""Event sync between Outlook and Zoho CRM.

Each run is a one-shot fetch -> remap -> push. There is no change
tracking: every run relays whatever the source currently returns, and the
target may end up with duplicates if the same run is repeated.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.syncbridge.services.base import upstream_error_body
from src.syncbridge.services.graph import GraphCalendarClient
from src.syncbridge.services.oauth import TokenRefreshError
from src.syncbridge.services.zoho import ZohoCRMClient
from src.syncbridge.sync.field_mapping import graph_event_to_zoho_event, meeting_to_zoho_event
from src.syncbridge.sync.schemas import CreateMeetingRequest, SyncSummary

logger = structlog.get_logger(__name__)


class MeetingCreationError(Exception):
    """Zoho accepted the request but did not report the meeting as created."""

    def __init__(self, response: dict[str, Any]) -> None:
        self.response = response
        super().__init__("Failed to create the event in Zoho CRM.")


class SyncEngine:
    """Moves calendar events between Outlook and Zoho CRM.

    Args:
        zoho: Zoho CRM client.
        graph: Microsoft Graph calendar client.
        zoho_timezone: Zone used for the offset written into Zoho datetimes.
    """

    def __init__(
        self,
        zoho: ZohoCRMClient,
        graph: GraphCalendarClient,
        zoho_timezone: str = "UTC",
    ) -> None:
        self._zoho = zoho
        self._graph = graph
        self._zoho_timezone = zoho_timezone

    async def sync_outlook_to_zoho(self) -> list[dict[str, Any]]:
        """Copy every listed Outlook event into Zoho Events.

        Events that cannot be mapped or that Zoho rejects are logged and
        skipped; the remaining ones are still created.

        Returns:
            The Zoho records that were created.
        """
        logger.info("sync.outlook_to_zoho_started")
        events = await self._graph.list_events()

        created: list[dict[str, Any]] = []
        for event in events:
            record = graph_event_to_zoho_event(event, self._zoho_timezone)
            if record is None:
                continue
            try:
                await self._zoho.create_event(record)
            except (httpx.HTTPError, TokenRefreshError) as exc:
                logger.error(
                    "sync.zoho_event_create_failed",
                    event_id=event.get("id"),
                    error=upstream_error_body(exc),
                )
                continue
            created.append(record)

        logger.info(
            "sync.outlook_to_zoho_completed",
            fetched=len(events),
            created=len(created),
        )
        return created

    async def sync_zoho_to_outlook(self) -> SyncSummary:
        """Copy every listed Zoho event into the Outlook calendar in batches."""
        try:
            logger.info("sync.zoho_to_outlook_started")
            events = await self._zoho.list_events()
            if not events:
                logger.info("sync.no_zoho_events")
                return SyncSummary(success=True, message="No new events found.", synced_events=[])

            logger.info("sync.zoho_events_found", count=len(events))
            batches = await self._graph.create_events(events)

            logger.info("sync.zoho_to_outlook_completed", batches=len(batches))
            return SyncSummary(
                success=True,
                message="Sync completed",
                synced_events=events,
                batches=batches,
            )
        except (httpx.HTTPError, TokenRefreshError) as exc:
            logger.error("sync.zoho_to_outlook_failed", error=upstream_error_body(exc))
            raise

    async def create_meeting(self, request: CreateMeetingRequest) -> dict[str, Any]:
        """Create a meeting in Zoho Events.

        Returns:
            The first entry of Zoho's response data (code, details, status).

        Raises:
            MeetingCreationError: Zoho did not report status "success".
        """
        response = await self._zoho.create_event(meeting_to_zoho_event(request))
        if ZohoCRMClient.first_status(response) != "success":
            logger.error("sync.meeting_not_created", response=response)
            raise MeetingCreationError(response)
        return response["data"][0]
