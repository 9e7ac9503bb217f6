"""Async client for the Microsoft Graph calendar API (Outlook).

Reads the signed-in user's events and creates events in bulk through the
$batch endpoint, which accepts at most 20 sub-requests per call.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.syncbridge.config import Settings
from src.syncbridge.services.base import VendorClient
from src.syncbridge.services.oauth import OAuthTokenManager
from src.syncbridge.sync.field_mapping import zoho_events_to_batch_requests
from src.syncbridge.sync.schemas import BatchResult

logger = structlog.get_logger(__name__)


class GraphCalendarClient(VendorClient):
    """Microsoft Graph client for calendar events.

    Args:
        token_manager: Microsoft token manager.
        api_base: Graph root, e.g. https://graph.microsoft.com/v1.0.
        batch_size: Sub-requests per $batch call.
        max_pages: @odata.nextLink pages to follow when listing events.
    """

    vendor = "microsoft"

    def __init__(
        self,
        token_manager: OAuthTokenManager,
        api_base: str,
        *,
        batch_size: int = 20,
        max_pages: int = 1,
        **kwargs: Any,
    ) -> None:
        super().__init__(token_manager, api_base, **kwargs)
        self._batch_size = max(1, min(batch_size, 20))
        self._max_pages = max(1, max_pages)

    def _extra_headers(self) -> dict[str, str]:
        # Ask Graph for UTC so start/end dateTime values carry no local zone
        return {"Prefer": 'outlook.timezone="UTC"'}

    async def list_events(self) -> list[dict[str, Any]]:
        """Fetch the user's events, following nextLink up to max_pages pages."""
        events: list[dict[str, Any]] = []
        next_link: str | None = "/me/events"
        pages = 0

        while next_link and pages < self._max_pages:
            response = await self._request("GET", next_link, "list_events")
            payload = response.json()
            events.extend(payload.get("value", []))
            next_link = payload.get("@odata.nextLink")
            pages += 1

        logger.info("graph.events_listed", count=len(events), pages=pages)
        return events

    async def create_events(self, events: list[dict[str, Any]]) -> list[BatchResult]:
        """Create Zoho events in Outlook using chunked $batch requests.

        Args:
            events: Zoho Events records.

        Returns:
            One BatchResult per $batch call, listing sub-requests that failed.
        """
        if not events:
            return []

        requests = zoho_events_to_batch_requests(events)
        if len(requests) < len(events):
            logger.warning("graph.events_skipped", skipped=len(events) - len(requests))
        results: list[BatchResult] = []

        for offset in range(0, len(requests), self._batch_size):
            chunk = requests[offset : offset + self._batch_size]
            batch_number = offset // self._batch_size + 1

            response = await self._request(
                "POST",
                "/$batch",
                "create_events_batch",
                json={"requests": chunk},
            )
            result = self._batch_result(batch_number, chunk, response.json())
            results.append(result)

            if result.failed_ids:
                logger.warning(
                    "graph.batch_partially_failed",
                    batch=batch_number,
                    failed_ids=result.failed_ids,
                )
            logger.info(
                "graph.batch_synced",
                batch=batch_number,
                submitted=len(chunk),
                succeeded=result.succeeded,
            )

        return results

    @staticmethod
    def _batch_result(
        batch_number: int,
        chunk: list[dict[str, Any]],
        payload: dict[str, Any],
    ) -> BatchResult:
        failed = [
            str(item.get("id"))
            for item in payload.get("responses", [])
            if int(item.get("status", 0)) >= 400
        ]
        return BatchResult(
            batch_number=batch_number,
            request_ids=[request["id"] for request in chunk],
            failed_ids=sorted(failed),
        )


def build_graph_client(settings: Settings, token_manager: OAuthTokenManager) -> GraphCalendarClient:
    return GraphCalendarClient(
        token_manager,
        settings.GRAPH_API_BASE,
        batch_size=settings.GRAPH_BATCH_SIZE,
        max_pages=settings.GRAPH_MAX_PAGES,
        timeout=settings.HTTP_TIMEOUT,
        retry_attempts=settings.RETRY_MAX_ATTEMPTS,
        retry_base_delay=settings.RETRY_BASE_DELAY,
        retry_max_delay=settings.RETRY_MAX_DELAY,
    )
