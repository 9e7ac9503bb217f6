"""Async client for the Zoho CRM v2 REST API.

Zoho answers list calls that match nothing with HTTP 204 and an empty
body; those are returned as empty lists.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.syncbridge.config import Settings
from src.syncbridge.services.base import VendorClient
from src.syncbridge.services.oauth import OAuthTokenManager

logger = structlog.get_logger(__name__)


class ZohoCRMClient(VendorClient):
    """Zoho CRM client for module records (Events, Tasks, Leads, ...).

    Args:
        token_manager: Zoho token manager.
        api_base: Zoho API root, e.g. https://www.zohoapis.in.
    """

    vendor = "zoho"
    auth_scheme = "Zoho-oauthtoken"

    def _module_path(self, module: str, record_id: str | None = None) -> str:
        path = f"/crm/v2/{module}"
        return f"{path}/{record_id}" if record_id else path

    async def list_records(
        self,
        module: str,
        *,
        sort_by: str | None = "Created_Time",
        sort_order: str | None = "desc",
        per_page: int | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch one page of records from a CRM module."""
        params: dict[str, Any] = {}
        if sort_by:
            params["sort_by"] = sort_by
        if sort_order:
            params["sort_order"] = sort_order
        if per_page:
            params["per_page"] = per_page

        response = await self._request(
            "GET",
            self._module_path(module),
            f"list_{module.lower()}",
            params=params or None,
        )
        if response.status_code == 204 or not response.content:
            records: list[dict[str, Any]] = []
        else:
            records = response.json().get("data") or []

        logger.info("zoho.records_listed", module=module, count=len(records))
        return records

    async def list_events(self) -> list[dict[str, Any]]:
        return await self.list_records("Events", sort_by=None, sort_order=None)

    async def list_activities(self) -> list[dict[str, Any]]:
        return await self.list_records("Activities", sort_by=None, sort_order=None)

    async def create_records(self, module: str, records: list[dict[str, Any]]) -> dict[str, Any]:
        """Insert records into a module and return Zoho's raw response."""
        response = await self._request(
            "POST",
            self._module_path(module),
            f"create_{module.lower()}",
            json={"data": records},
        )
        payload = response.json()
        logger.info(
            "zoho.records_created",
            module=module,
            count=len(records),
            status=self.first_status(payload),
        )
        return payload

    async def create_event(self, record: dict[str, Any]) -> dict[str, Any]:
        return await self.create_records("Events", [record])

    async def create_task(self, record: dict[str, Any]) -> dict[str, Any]:
        return await self.create_records("Tasks", [record])

    async def update_record(
        self,
        module: str,
        record_id: str,
        data: dict[str, Any],
    ) -> dict[str, Any]:
        """Update one record by id and return Zoho's raw response."""
        response = await self._request(
            "PUT",
            self._module_path(module, record_id),
            f"update_{module.lower()}",
            json={"data": [data]},
        )
        logger.info("zoho.record_updated", module=module, record_id=record_id)
        return response.json()

    @staticmethod
    def first_status(payload: dict[str, Any]) -> str | None:
        """Status of the first entry in a Zoho write response ("success", "error")."""
        data = payload.get("data") or []
        if data and isinstance(data[0], dict):
            return data[0].get("status")
        return None


def build_zoho_client(settings: Settings, token_manager: OAuthTokenManager) -> ZohoCRMClient:
    return ZohoCRMClient(
        token_manager,
        settings.ZOHO_API_BASE,
        timeout=settings.HTTP_TIMEOUT,
        retry_attempts=settings.RETRY_MAX_ATTEMPTS,
        retry_base_delay=settings.RETRY_BASE_DELAY,
        retry_max_delay=settings.RETRY_MAX_DELAY,
    )
