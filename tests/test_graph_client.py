"""Unit tests for GraphCalendarClient with a mocked Graph API.

httpx.AsyncClient.request is patched; tokens come from FakeTokenManager.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.syncbridge.services.graph import GraphCalendarClient
from src.syncbridge.services.oauth import TokenRefreshError


def _graph_response(status_code: int = 200, payload: dict | None = None, method: str = "GET") -> httpx.Response:
    return httpx.Response(
        status_code,
        json=payload if payload is not None else {},
        request=httpx.Request(method, "https://graph.test/v1.0"),
    )


def _zoho_event(n: int) -> dict:
    return {
        "Event_Title": f"Meeting {n}",
        "Start_DateTime": "2024-05-01T09:00:00+05:30",
        "End_DateTime": "2024-05-01T10:00:00+05:30",
    }


def _batch_payload(ids: list[str], failed: tuple[str, ...] = ()) -> dict:
    return {
        "responses": [
            {"id": request_id, "status": 400 if request_id in failed else 201, "body": {}}
            for request_id in ids
        ]
    }


# ── Listing ─────────────────────────────────────────────────────────────────


class TestListEvents:
    @pytest.mark.asyncio
    async def test_list_events_sends_bearer_and_utc_preference(self, graph_client):
        mock_request = AsyncMock(
            return_value=_graph_response(payload={"value": [{"id": "AAA", "subject": "Sync"}]})
        )

        with patch("httpx.AsyncClient.request", mock_request):
            events = await graph_client.list_events()

        assert events == [{"id": "AAA", "subject": "Sync"}]
        method, url = mock_request.await_args.args
        headers = mock_request.await_args.kwargs["headers"]
        assert method == "GET"
        assert url == "https://graph.test/v1.0/me/events"
        assert headers["Authorization"] == "Bearer test-token"
        assert headers["Prefer"] == 'outlook.timezone="UTC"'

    @pytest.mark.asyncio
    async def test_next_link_not_followed_by_default(self, graph_client):
        mock_request = AsyncMock(
            return_value=_graph_response(
                payload={
                    "value": [{"id": "A"}],
                    "@odata.nextLink": "https://graph.test/v1.0/me/events?$skip=10",
                }
            )
        )

        with patch("httpx.AsyncClient.request", mock_request):
            events = await graph_client.list_events()

        assert [e["id"] for e in events] == ["A"]
        assert mock_request.await_count == 1

    @pytest.mark.asyncio
    async def test_next_link_followed_up_to_max_pages(self, fake_tokens):
        client = GraphCalendarClient(fake_tokens, "https://graph.test/v1.0", max_pages=2, retry_attempts=1)
        next_link = "https://graph.test/v1.0/me/events?$skip=10"
        mock_request = AsyncMock(
            side_effect=[
                _graph_response(payload={"value": [{"id": "A"}], "@odata.nextLink": next_link}),
                _graph_response(payload={"value": [{"id": "B"}], "@odata.nextLink": next_link + "0"}),
            ]
        )

        with patch("httpx.AsyncClient.request", mock_request):
            events = await client.list_events()

        assert [e["id"] for e in events] == ["A", "B"]
        assert mock_request.await_args_list[1].args[1] == next_link

    @pytest.mark.asyncio
    async def test_http_error_raises(self, graph_client):
        mock_request = AsyncMock(
            return_value=_graph_response(500, payload={"error": {"code": "InternalServerError"}})
        )

        with patch("httpx.AsyncClient.request", mock_request):
            with pytest.raises(httpx.HTTPStatusError):
                await graph_client.list_events()

    @pytest.mark.asyncio
    async def test_unauthorized_invalidates_token_and_replays_once(self, graph_client, fake_tokens):
        mock_request = AsyncMock(
            side_effect=[
                _graph_response(401, payload={"error": {"code": "InvalidAuthenticationToken"}}),
                _graph_response(payload={"value": []}),
            ]
        )

        with patch("httpx.AsyncClient.request", mock_request):
            events = await graph_client.list_events()

        assert events == []
        assert fake_tokens.invalidated == 1
        assert fake_tokens.calls == 2
        assert mock_request.await_count == 2

    @pytest.mark.asyncio
    async def test_unauthorized_is_not_retried_with_the_same_token(self, fake_tokens):
        client = GraphCalendarClient(fake_tokens, "https://graph.test/v1.0", retry_attempts=5, retry_base_delay=0)
        mock_request = AsyncMock(
            return_value=_graph_response(401, payload={"error": {"code": "InvalidAuthenticationToken"}})
        )

        with patch("httpx.AsyncClient.request", mock_request):
            with pytest.raises(httpx.HTTPStatusError) as exc_info:
                await client.list_events()

        assert exc_info.value.response.status_code == 401
        assert mock_request.await_count == 2
        assert fake_tokens.invalidated == 1
        assert fake_tokens.calls == 2

    @pytest.mark.asyncio
    async def test_token_failure_sends_no_request(self, fake_tokens):
        fake_tokens.error = TokenRefreshError("microsoft", "invalid_grant")
        client = GraphCalendarClient(fake_tokens, "https://graph.test/v1.0", retry_attempts=5)
        mock_request = AsyncMock()

        with patch("httpx.AsyncClient.request", mock_request):
            with pytest.raises(TokenRefreshError):
                await client.list_events()

        assert fake_tokens.calls == 1
        mock_request.assert_not_awaited()


# ── Batch Creation ──────────────────────────────────────────────────────────


class TestCreateEvents:
    @pytest.mark.asyncio
    async def test_empty_input_makes_no_request(self, graph_client):
        mock_request = AsyncMock()

        with patch("httpx.AsyncClient.request", mock_request):
            assert await graph_client.create_events([]) == []

        mock_request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_batches_split_at_twenty(self, graph_client):
        events = [_zoho_event(n) for n in range(1, 46)]
        mock_request = AsyncMock(
            side_effect=[
                _graph_response(payload=_batch_payload([f"event{i}" for i in range(1, 21)]), method="POST"),
                _graph_response(payload=_batch_payload([f"event{i}" for i in range(21, 41)]), method="POST"),
                _graph_response(payload=_batch_payload([f"event{i}" for i in range(41, 46)]), method="POST"),
            ]
        )

        with patch("httpx.AsyncClient.request", mock_request):
            results = await graph_client.create_events(events)

        assert [r.batch_number for r in results] == [1, 2, 3]
        assert [len(r.request_ids) for r in results] == [20, 20, 5]
        assert all(r.failed_ids == [] for r in results)

        sizes = []
        for call in mock_request.await_args_list:
            method, url = call.args
            assert method == "POST"
            assert url == "https://graph.test/v1.0/$batch"
            sizes.append(len(call.kwargs["json"]["requests"]))
        assert sizes == [20, 20, 5]

        first_request = mock_request.await_args_list[0].kwargs["json"]["requests"][0]
        assert first_request["id"] == "event1"
        assert first_request["url"] == "/me/calendar/events"
        assert first_request["body"]["start"] == {"dateTime": "2024-05-01T03:30:00", "timeZone": "UTC"}

    @pytest.mark.asyncio
    async def test_failed_sub_requests_are_reported(self, graph_client):
        events = [_zoho_event(n) for n in range(1, 4)]
        mock_request = AsyncMock(
            return_value=_graph_response(
                payload=_batch_payload(["event1", "event2", "event3"], failed=("event2",)),
                method="POST",
            )
        )

        with patch("httpx.AsyncClient.request", mock_request):
            results = await graph_client.create_events(events)

        assert len(results) == 1
        assert results[0].failed_ids == ["event2"]
        assert results[0].succeeded == 2

    @pytest.mark.asyncio
    async def test_batch_size_is_clamped_to_graph_limit(self, fake_tokens):
        client = GraphCalendarClient(fake_tokens, "https://graph.test/v1.0", batch_size=50, retry_attempts=1)
        events = [_zoho_event(n) for n in range(1, 22)]
        mock_request = AsyncMock(return_value=_graph_response(payload={"responses": []}, method="POST"))

        with patch("httpx.AsyncClient.request", mock_request):
            results = await client.create_events(events)

        assert len(results) == 2
        assert mock_request.await_count == 2

    @pytest.mark.asyncio
    async def test_events_with_unparseable_dates_are_skipped(self, graph_client):
        events = [
            _zoho_event(1),
            {"Event_Title": "Broken", "Start_DateTime": "next tuesday", "End_DateTime": "2024-05-01T10:00:00Z"},
            {"Event_Title": "No dates"},
            _zoho_event(4),
        ]
        mock_request = AsyncMock(
            return_value=_graph_response(payload=_batch_payload(["event1", "event2"]), method="POST")
        )

        with patch("httpx.AsyncClient.request", mock_request):
            results = await graph_client.create_events(events)

        assert results[0].request_ids == ["event1", "event2"]
        sent = mock_request.await_args.kwargs["json"]["requests"]
        assert [request["body"]["subject"] for request in sent] == ["Meeting 1", "Meeting 4"]
        assert all(request["body"]["start"]["dateTime"] is not None for request in sent)

    @pytest.mark.asyncio
    async def test_all_events_skipped_makes_no_request(self, graph_client):
        mock_request = AsyncMock()

        with patch("httpx.AsyncClient.request", mock_request):
            assert await graph_client.create_events([{"Event_Title": "No dates"}]) == []

        mock_request.assert_not_awaited()
