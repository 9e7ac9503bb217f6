"""Unit tests for the Microsoft and Zoho OAuth token managers.

The token endpoint is mocked by patching httpx.AsyncClient.post; time is
driven through an injected clock.
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.syncbridge.config import Settings
from src.syncbridge.services.oauth import (
    MicrosoftTokenManager,
    TokenRefreshError,
    ZohoTokenManager,
    build_microsoft_token_manager,
    build_zoho_token_manager,
)

TOKEN_URL = "https://accounts.test/oauth/v2/token"


def _token_response(status_code: int = 200, **payload) -> httpx.Response:
    return httpx.Response(
        status_code,
        json=payload,
        request=httpx.Request("POST", TOKEN_URL),
    )


@pytest.fixture
def zoho_tokens(clock):
    return ZohoTokenManager(
        TOKEN_URL,
        client_id="zoho-client",
        client_secret="zoho-secret",
        refresh_token="zoho-refresh",
        retry_base_delay=0,
        clock=clock,
    )


@pytest.fixture
def microsoft_tokens(clock):
    return MicrosoftTokenManager(
        TOKEN_URL,
        client_id="ms-client",
        client_secret="ms-secret",
        refresh_token="ms-refresh",
        scope="https://graph.microsoft.com/.default",
        retry_base_delay=0,
        clock=clock,
    )


# ── Caching ─────────────────────────────────────────────────────────────────


class TestTokenCaching:
    @pytest.mark.asyncio
    async def test_cached_token_reused_without_network_call(self, zoho_tokens):
        mock_post = AsyncMock(return_value=_token_response(access_token="zoho-abc", expires_in=3600))

        with patch("httpx.AsyncClient.post", mock_post):
            first = await zoho_tokens.get_access_token()
            second = await zoho_tokens.get_access_token()

        assert first == second == "zoho-abc"
        assert mock_post.await_count == 1

    @pytest.mark.asyncio
    async def test_token_still_valid_inside_lifetime_minus_skew(self, zoho_tokens, clock):
        mock_post = AsyncMock(return_value=_token_response(access_token="zoho-abc", expires_in=3600))

        with patch("httpx.AsyncClient.post", mock_post):
            await zoho_tokens.get_access_token()
            clock.now += timedelta(seconds=3299)
            await zoho_tokens.get_access_token()

        assert mock_post.await_count == 1

    @pytest.mark.asyncio
    async def test_expired_token_triggers_exactly_one_refresh(self, zoho_tokens, clock):
        mock_post = AsyncMock(
            side_effect=[
                _token_response(access_token="zoho-old", expires_in=3600),
                _token_response(access_token="zoho-new", expires_in=3600),
            ]
        )

        with patch("httpx.AsyncClient.post", mock_post):
            assert await zoho_tokens.get_access_token() == "zoho-old"
            clock.now += timedelta(seconds=3301)
            assert await zoho_tokens.get_access_token() == "zoho-new"
            assert await zoho_tokens.get_access_token() == "zoho-new"

        assert mock_post.await_count == 2
        assert zoho_tokens.cached.expires_at == clock.now + timedelta(seconds=3300)

    @pytest.mark.asyncio
    async def test_force_refresh_bypasses_cache(self, zoho_tokens):
        mock_post = AsyncMock(return_value=_token_response(access_token="zoho-abc", expires_in=3600))

        with patch("httpx.AsyncClient.post", mock_post):
            await zoho_tokens.get_access_token()
            await zoho_tokens.get_access_token(force_refresh=True)

        assert mock_post.await_count == 2

    @pytest.mark.asyncio
    async def test_invalidate_drops_cached_token(self, zoho_tokens):
        mock_post = AsyncMock(return_value=_token_response(access_token="zoho-abc", expires_in=3600))

        with patch("httpx.AsyncClient.post", mock_post):
            await zoho_tokens.get_access_token()
            assert zoho_tokens.has_token
            zoho_tokens.invalidate()
            assert not zoho_tokens.has_token
            await zoho_tokens.get_access_token()

        assert mock_post.await_count == 2


# ── Grant Requests ──────────────────────────────────────────────────────────


class TestGrantRequests:
    @pytest.mark.asyncio
    async def test_zoho_grant_form(self, zoho_tokens):
        mock_post = AsyncMock(return_value=_token_response(access_token="zoho-abc"))

        with patch("httpx.AsyncClient.post", mock_post):
            await zoho_tokens.get_access_token()

        assert mock_post.await_args.args[0] == TOKEN_URL
        assert mock_post.await_args.kwargs["data"] == {
            "refresh_token": "zoho-refresh",
            "client_id": "zoho-client",
            "client_secret": "zoho-secret",
            "grant_type": "refresh_token",
        }

    @pytest.mark.asyncio
    async def test_zoho_default_lifetime_when_expires_in_missing(self, zoho_tokens, clock):
        mock_post = AsyncMock(return_value=_token_response(access_token="zoho-abc"))

        with patch("httpx.AsyncClient.post", mock_post):
            await zoho_tokens.get_access_token()

        assert zoho_tokens.cached.expires_at == clock.now + timedelta(seconds=3300)

    @pytest.mark.asyncio
    async def test_microsoft_grant_includes_scope(self, microsoft_tokens):
        mock_post = AsyncMock(return_value=_token_response(access_token="ms-abc", expires_in=3599))

        with patch("httpx.AsyncClient.post", mock_post):
            await microsoft_tokens.get_access_token()

        form = mock_post.await_args.kwargs["data"]
        assert form["scope"] == "https://graph.microsoft.com/.default"
        assert form["grant_type"] == "refresh_token"
        assert form["refresh_token"] == "ms-refresh"

    @pytest.mark.asyncio
    async def test_microsoft_rotated_refresh_token_used_next_time(self, microsoft_tokens):
        mock_post = AsyncMock(
            side_effect=[
                _token_response(access_token="ms-1", expires_in=3600, refresh_token="ms-refresh-2"),
                _token_response(access_token="ms-2", expires_in=3600),
            ]
        )

        with patch("httpx.AsyncClient.post", mock_post):
            await microsoft_tokens.get_access_token()
            await microsoft_tokens.get_access_token(force_refresh=True)

        assert mock_post.await_args.kwargs["data"]["refresh_token"] == "ms-refresh-2"

    @pytest.mark.asyncio
    async def test_rate_limited_token_endpoint_is_retried(self, zoho_tokens):
        mock_post = AsyncMock(
            side_effect=[
                httpx.Response(429, headers={"Retry-After": "0"}, request=httpx.Request("POST", TOKEN_URL)),
                _token_response(access_token="zoho-abc"),
            ]
        )

        with patch("httpx.AsyncClient.post", mock_post):
            assert await zoho_tokens.get_access_token() == "zoho-abc"

        assert mock_post.await_count == 2


# ── Failures ────────────────────────────────────────────────────────────────


class TestTokenFailures:
    @pytest.mark.asyncio
    async def test_missing_credentials_raise_without_network_call(self, clock):
        manager = ZohoTokenManager(
            TOKEN_URL,
            client_id="zoho-client",
            client_secret="",
            refresh_token="",
            clock=clock,
        )
        mock_post = AsyncMock()

        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(TokenRefreshError) as exc_info:
                await manager.get_access_token()

        assert exc_info.value.vendor == "zoho"
        assert "client_secret, refresh_token" in str(exc_info.value)
        mock_post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_zoho_error_payload_raises(self, zoho_tokens):
        mock_post = AsyncMock(return_value=_token_response(error="invalid_code"))

        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(TokenRefreshError, match="invalid_code"):
                await zoho_tokens.get_access_token()

        assert zoho_tokens.cached is None

    @pytest.mark.asyncio
    async def test_http_failure_propagates_after_retries(self, clock):
        manager = ZohoTokenManager(
            TOKEN_URL,
            client_id="zoho-client",
            client_secret="zoho-secret",
            refresh_token="zoho-refresh",
            retry_attempts=2,
            clock=clock,
        )
        mock_post = AsyncMock(return_value=_token_response(400, error="invalid_client"))

        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(httpx.HTTPStatusError):
                await manager.get_access_token()

        assert mock_post.await_count == 2
        assert not manager.has_token


# ── Builders ────────────────────────────────────────────────────────────────


class TestBuilders:
    def test_builders_use_settings_urls(self):
        settings = Settings(
            MICROSOFT_TENANT_ID="tenant-123",
            ZOHO_ACCOUNTS_URL="https://accounts.zoho.eu/",
        )

        microsoft = build_microsoft_token_manager(settings)
        zoho = build_zoho_token_manager(settings)

        assert microsoft._token_url == (
            "https://login.microsoftonline.com/tenant-123/oauth2/v2.0/token"
        )
        assert zoho._token_url == "https://accounts.zoho.eu/oauth/v2/token"
