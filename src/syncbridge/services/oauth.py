"""OAuth refresh-token managers with in-process expiry caching.

One manager per vendor, each owning a single cache cell (token + expiry).
A cached, unexpired token is returned without touching the network;
otherwise a refresh_token grant is posted through the retry helper and the
cell is overwritten. That grant retry is the only retry budget spent on
the token endpoint; API clients never wrap it in a retry of their own.
There is no lock around the cell: overlapping refreshes
both hit the token endpoint and the last write wins.
"""

from __future__ import annotations

import functools
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import structlog

from src.syncbridge.config import Settings
from src.syncbridge.core.monitoring import token_refreshes_total, track_vendor_call
from src.syncbridge.core.retry import retry_with_backoff

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenRefreshError(Exception):
    """Raised when a vendor token cannot be obtained."""

    def __init__(self, vendor: str, message: str) -> None:
        self.vendor = vendor
        super().__init__(f"{vendor}: {message}")


@dataclass
class CachedToken:
    """A bearer token and the moment it stops being usable."""

    access_token: str
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return bool(self.access_token) and now < self.expires_at


class OAuthTokenManager(ABC):
    """Caches a vendor bearer token and refreshes it on expiry.

    Subclasses describe the grant request and how to read the expiry
    from the vendor's token response.

    Args:
        token_url: Vendor token endpoint.
        timeout: Per-request timeout in seconds.
        expiry_skew_seconds: Safety margin subtracted from the vendor lifetime.
        retry_attempts: Attempts for the retry helper.
        retry_base_delay: Exponential base for rate-limit waits.
        retry_max_delay: Cap for any single wait.
        clock: Returns the current UTC time.
    """

    vendor: str = ""

    def __init__(
        self,
        token_url: str,
        *,
        timeout: float = 30.0,
        expiry_skew_seconds: int = 300,
        retry_attempts: int = 5,
        retry_base_delay: float = 5.0,
        retry_max_delay: float = 60.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._token_url = token_url
        self._timeout = timeout
        self._skew = expiry_skew_seconds
        self._retry_attempts = retry_attempts
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self._clock = clock
        self._cache: CachedToken | None = None

    @property
    def has_token(self) -> bool:
        """True if the cell holds a token, regardless of expiry."""
        return self._cache is not None

    @property
    def cached(self) -> CachedToken | None:
        return self._cache

    def invalidate(self) -> None:
        """Drop the cached token so the next call refreshes it."""
        self._cache = None

    @abstractmethod
    def _grant_form(self) -> dict[str, str]:
        """Form fields for the refresh_token grant."""
        ...

    @abstractmethod
    def _lifetime_seconds(self, payload: dict[str, Any]) -> int:
        """Token lifetime in seconds as reported by the vendor."""
        ...

    def _on_refreshed(self, payload: dict[str, Any]) -> None:
        """Hook for vendor-specific handling of a successful grant."""

    async def get_access_token(self, force_refresh: bool = False) -> str:
        """Return a valid bearer token, refreshing it when needed."""
        now = self._clock()
        if not force_refresh and self._cache is not None and self._cache.is_valid(now):
            return self._cache.access_token

        form = self._grant_form()
        missing = [key for key, value in form.items() if not value]
        if missing:
            token_refreshes_total.labels(vendor=self.vendor, status="error").inc()
            raise TokenRefreshError(
                self.vendor, f"missing credentials: {', '.join(sorted(missing))}"
            )

        logger.info("oauth.refreshing_token", vendor=self.vendor)
        try:
            payload = await retry_with_backoff(
                functools.partial(self._request_token, form),
                max_attempts=self._retry_attempts,
                base_delay=self._retry_base_delay,
                max_delay=self._retry_max_delay,
            )
        except httpx.HTTPError:
            token_refreshes_total.labels(vendor=self.vendor, status="error").inc()
            raise

        if payload.get("error") or not payload.get("access_token"):
            token_refreshes_total.labels(vendor=self.vendor, status="error").inc()
            raise TokenRefreshError(
                self.vendor,
                f"token endpoint returned no access_token ({payload.get('error', 'unknown error')})",
            )

        lifetime = max(self._lifetime_seconds(payload) - self._skew, 0)
        self._cache = CachedToken(
            access_token=payload["access_token"],
            expires_at=self._clock() + timedelta(seconds=lifetime),
        )
        self._on_refreshed(payload)
        token_refreshes_total.labels(vendor=self.vendor, status="success").inc()

        logger.info(
            "oauth.token_refreshed",
            vendor=self.vendor,
            expires_at=self._cache.expires_at.isoformat(),
        )
        return self._cache.access_token

    async def _request_token(self, form: dict[str, str]) -> dict[str, Any]:
        async with track_vendor_call(self.vendor, "token_refresh") as tracker:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    self._token_url,
                    data=form,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
            tracker["status_code"] = response.status_code
            response.raise_for_status()
            return response.json()


class MicrosoftTokenManager(OAuthTokenManager):
    """Microsoft identity platform refresh-token grant for Graph."""

    vendor = "microsoft"

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        scope: str,
        **kwargs: Any,
    ) -> None:
        super().__init__(token_url, **kwargs)
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._scope = scope

    def _grant_form(self) -> dict[str, str]:
        return {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "refresh_token": self._refresh_token,
            "grant_type": "refresh_token",
            "scope": self._scope,
        }

    def _lifetime_seconds(self, payload: dict[str, Any]) -> int:
        return int(payload.get("expires_in", 3600))

    def _on_refreshed(self, payload: dict[str, Any]) -> None:
        # Microsoft may rotate the refresh token; later grants need the new one
        rotated = payload.get("refresh_token")
        if rotated and rotated != self._refresh_token:
            self._refresh_token = rotated
            logger.info("oauth.refresh_token_rotated", vendor=self.vendor)


class ZohoTokenManager(OAuthTokenManager):
    """Zoho accounts refresh-token grant for the CRM API."""

    vendor = "zoho"

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        default_lifetime_seconds: int = 3600,
        **kwargs: Any,
    ) -> None:
        super().__init__(token_url, **kwargs)
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._default_lifetime = default_lifetime_seconds

    def _grant_form(self) -> dict[str, str]:
        return {
            "refresh_token": self._refresh_token,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "grant_type": "refresh_token",
        }

    def _lifetime_seconds(self, payload: dict[str, Any]) -> int:
        return int(payload.get("expires_in") or self._default_lifetime)


def _retry_kwargs(settings: Settings) -> dict[str, Any]:
    return {
        "timeout": settings.HTTP_TIMEOUT,
        "expiry_skew_seconds": settings.TOKEN_EXPIRY_SKEW_SECONDS,
        "retry_attempts": settings.RETRY_MAX_ATTEMPTS,
        "retry_base_delay": settings.RETRY_BASE_DELAY,
        "retry_max_delay": settings.RETRY_MAX_DELAY,
    }


def build_microsoft_token_manager(settings: Settings) -> MicrosoftTokenManager:
    return MicrosoftTokenManager(
        token_url=settings.microsoft_token_url,
        client_id=settings.MICROSOFT_CLIENT_ID,
        client_secret=settings.MICROSOFT_CLIENT_SECRET,
        refresh_token=settings.MICROSOFT_REFRESH_TOKEN,
        scope=settings.MICROSOFT_SCOPE,
        **_retry_kwargs(settings),
    )


def build_zoho_token_manager(settings: Settings) -> ZohoTokenManager:
    return ZohoTokenManager(
        token_url=settings.zoho_token_url,
        client_id=settings.ZOHO_CLIENT_ID,
        client_secret=settings.ZOHO_CLIENT_SECRET,
        refresh_token=settings.ZOHO_REFRESH_TOKEN,
        default_lifetime_seconds=settings.ZOHO_TOKEN_LIFETIME_SECONDS,
        **_retry_kwargs(settings),
    )
