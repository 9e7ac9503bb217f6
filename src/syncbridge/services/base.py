"""Shared request plumbing for the vendor REST clients.

The bearer token is acquired once per request, before the retried call,
so a failing token endpoint costs only the token manager's own retries.
A 401 drops the cached token and the request is replayed once with a
freshly acquired one.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.syncbridge.core.monitoring import track_vendor_call
from src.syncbridge.core.retry import is_retryable, retry_with_backoff
from src.syncbridge.services.oauth import OAuthTokenManager

logger = structlog.get_logger(__name__)


class VendorClient:
    """Base for token-authenticated async REST clients.

    Args:
        token_manager: Supplies bearer tokens for this vendor.
        api_base: REST root URL, without trailing slash.
        timeout: Per-request timeout in seconds.
        retry_attempts: Attempts for the retry helper.
        retry_base_delay: Exponential base for rate-limit waits.
        retry_max_delay: Cap for any single wait.
    """

    vendor: str = ""
    auth_scheme: str = "Bearer"

    def __init__(
        self,
        token_manager: OAuthTokenManager,
        api_base: str,
        *,
        timeout: float = 30.0,
        retry_attempts: int = 5,
        retry_base_delay: float = 5.0,
        retry_max_delay: float = 60.0,
    ) -> None:
        self._tokens = token_manager
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._retry_attempts = retry_attempts
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay

    @property
    def token_manager(self) -> OAuthTokenManager:
        return self._tokens

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self._api_base}/{path.lstrip('/')}"

    def _extra_headers(self) -> dict[str, str]:
        return {}

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one authenticated request with retry; raise on HTTP errors.

        A 401 is not retried with the same token: the cached token is
        dropped, a fresh one is acquired, and the request is sent once more
        with its own retry budget.
        """
        url = self._url(path)
        try:
            return await self._send(method, url, operation, **kwargs)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code != 401:
                raise

        logger.warning(f"{self.vendor}.token_rejected", operation=operation)
        self._tokens.invalidate()
        return await self._send(method, url, operation, **kwargs)

    async def _send(
        self,
        method: str,
        url: str,
        operation: str,
        **kwargs: Any,
    ) -> httpx.Response:
        # Token acquisition sits outside the retried call; the token manager
        # retries its own grant.
        token = await self._tokens.get_access_token()
        headers = {
            "Authorization": f"{self.auth_scheme} {token}",
            **self._extra_headers(),
        }

        async def attempt() -> httpx.Response:
            async with track_vendor_call(self.vendor, operation) as tracker:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(method, url, headers=headers, **kwargs)
                tracker["status_code"] = response.status_code
                response.raise_for_status()
                return response

        return await retry_with_backoff(
            attempt,
            max_attempts=self._retry_attempts,
            base_delay=self._retry_base_delay,
            max_delay=self._retry_max_delay,
            retry_on=_retry_unless_unauthorized,
        )


def _retry_unless_unauthorized(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 401:
        return False
    return is_retryable(exc)


def upstream_error_body(exc: Exception) -> Any:
    """Vendor error payload for an HTTP failure, else the exception message."""
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            return exc.response.json()
        except ValueError:
            return exc.response.text or str(exc)
    return str(exc)
