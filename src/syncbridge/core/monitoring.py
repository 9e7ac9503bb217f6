"""Prometheus metrics, Sentry integration, and vendor API call tracking.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- track_vendor_call(): Context manager for outbound vendor API metrics
- init_sentry(): Initialize Sentry for unhandled exceptions
- get_metrics_response(): Prometheus exposition for the /metrics route
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Vendor API Metrics ───────────────────────────────────────────────────────

vendor_requests_total = Counter(
    "vendor_requests_total",
    "Total outbound vendor API requests",
    ["vendor", "operation", "status"],
)

vendor_request_duration_seconds = Histogram(
    "vendor_request_duration_seconds",
    "Outbound vendor API request duration in seconds",
    ["vendor", "operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

vendor_rate_limited_total = Counter(
    "vendor_rate_limited_total",
    "Vendor responses with HTTP 429",
    ["vendor"],
)

token_refreshes_total = Counter(
    "token_refreshes_total",
    "OAuth access token refreshes",
    ["vendor", "status"],
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Records request count and duration per method/endpoint.
    Skips the /metrics endpoint itself to avoid self-referential counting.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        # Route pattern keeps cardinality bounded for /update-zoho-contacts/{id}
        route = request.scope.get("route")
        endpoint = getattr(route, "path", None) or request.url.path

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
        ).inc()

        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


# ── Vendor Call Helper ───────────────────────────────────────────────────────


@asynccontextmanager
async def track_vendor_call(
    vendor: str,
    operation: str,
) -> AsyncGenerator[dict[str, Any], None]:
    """Context manager that tracks a single outbound vendor request.

    Usage:
        async with track_vendor_call("zoho", "list_records") as tracker:
            response = await client.get(...)
            tracker["status_code"] = response.status_code

    Automatically records:
    - Duration in histogram
    - Request count labelled with the HTTP status (or "error")
    - Rate-limit hits when the status code is 429
    """
    tracker: dict[str, Any] = {"status_code": None}
    start_time = time.perf_counter()

    try:
        yield tracker
    except Exception:
        if tracker["status_code"] is None:
            tracker["status_code"] = "error"
        raise
    finally:
        duration = time.perf_counter() - start_time
        status = str(tracker["status_code"] or "unknown")

        vendor_requests_total.labels(
            vendor=vendor,
            operation=operation,
            status=status,
        ).inc()

        vendor_request_duration_seconds.labels(
            vendor=vendor,
            operation=operation,
        ).observe(duration)

        if tracker["status_code"] == 429:
            vendor_rate_limited_total.labels(vendor=vendor).inc()


# ── Sentry Integration ───────────────────────────────────────────────────────


def init_sentry(dsn: str, environment: str) -> None:
    """Initialize Sentry SDK.

    Args:
        dsn: Sentry DSN string.
        environment: Deployment environment (development, staging, production).
    """
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration

    traces_sample_rate = 0.1 if environment == "production" else 1.0

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        integrations=[
            StarletteIntegration(),
            FastApiIntegration(),
        ],
    )


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
