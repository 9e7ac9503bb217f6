"""API middleware package."""

from src.syncbridge.api.middleware.logging import (
    REQUEST_ID_HEADER,
    LoggingMiddleware,
    configure_structlog,
)

__all__ = ["REQUEST_ID_HEADER", "LoggingMiddleware", "configure_structlog"]
