"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Server
    PORT: int = 3000

    # CORS
    CORS_ALLOWED_ORIGINS: str = "*"

    # Monitoring
    SENTRY_DSN: str = ""

    # Microsoft Graph (Outlook calendar)
    MICROSOFT_TENANT_ID: str = ""
    MICROSOFT_CLIENT_ID: str = ""
    MICROSOFT_CLIENT_SECRET: str = ""
    MICROSOFT_REFRESH_TOKEN: str = ""
    MICROSOFT_LOGIN_BASE: str = "https://login.microsoftonline.com"
    MICROSOFT_SCOPE: str = "https://graph.microsoft.com/.default"
    GRAPH_API_BASE: str = "https://graph.microsoft.com/v1.0"
    GRAPH_BATCH_SIZE: int = 20  # Graph rejects $batch payloads above 20 requests
    GRAPH_MAX_PAGES: int = 1

    # Zoho CRM
    ZOHO_CLIENT_ID: str = ""
    ZOHO_CLIENT_SECRET: str = ""
    ZOHO_REFRESH_TOKEN: str = ""
    ZOHO_ACCOUNTS_URL: str = "https://accounts.zoho.in"
    ZOHO_API_BASE: str = "https://www.zohoapis.in"
    ZOHO_TIMEZONE: str = "UTC"

    # Token caching
    TOKEN_EXPIRY_SKEW_SECONDS: int = 300
    ZOHO_TOKEN_LIFETIME_SECONDS: int = 3600

    # Outbound HTTP
    RETRY_MAX_ATTEMPTS: int = 5
    RETRY_BASE_DELAY: float = 5.0
    RETRY_MAX_DELAY: float = 60.0
    HTTP_TIMEOUT: float = 30.0

    @property
    def microsoft_token_url(self) -> str:
        """Token endpoint for the configured Azure AD tenant."""
        return f"{self.MICROSOFT_LOGIN_BASE.rstrip('/')}/{self.MICROSOFT_TENANT_ID}/oauth2/v2.0/token"

    @property
    def zoho_token_url(self) -> str:
        return f"{self.ZOHO_ACCOUNTS_URL.rstrip('/')}/oauth/v2/token"

    def get_cors_origins(self) -> list[str]:
        if self.CORS_ALLOWED_ORIGINS == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ALLOWED_ORIGINS.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
