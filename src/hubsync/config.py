"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.hubsync.contacts.schemas import IntegrationSettings, UpsertStrategy


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # HubSpot endpoints
    HUBSPOT_TRACK_URL: str = "https://track.hubspot.com/v1"
    HUBSPOT_CONTACT_URL: str = "https://api.hubapi.com/contacts/v1"

    # HubSpot account (tenant id + API key)
    HUBSPOT_PORTAL_ID: str = ""
    HUBSPOT_API_KEY: str = ""

    # Transport
    HUBSPOT_HTTP_TIMEOUT: float = 10.0
    HUBSPOT_MAX_ATTEMPTS: int = 3

    # Property schema cache, keyed by API key
    PROPERTIES_CACHE_TTL_SECONDS: float = 3600.0
    PROPERTIES_CACHE_MAX_ENTRIES: int = 500

    # How identify calls without a lifecycle stage reach HubSpot
    UPSERT_STRATEGY: UpsertStrategy = UpsertStrategy.CREATE_OR_UPDATE

    def integration_settings(self) -> IntegrationSettings:
        """Build the per-tenant settings object from the configured account."""
        return IntegrationSettings(
            portal_id=self.HUBSPOT_PORTAL_ID or None,
            api_key=self.HUBSPOT_API_KEY or None,
            upsert_strategy=self.UPSERT_STRATEGY,
        )


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
