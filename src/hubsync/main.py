"""Engine factory.

Builds the process-wide HubSpot client and property schema cache from
settings, and per-account sync engines on top of them.
"""

from __future__ import annotations

from src.hubsync.config import Settings, get_settings
from src.hubsync.contacts import ContactSyncEngine, HubSpotClient, PropertySchemaCache
from src.hubsync.contacts.schemas import IntegrationSettings


def create_client(settings: Settings | None = None) -> HubSpotClient:
    settings = settings or get_settings()
    return HubSpotClient(
        contact_url=settings.HUBSPOT_CONTACT_URL,
        track_url=settings.HUBSPOT_TRACK_URL,
        timeout=settings.HUBSPOT_HTTP_TIMEOUT,
        max_attempts=settings.HUBSPOT_MAX_ATTEMPTS,
    )


def create_cache(client: HubSpotClient, settings: Settings | None = None) -> PropertySchemaCache:
    settings = settings or get_settings()
    return PropertySchemaCache(
        client.get_properties,
        ttl_seconds=settings.PROPERTIES_CACHE_TTL_SECONDS,
        max_entries=settings.PROPERTIES_CACHE_MAX_ENTRIES,
    )


def create_engine(
    settings: Settings | None = None,
    integration: IntegrationSettings | None = None,
    *,
    client: HubSpotClient | None = None,
    cache: PropertySchemaCache | None = None,
) -> ContactSyncEngine:
    """Build a ContactSyncEngine.

    Pass ``client`` and ``cache`` to share them between engines for
    different accounts; otherwise fresh ones are created from settings.
    """
    settings = settings or get_settings()
    if client is None:
        client = create_client(settings)
    if cache is None:
        cache = create_cache(client, settings)
    return ContactSyncEngine(
        integration or settings.integration_settings(),
        client,
        cache,
    )
