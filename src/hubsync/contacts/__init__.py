"""HubSpot contact sync -- schema cache, normalization, lifecycle ordering.

Provides:
- ContactSyncEngine: track/identify entry points for one HubSpot account
- HubSpotClient: async HTTP client for the contacts and events APIs
- PropertySchemaCache: per-API-key TTL + LRU cache of property definitions
- normalize / format_traits: trait filtering and coercion against the schema
- map_track / map_identify: message -> raw payload mappers
- resolve_lifecycle: ordered writes that keep lifecycle stage changes intact
- Identify / Track: accessors over raw message documents
"""

from src.hubsync.contacts.cache import PropertySchemaCache
from src.hubsync.contacts.client import HubSpotClient
from src.hubsync.contacts.engine import ContactSyncEngine
from src.hubsync.contacts.exceptions import (
    ConflictParseError,
    ContactConflictError,
    HubSpotRequestError,
    HubSpotSyncError,
    SyncValidationError,
)
from src.hubsync.contacts.facade import Identify, Track
from src.hubsync.contacts.lifecycle import resolve_lifecycle
from src.hubsync.contacts.mapper import map_identify, map_track
from src.hubsync.contacts.normalizer import format_traits, normalize

__all__ = [
    "ContactSyncEngine",
    "HubSpotClient",
    "PropertySchemaCache",
    "Identify",
    "Track",
    "normalize",
    "format_traits",
    "map_track",
    "map_identify",
    "resolve_lifecycle",
    "HubSpotSyncError",
    "SyncValidationError",
    "HubSpotRequestError",
    "ContactConflictError",
    "ConflictParseError",
]
