"""Map inbound track/identify messages to HubSpot payloads.

Notes:

    https://developers.hubspot.com/docs/methods/enterprise_events/http_api
    https://developers.hubspot.com/docs/methods/contacts/create_or_update

Both mappers are pure: no I/O, no schema filtering. The engine runs their
output through the property normalizer.
"""

from __future__ import annotations

from typing import Any

from src.hubsync.contacts.facade import EventSource, ProfileSource
from src.hubsync.contacts.normalizer import epoch_millis, format_traits, traverse_dates
from src.hubsync.contacts.schemas import IntegrationSettings

# Raw trait keys superseded by a computed field.
_SUPERSEDED_KEYS = ("position",)


def map_track(event: EventSource, settings: IntegrationSettings) -> dict[str, Any]:
    """Build the enterprise-events query for a track call."""
    return {
        "_a": settings.portal_id,
        "email": event.email(),
        "_m": event.revenue(),
        "_n": event.event(),
    }


def map_identify(profile: ProfileSource) -> dict[str, Any]:
    """Build the raw contact property map for an identify call.

    Free-form traits are the defaults; well-known fields derived from the
    profile accessors override them when present. None values are stripped.
    """
    payload = format_traits(traverse_dates(profile.traits()))

    computed = {
        "jobtitle": profile.position(),
        "city": profile.city(),
        "zip": profile.zip(),
        "firstname": profile.first_name(),
        "lastname": profile.last_name(),
        "address": profile.address(),
        "email": profile.email(),
        "phone": profile.phone(),
    }
    payload.update({key: value for key, value in computed.items() if value is not None})

    if computed["jobtitle"] is not None:
        for key in _SUPERSEDED_KEYS:
            payload.pop(key, None)

    created = profile.created()
    if created is not None:
        payload["createdate"] = epoch_millis(created)

    return {key: value for key, value in payload.items() if value is not None}
