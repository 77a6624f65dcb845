"""HubSpot contact sync engine -- track and identify entry points.

Ties together the mappers, the property normalizer (backed by the shared
schema cache), lifecycle stage resolution and the HubSpot client:

- track: map the event, merge the profile traits HubSpot knows about, send a
  single events-API GET. No contact lookup.
- identify: map the profile and filter it against the schema. When a
  recognized lifecycle stage is being written, look the contact up and run
  the lifecycle plan; otherwise upsert by email (or, with the ``lookup``
  strategy, look up then create/update).

Creates recover from interleaved identify calls: a 409 means another request
created the contact first. Plain creates are retried as an update against the
vid reported in the conflict body; lifecycle creates look the contact up
again and re-resolve the plan against it.
"""

from __future__ import annotations

import json
from typing import Any

import structlog

from src.hubsync.contacts.cache import PropertySchemaCache
from src.hubsync.contacts.client import HubSpotClient
from src.hubsync.contacts.exceptions import (
    ConflictParseError,
    ContactConflictError,
    SyncValidationError,
)
from src.hubsync.contacts.facade import EventSource, ProfileSource
from src.hubsync.contacts.lifecycle import (
    incoming_stage,
    resolve_lifecycle,
    run_plan,
    with_canonical_stage,
)
from src.hubsync.contacts.mapper import map_identify, map_track
from src.hubsync.contacts.normalizer import convert_dates, normalize
from src.hubsync.contacts.schemas import (
    IntegrationSettings,
    LifecyclePlan,
    LifecycleStage,
    LifecycleState,
    NormalizedProperty,
    RemoteContact,
    UpsertStrategy,
    WriteKind,
    WriteOperation,
)

logger = structlog.get_logger(__name__)


def parse_conflict_vid(body: Any) -> str:
    """Extract the existing contact's vid from a 409 response body.

    HubSpot puts a JSON document in the body's ``message`` field; the vid is
    at ``property.vid``.
    """
    try:
        message = body["message"]
        details = json.loads(message) if isinstance(message, str) else message
        vid = details["property"]["vid"]
    except (KeyError, TypeError, ValueError) as exc:
        raise ConflictParseError(body) from exc
    if vid is None or vid == "":
        raise ConflictParseError(body)
    return str(vid)


class ContactSyncEngine:
    """Synchronizes track and identify calls for one HubSpot account.

    Args:
        settings: Portal id and API key for the account.
        client: HubSpot HTTP client (shareable across accounts).
        cache: Property schema cache (shareable across accounts).
    """

    def __init__(
        self,
        settings: IntegrationSettings,
        client: HubSpotClient,
        cache: PropertySchemaCache,
    ) -> None:
        self._settings = settings
        self._client = client
        self._cache = cache

    @property
    def settings(self) -> IntegrationSettings:
        return self._settings

    def validate(self, message: ProfileSource | EventSource) -> None:
        """Raise SyncValidationError unless settings and the message email are present."""
        if not self._settings.portal_id:
            raise SyncValidationError("settings.portalId")
        if not self._settings.api_key:
            raise SyncValidationError("settings.apiKey")
        if not message.email():
            raise SyncValidationError("message.email")

    # ── Public Entry Points ─────────────────────────────────────────────

    async def filter_properties(self, traits: dict[str, Any]) -> list[NormalizedProperty]:
        """Keep only traits that exist as mutable properties, in HubSpot's shape."""
        if not traits:
            return []
        definitions = await self._cache.ensure(self._settings.api_key)
        return normalize(traits, definitions)

    async def track(self, event: EventSource) -> None:
        """Record an enterprise event, carrying known profile traits along."""
        self.validate(event)
        payload = map_track(event, self._settings)

        traits = await self.filter_properties(convert_dates(event.traits()))
        for prop in traits:
            payload[prop.property] = prop.value

        await self._client.track_event(payload)
        logger.info("sync.track_complete", event_name=payload.get("_n"), traits=len(traits))

    async def identify(self, profile: ProfileSource) -> None:
        """Create or update the contact for ``profile``."""
        self.validate(profile)
        email = profile.email()
        properties = await self.filter_properties(map_identify(profile))

        present, stage = incoming_stage(properties)
        if stage is not None:
            plan = await self._sync_lifecycle(
                email, with_canonical_stage(properties, stage), stage
            )
            logger.info(
                "sync.identify_complete",
                path="lifecycle",
                state=plan.state.value,
                writes=len(plan.operations),
            )
            return

        if present:
            logger.info(
                "sync.lifecycle_indeterminate",
                state=LifecycleState.INDETERMINATE.value,
            )

        if self._settings.upsert_strategy == UpsertStrategy.LOOKUP:
            await self._lookup_upsert(email, properties)
        else:
            await self._client.create_or_update_contact(
                self._settings.api_key, email, properties
            )
        logger.info(
            "sync.identify_complete",
            path=self._settings.upsert_strategy.value,
            properties=len(properties),
        )

    # ── Writes ──────────────────────────────────────────────────────────

    async def _sync_lifecycle(
        self,
        email: str,
        properties: list[NormalizedProperty],
        stage: LifecycleStage,
    ) -> LifecyclePlan:
        """Look the contact up and run the lifecycle plan against it.

        If the plan's create loses a race (409), the plan is resolved again
        against the contact that won, so a higher stage it already holds is
        cleared before the incoming one is written.
        """
        api_key = self._settings.api_key
        contact = await self._client.get_contact_by_email(api_key, email)
        plan = resolve_lifecycle(properties, stage, contact)
        try:
            await run_plan(plan, self._write)
        except ContactConflictError as exc:
            vid = parse_conflict_vid(exc.body)
            logger.info("sync.create_conflict", vid=vid, path="lifecycle")
            contact = await self._client.get_contact_by_email(api_key, email)
            if contact is None:
                contact = RemoteContact(vid=vid)
            plan = resolve_lifecycle(properties, stage, contact)
            await run_plan(plan, self._write)
        return plan

    async def _write(self, operation: WriteOperation) -> None:
        """Execute one planned write; create conflicts propagate to the caller."""
        if operation.kind == WriteKind.CREATE:
            await self._client.create_contact(self._settings.api_key, operation.properties)
        else:
            await self._update(operation.vid, operation.properties)

    async def _lookup_upsert(self, email: str, properties: list[NormalizedProperty]) -> None:
        contact = await self._client.get_contact_by_email(self._settings.api_key, email)
        if contact is not None:
            await self._update(contact.vid, properties)
        else:
            await self._create(properties)

    async def _update(self, vid: str, properties: list[NormalizedProperty]) -> None:
        await self._client.update_contact(self._settings.api_key, vid, properties)

    async def _create(self, properties: list[NormalizedProperty]) -> None:
        """Create a contact; on a 409 conflict update the existing one instead."""
        try:
            await self._client.create_contact(self._settings.api_key, properties)
        except ContactConflictError as exc:
            vid = parse_conflict_vid(exc.body)
            logger.info("sync.create_conflict", vid=vid)
            await self._update(vid, properties)
