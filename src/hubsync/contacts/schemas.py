"""Pydantic schemas for HubSpot contact sync.

Defines all structured types flowing through the sync engine:
- Enums: PropertyType, LifecycleStage, LifecycleState, WriteKind, UpsertStrategy
- Remote schema: PropertyDefinition
- Wire payloads: NormalizedProperty, RemoteContact, ContactPropertyValue
- Planning: WriteOperation, LifecyclePlan
- Settings: IntegrationSettings
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

LIFECYCLE_PROPERTY = "lifecyclestage"


# ── Enums ───────────────────────────────────────────────────────────────────


class PropertyType(str, Enum):
    """Data type of a remote contact property, as far as coercion cares."""

    STRING = "string"
    DATE = "date"
    NUMBER = "number"
    BOOL = "bool"
    OTHER = "other"

    @classmethod
    def from_remote(cls, value: Any) -> PropertyType:
        """Map a HubSpot property ``type`` onto the coercion types.

        ``datetime`` and ``enumeration`` (and anything unknown) become OTHER.
        """
        token = str(value or "").strip().lower()
        if token == "boolean":
            token = "bool"
        try:
            return cls(token)
        except ValueError:
            return cls.OTHER


class LifecycleStage(str, Enum):
    """HubSpot contact lifecycle stages, declared in funnel order."""

    SUBSCRIBER = "subscriber"
    LEAD = "lead"
    MARKETING_QUALIFIED_LEAD = "marketingqualifiedlead"
    SALES_QUALIFIED_LEAD = "salesqualifiedlead"
    OPPORTUNITY = "opportunity"
    CUSTOMER = "customer"

    @property
    def rank(self) -> int:
        return _STAGE_RANKS[self]

    @classmethod
    def parse(cls, token: Any) -> LifecycleStage | None:
        """Return the stage for ``token`` or None when it is not recognized."""
        if not isinstance(token, str):
            return None
        try:
            return cls(token.strip().lower())
        except ValueError:
            return None


_STAGE_RANKS: dict[LifecycleStage, int] = {
    stage: rank for rank, stage in enumerate(LifecycleStage, start=1)
}


class LifecycleState(str, Enum):
    """Outcome of comparing an incoming stage against the remote contact."""

    NO_EXISTING_CONTACT = "no_existing_contact"
    EXISTING_LOWER_OR_EQUAL_STAGE = "existing_lower_or_equal_stage"
    EXISTING_HIGHER_STAGE = "existing_higher_stage"
    INDETERMINATE = "indeterminate"


class WriteKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"


class UpsertStrategy(str, Enum):
    """How identify calls without a recognized lifecycle stage are written."""

    CREATE_OR_UPDATE = "create_or_update"
    LOOKUP = "lookup"


# ── Remote Schema ───────────────────────────────────────────────────────────


class PropertyDefinition(BaseModel):
    """A single contact property definition fetched from HubSpot."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: PropertyType = PropertyType.OTHER
    mutable: bool = True

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> PropertyDefinition:
        """Build a definition from one entry of ``GET /properties``."""
        return cls(
            name=data["name"],
            type=PropertyType.from_remote(data.get("type")),
            mutable=not data.get("readOnlyValue"),
        )


# ── Wire Payloads ───────────────────────────────────────────────────────────


class NormalizedProperty(BaseModel):
    """A ``{property, value}`` pair in the shape HubSpot accepts."""

    property: str
    value: Any = None


class ContactPropertyValue(BaseModel):
    model_config = ConfigDict(extra="ignore")

    value: Any = None


class RemoteContact(BaseModel):
    """A contact profile as returned by the lookup-by-email endpoint."""

    model_config = ConfigDict(extra="ignore")

    vid: str
    properties: dict[str, ContactPropertyValue] = Field(default_factory=dict)

    @field_validator("vid", mode="before")
    @classmethod
    def _coerce_vid(cls, value: Any) -> str:
        return str(value)

    def property_value(self, name: str) -> Any:
        prop = self.properties.get(name)
        return prop.value if prop is not None else None

    @property
    def lifecycle_stage(self) -> LifecycleStage | None:
        return LifecycleStage.parse(self.property_value(LIFECYCLE_PROPERTY))


# ── Planning ────────────────────────────────────────────────────────────────


class WriteOperation(BaseModel):
    """One remote write, executed in order as part of a plan."""

    kind: WriteKind
    vid: str | None = None
    properties: list[NormalizedProperty] = Field(default_factory=list)


class LifecyclePlan(BaseModel):
    state: LifecycleState
    operations: list[WriteOperation] = Field(default_factory=list)


# ── Settings ────────────────────────────────────────────────────────────────


class IntegrationSettings(BaseModel):
    """Per-account settings the engine runs with.

    ``portal_id`` and ``api_key`` are optional at construction so the engine
    can report exactly which one is missing before any remote call.
    """

    portal_id: str | None = None
    api_key: str | None = None
    upsert_strategy: UpsertStrategy = UpsertStrategy.CREATE_OR_UPDATE

    @field_validator("portal_id", mode="before")
    @classmethod
    def _coerce_portal_id(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        return str(value)
