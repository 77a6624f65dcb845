"""Trait normalization against the HubSpot contact property schema.

HubSpot only accepts writes to properties that already exist on the account,
reports every property name lowercase with underscores, and is picky about
value formats. ``normalize`` turns an arbitrary trait map into the
``[{property, value}]`` list HubSpot expects:

- keys are lowercased, with whitespace runs collapsed to ``_``
- keys without a matching mutable property definition are dropped
- values are tagged (string, number, date, bool, composite, null) and coerced
  for the target property type by a single dispatch in ``coerce``
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Iterable, Union

import structlog

from src.hubsync.contacts.schemas import (
    NormalizedProperty,
    PropertyDefinition,
    PropertyType,
)

logger = structlog.get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")

# At least a calendar date; optional time, fraction and UTC offset.
_ISO_DATE = re.compile(
    r"^\d{4}-\d{2}-\d{2}"
    r"(?:[T ]\d{2}:\d{2}(?::\d{2}(?:[.,]\d+)?)?)?"
    r"(?:Z|[+-]\d{2}(?::?\d{2})?)?$"
)


# ── Tagged Values ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StringVal:
    value: str


@dataclass(frozen=True)
class NumberVal:
    value: int | float


@dataclass(frozen=True)
class DateVal:
    value: datetime


@dataclass(frozen=True)
class BoolVal:
    value: bool


@dataclass(frozen=True)
class CompositeVal:
    value: dict | list | tuple


@dataclass(frozen=True)
class NullVal:
    value: None = None


TaggedValue = Union[StringVal, NumberVal, DateVal, BoolVal, CompositeVal, NullVal]


def is_iso_date(value: Any) -> bool:
    return isinstance(value, str) and bool(_ISO_DATE.match(value.strip()))


def parse_iso_date(value: str) -> datetime | None:
    """Parse an ISO-8601 string to an aware UTC datetime, or None."""
    if not is_iso_date(value):
        return None
    text = value.strip().replace(",", ".")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return _as_utc(parsed)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def tag(value: Any) -> TaggedValue:
    """Classify a raw trait value. ISO-8601 strings are tagged as dates."""
    if value is None:
        return NullVal()
    if isinstance(value, bool):
        return BoolVal(value)
    if isinstance(value, datetime):
        return DateVal(_as_utc(value))
    if isinstance(value, date):
        return DateVal(datetime(value.year, value.month, value.day, tzinfo=timezone.utc))
    if isinstance(value, (int, float)):
        return NumberVal(value)
    if isinstance(value, str):
        parsed = parse_iso_date(value)
        if parsed is not None:
            return DateVal(parsed)
        return StringVal(value)
    if isinstance(value, (dict, list, tuple)):
        return CompositeVal(value)
    return StringVal(str(value))


def floor_day(value: datetime) -> datetime:
    """Start of the value's calendar day in UTC."""
    return _as_utc(value).replace(hour=0, minute=0, second=0, microsecond=0)


def epoch_millis(value: datetime) -> int:
    return int(round(_as_utc(value).timestamp() * 1000))


def _number_text(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def to_json_text(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), default=_json_default)


def coerce(tagged: TaggedValue, prop_type: PropertyType) -> Any:
    """Convert a tagged value to the wire value for a property of ``prop_type``."""
    if isinstance(tagged, NullVal):
        return None
    if isinstance(tagged, DateVal):
        moment = floor_day(tagged.value) if prop_type == PropertyType.DATE else tagged.value
        millis = epoch_millis(moment)
        return str(millis) if prop_type == PropertyType.STRING else millis
    if isinstance(tagged, CompositeVal):
        return to_json_text(tagged.value)
    if isinstance(tagged, BoolVal):
        return "true" if tagged.value else "false"
    if isinstance(tagged, NumberVal):
        if prop_type == PropertyType.STRING:
            return _number_text(tagged.value)
        return tagged.value
    return tagged.value


# ── Key Formatting ──────────────────────────────────────────────────────────


def format_key(key: str) -> str:
    """``"Full  Name"`` -> ``"full_name"``."""
    return _WHITESPACE.sub("_", str(key).strip().lower())


def format_traits(traits: dict[str, Any]) -> dict[str, Any]:
    """Rewrite every key the way HubSpot reports property names.

    When two keys collapse to the same name, the later one wins.
    """
    return {format_key(key): value for key, value in traits.items()}


# ── Normalization ───────────────────────────────────────────────────────────


def normalize(
    traits: dict[str, Any] | None,
    definitions: Iterable[PropertyDefinition],
) -> list[NormalizedProperty]:
    """Filter ``traits`` down to known properties and coerce their values.

    Args:
        traits: Raw trait map (any key case, heterogeneous values).
        definitions: Mutable property definitions for the account.

    Returns:
        One NormalizedProperty per definition with a matching trait, in
        definition order. Unknown traits are dropped.
    """
    if not traits:
        return []

    formatted = format_traits(traits)
    properties: list[NormalizedProperty] = []

    for definition in definitions:
        if definition.name not in formatted:
            continue
        value = coerce(tag(formatted[definition.name]), definition.type)
        logger.debug(
            "normalizer.property_included",
            property=definition.name,
            type=definition.type.value,
        )
        properties.append(NormalizedProperty(property=definition.name, value=value))

    logger.debug(
        "normalizer.filtered",
        received=len(formatted),
        kept=len(properties),
    )
    return properties


# ── Date Traversal ──────────────────────────────────────────────────────────


def traverse_dates(obj: Any) -> Any:
    """Return a copy of ``obj`` with ISO-8601 strings replaced by datetimes."""
    if isinstance(obj, dict):
        return {key: traverse_dates(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [traverse_dates(value) for value in obj]
    if isinstance(obj, str):
        parsed = parse_iso_date(obj)
        return parsed if parsed is not None else obj
    return obj


def convert_dates(obj: Any) -> Any:
    """Return a copy of ``obj`` with every date (or ISO string) as epoch ms."""
    traversed = traverse_dates(obj)
    return _dates_to_millis(traversed)


def _dates_to_millis(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {key: _dates_to_millis(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_dates_to_millis(value) for value in obj]
    if isinstance(obj, datetime):
        return epoch_millis(obj)
    if isinstance(obj, date):
        return epoch_millis(datetime(obj.year, obj.month, obj.day, tzinfo=timezone.utc))
    return obj
