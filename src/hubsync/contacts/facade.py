"""Typed accessors over inbound identify/track messages.

Messages arrive as arbitrary JSON documents. ``Identify`` and ``Track`` wrap
such a document and expose on-demand getters that return None rather than
raising when a field is missing. The mappers only depend on the narrow
``ProfileSource`` / ``EventSource`` protocols, so any object offering the
same getters can be synchronized.

Trait lookup is case- and separator-insensitive: ``traits.firstName``,
``traits.first_name`` and ``traits["First Name"]`` all resolve.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Protocol

_KEY_NOISE = re.compile(r"[\s_\-.]+")
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_ORDER_COMPLETED = re.compile(
    r"^[ _]?(completed[ _]?order|order[ _]?completed)[ _]?$", re.IGNORECASE
)

# Epoch values below this are seconds (one year in ms).
_SECONDS_CUTOFF = 31_557_600_000


class ProfileSource(Protocol):
    """What the identify mapper needs from a profile."""

    def traits(self) -> dict[str, Any]: ...
    def email(self) -> str | None: ...
    def position(self) -> str | None: ...
    def city(self) -> str | None: ...
    def zip(self) -> str | None: ...
    def first_name(self) -> str | None: ...
    def last_name(self) -> str | None: ...
    def address(self) -> Any: ...
    def phone(self) -> str | None: ...
    def created(self) -> datetime | None: ...


class EventSource(Protocol):
    """What the track mapper needs from an event."""

    def traits(self) -> dict[str, Any]: ...
    def email(self) -> str | None: ...
    def event(self) -> str | None: ...
    def revenue(self) -> int | float | None: ...


def _normalize_key(key: str) -> str:
    return _KEY_NOISE.sub("", key).lower()


def lookup(obj: Any, path: str) -> Any:
    """Resolve a dotted ``path`` in nested dicts, ignoring key case and separators."""
    current = obj
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        if part in current:
            current = current[part]
            continue
        wanted = _normalize_key(part)
        for key, value in current.items():
            if isinstance(key, str) and _normalize_key(key) == wanted:
                current = value
                break
        else:
            return None
    return current


def to_datetime(value: Any) -> datetime | None:
    """Interpret ISO strings, datetimes, dates and epoch numbers as UTC datetimes."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        millis = value * 1000 if abs(value) < _SECONDS_CUTOFF else value
        try:
            return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


class Message:
    """Base accessor over a raw message document."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(data or {})

    @property
    def raw(self) -> dict[str, Any]:
        return self._data

    def proxy(self, path: str) -> Any:
        return lookup(self._data, path)

    def type(self) -> str | None:
        return self.proxy("type")

    def user_id(self) -> str | None:
        return _text(self.proxy("userId"))

    def traits(self) -> dict[str, Any]:
        traits = self.proxy("context.traits")
        return dict(traits) if isinstance(traits, dict) else {}

    def _trait(self, path: str) -> Any:
        return lookup(self.traits(), path)

    def email(self) -> str | None:
        email = _text(self._trait("email"))
        if email:
            return email
        user_id = self.user_id()
        if user_id and _EMAIL.match(user_id):
            return user_id
        return None


class Identify(Message):
    """Accessors for an identify message; traits live at ``traits``."""

    def traits(self) -> dict[str, Any]:
        traits = self.proxy("traits")
        if isinstance(traits, dict):
            return dict(traits)
        return super().traits()

    def name(self) -> str | None:
        return _text(self._trait("name"))

    def position(self) -> str | None:
        return _text(self._trait("position")) or _text(self._trait("jobTitle"))

    def address(self) -> Any:
        return self._trait("address")

    def city(self) -> str | None:
        return _text(self._trait("city")) or _text(self._trait("address.city"))

    def zip(self) -> str | None:
        for path in ("zip", "postalCode", "address.zip", "address.postalCode"):
            value = _text(self._trait(path))
            if value:
                return value
        return None

    def first_name(self) -> str | None:
        first = _text(self._trait("firstName"))
        if first:
            return first
        name = self.name()
        if name:
            return name.strip().split(" ")[0] or None
        return None

    def last_name(self) -> str | None:
        last = _text(self._trait("lastName"))
        if last:
            return last
        name = self.name()
        if name:
            parts = name.strip().split(" ", 1)
            if len(parts) > 1:
                return parts[1].strip() or None
        return None

    def phone(self) -> str | None:
        return _text(self._trait("phone"))

    def created(self) -> datetime | None:
        value = self._trait("created")
        if value is None:
            value = self._trait("createdAt")
        return to_datetime(value)


class Track(Message):
    """Accessors for a track message; profile traits live at ``context.traits``."""

    def event(self) -> str | None:
        return _text(self.proxy("event"))

    def properties(self) -> dict[str, Any]:
        properties = self.proxy("properties")
        return dict(properties) if isinstance(properties, dict) else {}

    def email(self) -> str | None:
        email = _text(lookup(self.properties(), "email"))
        return email or super().email()

    def revenue(self) -> int | float | None:
        value = lookup(self.properties(), "revenue")
        event = self.event() or ""
        if value is None and _ORDER_COMPLETED.match(event):
            value = lookup(self.properties(), "total")
        return _number(value)


def _number(value: Any) -> int | float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        cleaned = re.sub(r"[^0-9.\-]", "", value)
        try:
            number = float(cleaned)
        except ValueError:
            return None
        return int(number) if number.is_integer() else number
    return None
