"""Per-credential cache of HubSpot contact property definitions.

The property schema only changes when someone edits properties in the HubSpot
UI, so it is fetched once per API key and reused for an hour. The cache is
bounded: when it holds more than ``max_entries`` credentials the least
recently used one is evicted.

Entries are replaced wholesale with a single dict assignment, never mutated,
so concurrent coroutines on the same event loop never observe a partial
entry. Concurrent misses for the same credential may each fetch.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from src.hubsync.contacts.schemas import PropertyDefinition

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 3600.0
DEFAULT_MAX_ENTRIES = 500

PropertyLoader = Callable[[str], Awaitable[list[dict[str, Any]]]]


@dataclass(frozen=True)
class SchemaCacheEntry:
    credential: str
    definitions: tuple[PropertyDefinition, ...]
    fetched_at: float


class PropertySchemaCache:
    """Read-through TTL + LRU cache of mutable property definitions.

    Args:
        loader: Coroutine fetching the raw property list for a credential.
        ttl_seconds: Age after which an entry is treated as absent.
        max_entries: Maximum number of credentials held at once.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        loader: PropertyLoader,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._loader = loader
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, SchemaCacheEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, credential: str) -> bool:
        return self.get(credential)[1]

    def get(self, credential: str) -> tuple[tuple[PropertyDefinition, ...], bool]:
        """Return ``(definitions, found)``; expired entries are dropped."""
        entry = self._entries.get(credential)
        if entry is None:
            return (), False

        if self._clock() - entry.fetched_at >= self._ttl:
            self._entries.pop(credential, None)
            logger.debug("schema_cache.expired", age=self._clock() - entry.fetched_at)
            return (), False

        self._entries.move_to_end(credential)
        return entry.definitions, True

    async def fetch(self, credential: str) -> tuple[PropertyDefinition, ...]:
        """Fetch definitions from HubSpot, keep only mutable ones, and store them.

        Loader failures propagate and leave the cache untouched.
        """
        raw = await self._loader(credential)
        definitions = tuple(
            definition
            for definition in (PropertyDefinition.from_api(item) for item in raw)
            if definition.mutable
        )

        self._store(
            SchemaCacheEntry(
                credential=credential,
                definitions=definitions,
                fetched_at=self._clock(),
            )
        )
        logger.info(
            "schema_cache.fetched",
            received=len(raw),
            mutable=len(definitions),
        )
        return definitions

    async def ensure(self, credential: str) -> tuple[PropertyDefinition, ...]:
        """Return cached definitions, fetching them on a miss or after expiry."""
        definitions, found = self.get(credential)
        if found:
            logger.debug("schema_cache.hit")
            return definitions

        logger.debug("schema_cache.miss")
        return await self.fetch(credential)

    def invalidate(self, credential: str) -> None:
        self._entries.pop(credential, None)

    def clear(self) -> None:
        self._entries.clear()

    def _store(self, entry: SchemaCacheEntry) -> None:
        self._entries[entry.credential] = entry
        self._entries.move_to_end(entry.credential)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
            logger.debug("schema_cache.evicted", remaining=len(self._entries))
