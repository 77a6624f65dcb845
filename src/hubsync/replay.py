"""Replay newline-delimited JSON messages through a ContactSyncEngine.

Each line is one message document with ``type`` ``identify`` or ``track``.
Messages are dispatched one at a time; a failure is logged and counted, and
the remaining messages are still replayed.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

import structlog
from pydantic import BaseModel, Field

from src.hubsync.contacts import ContactSyncEngine, Identify, Track
from src.hubsync.contacts.exceptions import HubSpotSyncError

logger = structlog.get_logger(__name__)


class ReplayResult(BaseModel):
    """Outcome summary of one replay run."""

    identified: int = 0
    tracked: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def parse_lines(lines: Iterable[str]) -> Iterable[tuple[int, dict[str, Any] | None]]:
    """Yield ``(line_number, document)``; blank lines are skipped, bad JSON yields None."""
    for number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            document = json.loads(line)
        except json.JSONDecodeError:
            yield number, None
            continue
        yield number, document if isinstance(document, dict) else None


async def replay(engine: ContactSyncEngine, lines: Iterable[str]) -> ReplayResult:
    result = ReplayResult()

    for number, document in parse_lines(lines):
        if document is None:
            result.errors.append(f"line {number}: not a JSON object")
            logger.warning("replay.invalid_line", line=number)
            continue

        kind = str(document.get("type", "")).lower()
        try:
            if kind == "identify":
                await engine.identify(Identify(document))
                result.identified += 1
            elif kind == "track":
                await engine.track(Track(document))
                result.tracked += 1
            else:
                result.skipped += 1
                logger.debug("replay.unsupported_type", line=number, type=kind)
        except HubSpotSyncError as exc:
            result.errors.append(f"line {number}: {exc}")
            logger.error("replay.message_failed", line=number, type=kind, error=str(exc))

    logger.info(
        "replay.complete",
        identified=result.identified,
        tracked=result.tracked,
        skipped=result.skipped,
        errors=len(result.errors),
    )
    return result
