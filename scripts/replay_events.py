#!/usr/bin/env python3
"""CLI script to replay identify/track messages into HubSpot.

Usage:
    uv run python scripts/replay_events.py events.jsonl
    uv run python scripts/replay_events.py events.jsonl --portal-id 62515 --api-key demo

Reads newline-delimited JSON messages and sends each one through the contact
sync engine. Account and endpoint settings come from the environment or .env
file; --portal-id / --api-key override the configured account.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure project root is on sys.path so we can import src.hubsync
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def main_async(args: argparse.Namespace) -> bool:
    from src.hubsync.config import get_settings
    from src.hubsync.core.logging import configure_structlog
    from src.hubsync.main import create_engine
    from src.hubsync.replay import replay

    settings = get_settings()
    configure_structlog(settings)

    integration = settings.integration_settings().model_copy(
        update={
            key: value
            for key, value in {"portal_id": args.portal_id, "api_key": args.api_key}.items()
            if value
        }
    )
    engine = create_engine(settings, integration)

    with open(args.path, encoding="utf-8") as handle:
        result = await replay(engine, handle)

    print(f"Identified: {result.identified}")
    print(f"Tracked:    {result.tracked}")
    print(f"Skipped:    {result.skipped}")
    print(f"Errors:     {len(result.errors)}")
    for error in result.errors:
        print(f"  {error}")
    return result.ok


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay identify/track messages into HubSpot")
    parser.add_argument("path", help="File of newline-delimited JSON messages")
    parser.add_argument("--portal-id", default=None, help="HubSpot portal id override")
    parser.add_argument("--api-key", default=None, help="HubSpot API key override")
    args = parser.parse_args()

    ok = asyncio.run(main_async(args))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
