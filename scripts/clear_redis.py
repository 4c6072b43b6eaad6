"""Flush the Redis database: the job queue, the audio URL index and all metadata.

Destructive. Requires ``--yes``; run ``scripts/rebuild_index.py`` afterwards to
restore the index from storage.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import get_settings
from src.ingestion.storage import get_redis_client


async def clear(redis_url: str) -> None:
    redis_client = get_redis_client(redis_url)
    try:
        print("Connected to Redis. Flushing database...")
        await redis_client.flushdb()
        print("Redis database flushed. All queues and index data are cleared.")
    finally:
        await redis_client.aclose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--yes", action="store_true", help="Confirm the flush")
    args = parser.parse_args(argv)

    if not args.yes:
        print("This deletes every key in the configured Redis database. Re-run with --yes to confirm.")
        return 1
    asyncio.run(clear(get_settings().redis_url))
    return 0


if __name__ == "__main__":
    sys.exit(main())
