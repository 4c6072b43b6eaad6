"""Print the audio URL index and the metadata of one sample sermon."""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import get_settings
from src.ingestion.storage import SermonIndex, get_redis_client
from src.worker.runner import build_retry_policy


async def inspect(limit: int) -> None:
    settings = get_settings()
    redis_client = get_redis_client(settings.redis_url)
    index = SermonIndex(redis_client, build_retry_policy(settings))
    try:
        entries = await index.all_entries()
        if not entries:
            print("audio_url_index is empty.")
            return

        print(f"audio_url_index contains {len(entries)} entries:")
        for audio_url, sermon_id in list(entries.items())[:limit]:
            print(f"  {audio_url} -> {sermon_id}")

        sample_id = next(iter(entries.values()))
        metadata = await index.get_metadata(sample_id)
        if metadata:
            print(f"\nMetadata for sample sermon {sample_id}: {metadata}")
        else:
            print(f"\nNo metadata found for {sample_id}.")
    finally:
        await redis_client.aclose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--limit", type=int, default=50)
    args = parser.parse_args()
    asyncio.run(inspect(args.limit))
