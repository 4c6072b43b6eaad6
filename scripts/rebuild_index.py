"""Rebuild the Redis audio URL index from every artifact in storage."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import get_settings
from src.ingestion.storage import BlobStore, SermonIndex, get_redis_client, get_supabase_client
from src.worker.runner import build_retry_policy


async def rebuild(bucket: str) -> int:
    settings = get_settings()
    retry_policy = build_retry_policy(settings)
    redis_client = get_redis_client(settings.redis_url)
    blob_store = BlobStore(
        get_supabase_client(settings.supabase_url, settings.supabase_key),
        bucket,
        retry_policy,
    )
    try:
        return await SermonIndex(redis_client, retry_policy).rebuild(blob_store)
    finally:
        await redis_client.aclose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--bucket", default=None, help="Storage bucket (defaults to settings)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    indexed = asyncio.run(rebuild(args.bucket or get_settings().storage_bucket))
    print(f"\nSuccess! Index 'audio_url_index' was populated with {indexed} entries.")
