"""Storage adapters: artifact JSON in Supabase Storage, lookup index in Redis."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import redis.asyncio as redis
from supabase import Client, create_client

from src.errors import ArtifactNotFoundError
from src.transcription.retry import RetryPolicy

if TYPE_CHECKING:
    from src.ingestion.models import SermonArtifact

logger = logging.getLogger(__name__)

AUDIO_URL_INDEX = "audio_url_index"
INDEX_SNAPSHOT_KEY = f"{AUDIO_URL_INDEX}.json"


def get_supabase_client(url: str, key: str) -> Client:
    """Create and return a Supabase client."""
    return create_client(url, key)


def get_redis_client(url: str) -> redis.Redis:
    """Create and return an asyncio Redis client that decodes to ``str``."""
    return redis.from_url(url, encoding="utf-8", decode_responses=True)


def _is_not_found(exc: Exception) -> bool:
    status = getattr(exc, "status", None) or getattr(exc, "status_code", None)
    if str(status) == "404":
        return True
    return "not found" in str(exc).lower()


class BlobStore:
    """One JSON document per artifact in a Supabase Storage bucket.

    Every call is retried on transient network failures.  Listing pages are
    addressed by an opaque token (the next offset, as a string).
    """

    def __init__(self, client: Client, bucket: str, retry_policy: RetryPolicy) -> None:
        self.client = client
        self.bucket = bucket
        self.retry_policy = retry_policy

    def _files(self) -> Any:
        return self.client.storage.from_(self.bucket)

    def _upload(self, key: str, data: bytes) -> None:
        self._files().upload(
            key,
            data,
            {"content-type": "application/json", "upsert": "true"},
        )

    def _remove(self, key: str) -> None:
        self._files().remove([key])

    def _download(self, key: str) -> bytes:
        try:
            return self._files().download(key)
        except Exception as exc:
            if _is_not_found(exc):
                raise ArtifactNotFoundError(f"No object stored under {key!r}") from exc
            raise

    def _list(self, prefix: str | None, offset: int, limit: int) -> list[dict[str, Any]]:
        options: dict[str, Any] = {
            "limit": limit,
            "offset": offset,
            "sortBy": {"column": "name", "order": "asc"},
        }
        if prefix:
            options["search"] = prefix
        return self._files().list(None, options)

    async def put(self, key: str, data: bytes) -> None:
        await self.retry_policy.call(
            asyncio.to_thread, self._upload, key, data, description=f"Upload {key}"
        )

    async def delete(self, key: str) -> None:
        await self.retry_policy.call(
            asyncio.to_thread, self._remove, key, description=f"Delete {key}"
        )

    async def get(self, key: str) -> bytes:
        return await self.retry_policy.call(
            asyncio.to_thread, self._download, key, description=f"Get object {key!r}"
        )

    async def list(
        self,
        prefix: str | None = None,
        page_token: str | None = None,
        page_size: int = 100,
    ) -> tuple[list[dict[str, Any]], str | None]:
        """Return one page of ``{"key", ...}`` entries and the next page token."""
        offset = int(page_token) if page_token else 0
        items = await self.retry_policy.call(
            asyncio.to_thread,
            self._list,
            prefix,
            offset,
            page_size,
            description="List objects",
        )
        entries = [{"key": item["name"], **item} for item in items]
        next_token = str(offset + len(items)) if len(items) == page_size else None
        return entries, next_token

    async def iter_keys(self, prefix: str | None = None) -> AsyncIterator[str]:
        """Yield every key in the bucket, following pagination."""
        token: str | None = None
        page_count = 0
        while True:
            entries, token = await self.list(prefix=prefix, page_token=token)
            page_count += 1
            logger.debug("Fetched page %d: %d files", page_count, len(entries))
            for entry in entries:
                yield entry["key"]
            if token is None:
                return

    async def put_artifact(self, artifact: SermonArtifact) -> None:
        data = json.dumps(artifact.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")
        await self.put(artifact.key, data)
        logger.info("Successfully uploaded %s.", artifact.key)

    async def get_artifact(self, sermon_id: str) -> dict[str, Any]:
        return json.loads(await self.get(f"{sermon_id}.json"))


class SermonIndex:
    """Redis index: ``audio_url_index`` plus one metadata hash per sermon.

    Writes are single-key upserts; no application lock is taken because each
    sermon owns a distinct id.
    """

    def __init__(self, client: redis.Redis, retry_policy: RetryPolicy) -> None:
        self.client = client
        self.retry_policy = retry_policy

    async def record(self, audio_url: str, sermon_id: str, title: str) -> None:
        """Point *audio_url* at *sermon_id* and store the sermon's metadata."""
        await self.retry_policy.call(
            self.client.hset,
            AUDIO_URL_INDEX,
            audio_url,
            sermon_id,
            description="Index update",
        )
        await self.retry_policy.call(
            self.client.hset,
            sermon_id,
            mapping={"title": title, "audioUrl": audio_url},
            description="Metadata update",
        )
        logger.info("Indexed %s -> %s", audio_url, sermon_id)

    async def lookup(self, audio_url: str) -> str | None:
        return await self.retry_policy.call(
            self.client.hget, AUDIO_URL_INDEX, audio_url, description="Index lookup"
        )

    async def get_metadata(self, sermon_id: str) -> dict[str, str]:
        return await self.retry_policy.call(
            self.client.hgetall, sermon_id, description="Metadata lookup"
        )

    async def all_entries(self) -> dict[str, str]:
        return await self.retry_policy.call(
            self.client.hgetall, AUDIO_URL_INDEX, description="Index read"
        )

    async def rebuild(self, blob_store: BlobStore) -> int:
        """Re-index every stored artifact; return how many were indexed.

        The filename is the source of truth for the sermon id.  Files without
        ``audioUrl`` or ``title`` are skipped; a file that cannot be read is
        logged and skipped so one bad object does not stop the rebuild.
        """
        keys = [
            key
            async for key in blob_store.iter_keys()
            if key.endswith(".json") and key != INDEX_SNAPSHOT_KEY
        ]
        logger.info("Found %d sermon files to process for indexing.", len(keys))

        indexed = 0
        for position, key in enumerate(keys, start=1):
            logger.info("Processing file %d of %d: %s", position, len(keys), key)
            sermon_id = key.removesuffix(".json")
            try:
                data = json.loads(await blob_store.get(key))
                audio_url, title = data.get("audioUrl"), data.get("title")
                if not audio_url or not title:
                    logger.warning("Skipping %s: missing 'audioUrl' or 'title'.", key)
                    continue
                if data.get("id") and data["id"] != sermon_id:
                    logger.warning(
                        "ID mismatch in %s: file content ID %r, using filename ID %r.",
                        key,
                        data["id"],
                        sermon_id,
                    )
                await self.record(audio_url, sermon_id, title)
                indexed += 1
            except Exception:
                logger.exception("Error processing file %s", key)

        logger.info("Index %r populated with %d entries.", AUDIO_URL_INDEX, indexed)
        return indexed
