"""Sermon endpoints: bulk submission, list, lookup and detail views."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query

from src.api.deps import get_blob_store, get_index, get_queue
from src.api.models import (
    BulkSubmitRequest,
    BulkSubmitResponse,
    SermonLookupResponse,
    SermonSummary,
)
from src.errors import ArtifactNotFoundError
from src.ingestion.storage import INDEX_SNAPSHOT_KEY, BlobStore, SermonIndex
from src.worker.queue import JobQueue

logger = logging.getLogger(__name__)

router = APIRouter()

JOB_NAME = "process-sermon"


def title_from_id(sermon_id: str) -> str:
    """Recover a display title from ``<slug>_<language>_<random>``."""
    parts = sermon_id.split("_")
    return " ".join(parts[:-2]) or "Untitled Sermon"


@router.post("/api/sermons/bulk", response_model=BulkSubmitResponse, status_code=202)
async def submit_sermons(
    body: BulkSubmitRequest,
    queue: Annotated[JobQueue, Depends(get_queue)],
) -> BulkSubmitResponse:
    """Queue every sermon for background processing."""
    job_ids = [
        await queue.add(JOB_NAME, {"sermon": sermon.model_dump(by_alias=True)})
        for sermon in body.sermons
    ]
    logger.info("Queued %d sermon(s) for processing", len(job_ids))
    return BulkSubmitResponse(
        message="Sermon processing started in the background.",
        job_ids=job_ids,
    )


@router.get("/api/sermons", response_model=list[SermonSummary])
async def list_sermons(
    blob_store: Annotated[BlobStore, Depends(get_blob_store)],
    index: Annotated[SermonIndex, Depends(get_index)],
) -> list[SermonSummary]:
    """List stored sermons (id and title only, never the full artifact)."""
    sermons: list[SermonSummary] = []
    async for key in blob_store.iter_keys():
        if not key.endswith(".json") or key == INDEX_SNAPSHOT_KEY:
            continue
        sermon_id = key.removesuffix(".json")
        metadata = await index.get_metadata(sermon_id)
        sermons.append(
            SermonSummary(id=sermon_id, title=metadata.get("title") or title_from_id(sermon_id))
        )
    return sermons


@router.get("/api/sermons/lookup", response_model=SermonLookupResponse)
async def lookup_sermon(
    index: Annotated[SermonIndex, Depends(get_index)],
    audio_url: Annotated[str, Query(alias="audioUrl")],
) -> SermonLookupResponse:
    """Find the sermon id produced for a recording."""
    sermon_id = await index.lookup(audio_url)
    if not sermon_id:
        raise HTTPException(status_code=404, detail="Sermon not found")
    metadata = await index.get_metadata(sermon_id)
    return SermonLookupResponse(id=sermon_id, title=metadata.get("title"))


@router.get("/api/sermons/{sermon_id}")
async def get_sermon(
    sermon_id: str,
    blob_store: Annotated[BlobStore, Depends(get_blob_store)],
) -> dict[str, Any]:
    """Return the full artifact: text, transcript and alignment."""
    try:
        return await blob_store.get_artifact(sermon_id)
    except ArtifactNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Sermon not found") from exc
