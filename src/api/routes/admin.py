"""Admin endpoints: index maintenance and queue inspection."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from src.api.deps import get_blob_store, get_index, get_queue
from src.api.models import IndexRebuildResponse, QueueCountsResponse
from src.ingestion.storage import BlobStore, SermonIndex
from src.worker.queue import JobQueue

router = APIRouter(prefix="/api/admin")


@router.post("/index/rebuild", response_model=IndexRebuildResponse)
async def rebuild_index(
    blob_store: Annotated[BlobStore, Depends(get_blob_store)],
    index: Annotated[SermonIndex, Depends(get_index)],
) -> IndexRebuildResponse:
    """Re-create the audio URL index from every stored artifact."""
    return IndexRebuildResponse(indexed=await index.rebuild(blob_store))


@router.get("/index", response_model=dict[str, str])
async def read_index(index: Annotated[SermonIndex, Depends(get_index)]) -> dict[str, str]:
    """Return the full ``audioUrl -> sermon id`` map."""
    return await index.all_entries()


@router.get("/queue", response_model=QueueCountsResponse)
async def queue_counts(queue: Annotated[JobQueue, Depends(get_queue)]) -> QueueCountsResponse:
    return QueueCountsResponse(**await queue.counts())
