"""Pydantic request/response schemas for the Sermon Alignment API."""

from __future__ import annotations

from pydantic import BaseModel

from src.ingestion.models import SermonRequest


class BulkSubmitRequest(BaseModel):
    """Request body for the /api/sermons/bulk endpoint."""

    sermons: list[SermonRequest]


class BulkSubmitResponse(BaseModel):
    """Response body for the /api/sermons/bulk endpoint."""

    message: str
    job_ids: list[str]


class SermonSummary(BaseModel):
    """Summary representation of a processed sermon for list views."""

    id: str
    title: str


class SermonLookupResponse(BaseModel):
    """Response body for the /api/sermons/lookup endpoint."""

    id: str
    title: str | None = None


class IndexRebuildResponse(BaseModel):
    """Response body for the /api/admin/index/rebuild endpoint."""

    indexed: int


class QueueCountsResponse(BaseModel):
    """Job counts per queue state."""

    wait: int
    active: int
    delayed: int
    failed: int
    completed: int
