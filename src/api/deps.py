"""Request-scoped access to the clients built in the app lifespan."""

from __future__ import annotations

from fastapi import Request

from src.ingestion.storage import BlobStore, SermonIndex
from src.worker.queue import JobQueue


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_index(request: Request) -> SermonIndex:
    return request.app.state.index


def get_queue(request: Request) -> JobQueue:
    return request.app.state.queue
