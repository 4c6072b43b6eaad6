"""End-to-end sermon pipeline: fetch -> extract -> transcribe -> align -> store."""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
import string

import httpx

from src.alignment.aligner import align_text
from src.errors import ErrorKind, InvalidTranscriptError, classify_error
from src.ingestion.documents import (
    clean_document_text,
    extract_pages,
    extract_title,
    fetch_document,
)
from src.ingestion.models import SermonArtifact, SermonRequest
from src.ingestion.storage import BlobStore, SermonIndex
from src.pipeline_config import PipelineConfig
from src.transcription.orchestrator import TaskLease, TranscriptionOrchestrator
from src.transcription.retry import RetryPolicy

logger = logging.getLogger(__name__)

ID_ALPHABET = string.ascii_lowercase + string.digits
MAX_SLUG_LENGTH = 100

_FAILURE_HINTS: dict[ErrorKind, str] = {
    ErrorKind.INVALID_INPUT: (
        "The document could not be fetched or is not a valid PDF. "
        "Check that 'pdfUrl' points to a valid PDF."
    ),
    ErrorKind.MISSING_DELIMITER: (
        "The PDF is not formatted with the required title delimiter. "
        "Check the PDF file for this sermon."
    ),
    ErrorKind.LEASE_TIMEOUT: (
        "The task lease could not be renewed in time. "
        "The job will be retried automatically."
    ),
    ErrorKind.PROVIDER_TERMINAL_FAILURE: "The transcription provider gave up on this recording.",
    ErrorKind.INVALID_TRANSCRIPT: (
        "The transcript has no segment structure. "
        "Check the recording at 'audioUrl'; the job is not retried."
    ),
    ErrorKind.CANCELLED: "Shutdown interrupted the transcription wait; the job returns to the queue.",
}


def slugify_title(title: str) -> str:
    """Lower-case, keep ``[a-z0-9_]`` and spaces, join words with ``_``."""
    slug = re.sub(r"[^a-z0-9\s_]", "", title.lower())
    slug = re.sub(r"\s+", "_", slug)
    slug = re.sub(r"^_|_$", "", slug)
    return slug[:MAX_SLUG_LENGTH]


def generate_random_id(length: int = 6) -> str:
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


def generate_sermon_id(title: str, language: str) -> str:
    """Build ``<slug>_<language>_<random>``; fresh on every call."""
    return f"{slugify_title(title)}_{language}_{generate_random_id()}"


class SermonPipeline:
    """Runs one sermon request end to end.

    Every run is safe to repeat: ids get a fresh random suffix per attempt and
    nothing depends on a prior partial write.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        orchestrator: TranscriptionOrchestrator,
        blob_store: BlobStore,
        index: SermonIndex,
        config: PipelineConfig | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.http_client = http_client
        self.orchestrator = orchestrator
        self.blob_store = blob_store
        self.index = index
        self.config = config or PipelineConfig()
        self.retry_policy = retry_policy or orchestrator.retry_policy

    async def process(
        self,
        request: SermonRequest,
        lease: TaskLease | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> SermonArtifact:
        """Process *request*; return the stored artifact.

        Every failure is logged with a diagnostic report and re-raised.  A
        failed run leaves nothing visible: an artifact written before the
        index update failed is deleted again.
        """
        try:
            return await self._run(request, lease, cancel_event)
        except Exception as exc:
            self._report_failure(request, exc)
            raise

    async def _run(
        self,
        request: SermonRequest,
        lease: TaskLease | None,
        cancel_event: asyncio.Event | None,
    ) -> SermonArtifact:
        # 1. Document
        pdf_bytes = await fetch_document(self.http_client, request.pdf_url, self.retry_policy)
        pages = extract_pages(pdf_bytes)
        first_page = pages[0] if pages else ""
        logger.debug("First page text: %s...", first_page[:500])
        title = extract_title(first_page, self.config.delimiters)
        pdf_text = clean_document_text(" ".join(pages), self.config.delimiters)

        # 2. Transcription
        transcription = await self.orchestrator.transcribe(
            request.audio_url,
            request.language,
            lease=lease,
            cancel_event=cancel_event,
        )
        if not isinstance(transcription, dict) or not isinstance(
            transcription.get("segments"), list
        ):
            raise InvalidTranscriptError(
                "Transcription service did not return a valid result: no 'segments' list."
            )

        # The provider's own language detection is not trusted.
        transcription["detected_language"] = request.language

        # 3. Alignment
        alignment = align_text(pdf_text, transcription, self.config)

        # 4. Persist: artifact first, then the index.
        artifact = SermonArtifact(
            id=generate_sermon_id(title, request.language),
            title=title,
            pdf_text=pdf_text,
            transcription=transcription,
            alignment=alignment,
            audio_url=request.audio_url,
        )
        await self.blob_store.put_artifact(artifact)
        try:
            await self.index.record(request.audio_url, artifact.id, title)
        except Exception:
            await self._discard(artifact)
            raise
        logger.info("Stored sermon %s for %s", artifact.id, request.audio_url)
        return artifact

    async def _discard(self, artifact: SermonArtifact) -> None:
        """Delete an artifact whose index entry could not be written."""
        try:
            await self.blob_store.delete(artifact.key)
        except Exception:
            logger.exception("Could not delete unindexed artifact %s", artifact.key)
        else:
            logger.warning("Deleted unindexed artifact %s", artifact.key)

    def _report_failure(self, request: SermonRequest, exc: Exception) -> None:
        kind = classify_error(exc)
        hint = _FAILURE_HINTS.get(kind)
        if hint is None:
            logger.error("Error processing %s: %s", request.audio_url, exc, exc_info=exc)
            return
        logger.error(
            "%s error for %s: %s\n%s\nSermon data: %s",
            kind.value,
            request.audio_url,
            exc,
            hint,
            request.model_dump_json(by_alias=True, indent=2),
        )
