"""Sermon document helpers: fetch the PDF, extract its text, split title/body."""

from __future__ import annotations

import io
import logging
import re
from collections.abc import Sequence

import httpx
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from src.errors import ErrorKind, InvalidInputError, MissingDelimiterError, SermonProcessingError
from src.transcription.retry import RetryPolicy

logger = logging.getLogger(__name__)

UNTITLED = "Untitled"


async def fetch_document(
    client: httpx.AsyncClient,
    url: str,
    retry_policy: RetryPolicy,
) -> bytes:
    """Download the document at *url*.

    Transport failures are retried by *retry_policy*.  A 4xx response is
    invalid input; a 5xx response is reported as a network problem so the
    queue may re-attempt the item later.
    """

    async def _get() -> httpx.Response:
        return await client.get(url, follow_redirects=True)

    response = await retry_policy.call(_get, description="PDF fetch")
    if response.is_server_error:
        raise SermonProcessingError(
            f"Failed to fetch PDF with status: {response.status_code}",
            kind=ErrorKind.RETRYABLE_NETWORK,
        )
    if response.is_error:
        raise InvalidInputError(f"Failed to fetch PDF with status: {response.status_code}")
    return response.content


def extract_pages(pdf_bytes: bytes) -> list[str]:
    """Return the text of every page, in order."""
    try:
        reader = PdfReader(io.BytesIO(pdf_bytes))
        return [page.extract_text() or "" for page in reader.pages]
    except (PdfReadError, ValueError) as exc:
        raise InvalidInputError(f"Document is not a readable PDF: {exc}") from exc


def extract_title(first_page_text: str, delimiters: Sequence[str]) -> str:
    """Take the text before the first delimiter present as the display title.

    Falls back to ``"Untitled"`` when no delimiter occurs or the title is blank.
    """
    title = UNTITLED
    for delimiter in delimiters:
        if not delimiter:
            continue
        parts = first_page_text.split(delimiter)
        if len(parts) >= 2:
            title = parts[0].strip()
            break
    return re.sub(r"\s+", " ", title).strip() or UNTITLED


def clean_document_text(text: str, delimiters: Sequence[str]) -> str:
    """Return the body of the document: everything after the first delimiter.

    Raises:
        MissingDelimiterError: No delimiter occurs, or nothing follows it.
    """
    for delimiter in delimiters:
        if not delimiter:
            continue
        index = text.find(delimiter)
        if index == -1:
            continue
        logger.debug("Delimiter %r found at %d. Cleaning document text...", delimiter, index)
        content = text[index + len(delimiter) :].strip()
        if content:
            return content
        raise MissingDelimiterError("Document content after delimiter is empty.")

    expected = " or ".join(repr(d) for d in delimiters if d)
    raise MissingDelimiterError(f"None of the expected delimiters ({expected}) found in document.")
