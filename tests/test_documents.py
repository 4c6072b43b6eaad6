"""Tests for PDF fetching, text extraction and title/body splitting."""

from __future__ import annotations

import asyncio
import io
from unittest.mock import AsyncMock

import httpx
import pytest
from pypdf import PdfWriter

from src.errors import ErrorKind, InvalidInputError, MissingDelimiterError, SermonProcessingError
from src.ingestion.documents import (
    UNTITLED,
    clean_document_text,
    extract_pages,
    extract_title,
    fetch_document,
)
from src.pipeline_config import DEFAULT_DELIMITERS
from src.transcription.retry import RetryPolicy

GLYPH = "\uf6e1"


class TestExtractTitle:
    def test_text_before_glyph_delimiter(self) -> None:
        assert extract_title(f"Amazing Grace {GLYPH} Grace is sufficient", DEFAULT_DELIMITERS) == (
            "Amazing Grace"
        )

    def test_falls_back_to_backtick(self) -> None:
        assert extract_title("Amazing Grace ` Grace is sufficient", DEFAULT_DELIMITERS) == (
            "Amazing Grace"
        )

    def test_collapses_whitespace(self) -> None:
        assert extract_title(f"  Amazing\n   Grace\t{GLYPH}body", DEFAULT_DELIMITERS) == (
            "Amazing Grace"
        )

    def test_untitled_without_delimiter(self) -> None:
        assert extract_title("Amazing Grace, Grace is sufficient", DEFAULT_DELIMITERS) == UNTITLED

    def test_untitled_when_title_blank(self) -> None:
        assert extract_title(f"   {GLYPH} body", DEFAULT_DELIMITERS) == UNTITLED

    def test_empty_delimiters_are_ignored(self) -> None:
        assert extract_title("Title ` body", ("", "`")) == "Title"


class TestCleanDocumentText:
    def test_returns_body_after_delimiter(self) -> None:
        text = f"Amazing Grace {GLYPH}  Grace is sufficient. "
        assert clean_document_text(text, DEFAULT_DELIMITERS) == "Grace is sufficient."

    def test_first_configured_delimiter_wins(self) -> None:
        text = f"Title ` subtitle {GLYPH} body"
        assert clean_document_text(text, DEFAULT_DELIMITERS) == "body"

    def test_missing_delimiter_raises(self) -> None:
        with pytest.raises(MissingDelimiterError) as excinfo:
            clean_document_text("No delimiter anywhere", DEFAULT_DELIMITERS)

        assert excinfo.value.kind is ErrorKind.MISSING_DELIMITER
        assert "None of the expected delimiters" in excinfo.value.message

    def test_empty_body_raises(self) -> None:
        with pytest.raises(MissingDelimiterError, match="empty"):
            clean_document_text(f"Amazing Grace {GLYPH}   ", DEFAULT_DELIMITERS)


class TestExtractPages:
    def test_blank_pdf(self) -> None:
        writer = PdfWriter()
        writer.add_blank_page(width=72, height=72)
        writer.add_blank_page(width=72, height=72)
        buffer = io.BytesIO()
        writer.write(buffer)

        assert extract_pages(buffer.getvalue()) == ["", ""]

    def test_empty_bytes_are_invalid(self) -> None:
        with pytest.raises(InvalidInputError):
            extract_pages(b"")


class TestFetchDocument:
    @staticmethod
    def _fetch(handler, retry_policy: RetryPolicy | None = None) -> bytes:
        async def run() -> bytes:
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                return await fetch_document(
                    client,
                    "https://example.com/sermon.pdf",
                    retry_policy or RetryPolicy(sleep=AsyncMock()),
                )

        return asyncio.run(run())

    def test_returns_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"%PDF-1.7")

        assert self._fetch(handler) == b"%PDF-1.7"

    def test_client_error_is_invalid_input(self) -> None:
        with pytest.raises(InvalidInputError, match="404"):
            self._fetch(lambda request: httpx.Response(404))

    def test_server_error_is_retryable_network(self) -> None:
        with pytest.raises(SermonProcessingError) as excinfo:
            self._fetch(lambda request: httpx.Response(503))
        assert excinfo.value.kind is ErrorKind.RETRYABLE_NETWORK

    def test_transport_failure_is_retried(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(200, content=b"pdf")

        assert self._fetch(handler) == b"pdf"
        assert len(calls) == 2
