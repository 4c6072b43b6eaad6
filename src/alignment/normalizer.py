"""Normalization and tokenization of source text and transcripts."""

from __future__ import annotations

import re
from typing import Any

from src.alignment.models import TimestampedWord, Token

_PUNCTUATION_RE = re.compile(r"[.,/#!$%^&*;:{}=\-_`~()]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Lower-case *text* and strip the fixed punctuation class."""
    return _PUNCTUATION_RE.sub("", text.lower())


def tokenize(text: str) -> list[Token]:
    """Split *text* on whitespace runs, dropping empty pieces."""
    return [
        Token(original=word, normalized=normalize(word))
        for word in _WHITESPACE_RE.split(text)
        if word
    ]


def _span(segment: dict[str, Any]) -> tuple[float, float] | None:
    start, end = segment.get("start"), segment.get("end")
    if start is None or end is None:
        return None
    return (start, end)


def words_with_timestamps(transcription: dict[str, Any] | None) -> list[TimestampedWord]:
    """Flatten the segment -> word hierarchy of a transcript.

    A transcript with a missing or empty ``segments`` list yields an empty
    sequence; segments without ``words`` contribute nothing.
    """
    if not transcription or not transcription.get("segments"):
        return []

    words: list[TimestampedWord] = []
    for segment in transcription["segments"]:
        chunk = _span(segment)
        for word in segment.get("words") or []:
            words.append(
                TimestampedWord(
                    word=normalize((word.get("word") or "").strip()),
                    start_time=word.get("start"),
                    end_time=word.get("end"),
                    chunk=chunk,
                )
            )
    return words
