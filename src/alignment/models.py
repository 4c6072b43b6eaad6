"""Data models for text/transcript alignment."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Token:
    """A whitespace-delimited unit of source text."""

    original: str
    normalized: str


@dataclass(frozen=True)
class TimestampedWord:
    """One transcript word with provider-assigned timing.

    ``chunk`` is the ``(start, end)`` span of the segment the word came from.
    """

    word: str
    start_time: float | None = None
    end_time: float | None = None
    chunk: tuple[float, float] | None = None


@dataclass(frozen=True)
class AlignedEntry:
    """A source token paired with the time it was spoken, if found."""

    word: str
    start_time: float | None = None
    end_time: float | None = None
    chunk: tuple[float, float] | None = None

    @property
    def matched(self) -> bool:
        return self.start_time is not None

    @classmethod
    def unmatched(cls, token: Token) -> AlignedEntry:
        return cls(word=token.original)

    @classmethod
    def matched_to(cls, token: Token, spoken: TimestampedWord) -> AlignedEntry:
        return cls(
            word=token.original,
            start_time=spoken.start_time,
            end_time=spoken.end_time,
            chunk=spoken.chunk,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted ``alignedText`` entry shape."""
        return {
            "word": self.word,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "chunk": list(self.chunk) if self.chunk is not None else None,
        }
