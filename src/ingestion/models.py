"""Data models for the sermon pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SermonRequest(BaseModel):
    """One sermon to process: the written text, the recording, the language."""

    model_config = ConfigDict(populate_by_name=True)

    pdf_url: str = Field(alias="pdfUrl")
    audio_url: str = Field(alias="audioUrl")
    language: str


@dataclass
class SermonArtifact:
    """The persisted unit: source text, transcript and their alignment."""

    id: str
    title: str
    pdf_text: str
    transcription: dict[str, Any]
    alignment: dict[str, list[dict[str, Any]]]
    audio_url: str

    @property
    def key(self) -> str:
        return f"{self.id}.json"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the stable artifact JSON schema."""
        return {
            "id": self.id,
            "title": self.title,
            "pdfText": self.pdf_text,
            "transcription": self.transcription,
            "alignment": self.alignment,
            "audioUrl": self.audio_url,
        }
