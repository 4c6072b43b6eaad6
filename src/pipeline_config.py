"""Pipeline configuration: strategy enums and PipelineConfig dataclass."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from src.config import Settings


class AlignmentPolicy(str, Enum):
    """Available matching policies for text/transcript alignment."""

    OPTIMAL = "optimal"
    GREEDY = "greedy"


DEFAULT_DELIMITERS: tuple[str, ...] = ("\uf6e1", "`")


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable configuration for the sermon pipeline.

    Holds the alignment policy and its knobs, plus the title/body
    delimiters used when cleaning extracted document text.  Defaults mirror
    the project's current behaviour (optimal alignment, greedy fallback
    above four million table cells).
    """

    alignment_policy: AlignmentPolicy = AlignmentPolicy.OPTIMAL
    alignment_window: int = 100
    alignment_max_dp_cells: int = 4_000_000
    delimiters: tuple[str, ...] = DEFAULT_DELIMITERS

    @classmethod
    def from_settings(cls, settings: Settings) -> PipelineConfig:
        return cls(
            alignment_policy=AlignmentPolicy(settings.alignment_policy),
            alignment_window=settings.alignment_window,
            alignment_max_dp_cells=settings.alignment_max_dp_cells,
            delimiters=tuple(settings.title_delimiters),
        )
