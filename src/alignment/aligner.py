"""Align source-text tokens with timestamped transcript words.

Two matching policies are available:

- ``optimal``: longest-common-subsequence dynamic programming.  Finds the
  largest set of in-order matches but costs ``O(n*m)`` time and memory.
- ``greedy``: walk the source tokens with a cursor into the transcript and
  take the first equal word inside a fixed lookahead window.  ``O(n*window)``
  and bounded regardless of document length, but a spurious early match can
  shadow a better later one.

``align_tokens`` uses ``optimal`` by default and falls back to ``greedy``
when the DP table would exceed ``max_dp_cells``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from src.alignment.models import AlignedEntry, TimestampedWord, Token
from src.alignment.normalizer import tokenize, words_with_timestamps
from src.pipeline_config import AlignmentPolicy, PipelineConfig

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 100
DEFAULT_MAX_DP_CELLS = 4_000_000


def align_optimal(
    tokens: Sequence[Token],
    words: Sequence[TimestampedWord],
) -> list[AlignedEntry]:
    """LCS alignment: one entry per token, matched where the LCS pairs it.

    Ties during the backtrace keep the source token (emitted unmatched)
    rather than skipping a transcript word, so no source token is dropped.
    """
    n, m = len(tokens), len(words)
    dp = [[0] * (m + 1) for _ in range(n + 1)]

    for i in range(1, n + 1):
        source = tokens[i - 1].normalized
        row, prev = dp[i], dp[i - 1]
        for j in range(1, m + 1):
            if source == words[j - 1].word:
                row[j] = prev[j - 1] + 1
            else:
                row[j] = max(prev[j], row[j - 1])

    aligned: list[AlignedEntry] = []
    i, j = n, m
    while i > 0 or j > 0:
        if (
            i > 0
            and j > 0
            and tokens[i - 1].normalized == words[j - 1].word
            and dp[i][j] == dp[i - 1][j - 1] + 1
        ):
            aligned.append(AlignedEntry.matched_to(tokens[i - 1], words[j - 1]))
            i -= 1
            j -= 1
        elif i > 0 and (j == 0 or dp[i - 1][j] >= dp[i][j - 1]):
            aligned.append(AlignedEntry.unmatched(tokens[i - 1]))
            i -= 1
        else:
            # Transcript word with no counterpart in the source text.
            j -= 1

    aligned.reverse()
    return aligned


def align_greedy(
    tokens: Sequence[Token],
    words: Sequence[TimestampedWord],
    window: int = DEFAULT_WINDOW,
) -> list[AlignedEntry]:
    """Windowed forward scan: first equal word within *window* of the cursor."""
    aligned: list[AlignedEntry] = []
    cursor = 0

    for token in tokens:
        limit = min(cursor + window, len(words))
        for j in range(cursor, limit):
            if words[j].word == token.normalized:
                aligned.append(AlignedEntry.matched_to(token, words[j]))
                cursor = j + 1
                break
        else:
            aligned.append(AlignedEntry.unmatched(token))

    return aligned


def align_tokens(
    tokens: Sequence[Token],
    words: Sequence[TimestampedWord],
    policy: AlignmentPolicy = AlignmentPolicy.OPTIMAL,
    window: int = DEFAULT_WINDOW,
    max_dp_cells: int = DEFAULT_MAX_DP_CELLS,
) -> list[AlignedEntry]:
    """Dispatch to the requested policy.

    Args:
        tokens: Tokenized source text.
        words: Flattened transcript words.
        policy: ``optimal`` or ``greedy``.
        window: Lookahead for the greedy policy.
        max_dp_cells: Largest DP table the optimal policy may build before
            falling back to greedy.

    Returns:
        Exactly ``len(tokens)`` entries, in source order.
    """
    if policy is AlignmentPolicy.OPTIMAL:
        cells = (len(tokens) + 1) * (len(words) + 1)
        if cells <= max_dp_cells:
            return align_optimal(tokens, words)
        logger.info(
            "Alignment table of %d cells exceeds %d; using greedy window of %d",
            cells,
            max_dp_cells,
            window,
        )
    return align_greedy(tokens, words, window=window)


def align_text(
    text: str,
    transcription: dict[str, Any],
    config: PipelineConfig | None = None,
) -> dict[str, list[dict[str, Any]]]:
    """Tokenize *text*, align it to *transcription* and serialize the result.

    Returns:
        ``{"alignedText": [{word, startTime, endTime, chunk}, ...]}``
    """
    config = config or PipelineConfig()
    tokens = tokenize(text)
    words = words_with_timestamps(transcription)
    entries = align_tokens(
        tokens,
        words,
        policy=config.alignment_policy,
        window=config.alignment_window,
        max_dp_cells=config.alignment_max_dp_cells,
    )
    matched = sum(1 for e in entries if e.matched)
    logger.info("Aligned %d of %d tokens against %d spoken words", matched, len(tokens), len(words))
    return {"alignedText": [e.to_dict() for e in entries]}
