"""Transcription provider adapters.

The orchestrator only needs two calls from a provider: ``create`` to start an
asynchronous transcription job and ``get`` to read its current status.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import replicate

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"succeeded", "failed", "canceled"})


@dataclass(frozen=True)
class PredictionStatus:
    """One poll result from the provider."""

    id: str
    status: str
    output: Any = None
    error: Any = None

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class TranscriptionProvider(Protocol):
    async def create(self, audio_url: str, language: str) -> str:
        """Start a job and return its handle."""
        ...

    async def get(self, handle: str) -> PredictionStatus:
        """Return the job's current status. Must be free of side effects."""
        ...


class ReplicateProvider:
    """WhisperX-style model hosted on Replicate.

    The SDK is synchronous, so each call runs in a worker thread to keep the
    event loop free while waiting on the network.
    """

    def __init__(self, client: replicate.Client, model_version: str) -> None:
        self.client = client
        self.model_version = model_version

    @classmethod
    def from_token(cls, api_token: str, model_version: str) -> ReplicateProvider:
        return cls(replicate.Client(api_token=api_token), model_version)

    def _create(self, audio_url: str, language: str) -> str:
        prediction = self.client.predictions.create(
            version=self.model_version,
            input={
                "audio_file": audio_url,
                "language": language,
                "align_output": True,
            },
        )
        logger.info("Created prediction %s for %s", prediction.id, audio_url)
        return str(prediction.id)

    def _get(self, handle: str) -> PredictionStatus:
        prediction = self.client.predictions.get(handle)
        return PredictionStatus(
            id=str(prediction.id),
            status=prediction.status,
            output=prediction.output,
            error=prediction.error,
        )

    async def create(self, audio_url: str, language: str) -> str:
        return await asyncio.to_thread(self._create, audio_url, language)

    async def get(self, handle: str) -> PredictionStatus:
        return await asyncio.to_thread(self._get, handle)
