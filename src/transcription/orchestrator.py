"""Drive an asynchronous transcription job to a terminal state.

State machine per job::

    created --submit--> polling --succeeded--> done(output)
                           |  \\--failed|canceled--> ProviderTerminalError
                           |--still running: renew lease, sleep, poll again

Polling is unbounded in wall-clock time; the surrounding task system bounds
it through its lease, which is why the lease is renewed on every iteration.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from src.errors import (
    LeaseTimeoutError,
    ProviderTerminalError,
    SermonProcessingError,
    TranscriptionCancelledError,
)
from src.transcription.provider import PredictionStatus, TranscriptionProvider
from src.transcription.retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 30.0
DEFAULT_LOCK_EXTENSION = 300.0


class JobState(str, Enum):
    CREATED = "created"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


class TaskLease(Protocol):
    """A lease held on the queued task that owns this invocation."""

    async def extend(self, seconds: float) -> None: ...


@dataclass
class TranscriptionJob:
    """Local view of one remote transcription job."""

    handle: str
    state: JobState = JobState.CREATED
    output: Any = None
    error: Any = None


class TranscriptionOrchestrator:
    def __init__(
        self,
        provider: TranscriptionProvider,
        retry_policy: RetryPolicy | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        lock_extension: float = DEFAULT_LOCK_EXTENSION,
    ) -> None:
        self.provider = provider
        self.retry_policy = retry_policy or RetryPolicy()
        self.poll_interval = poll_interval
        self.lock_extension = lock_extension

    async def submit(self, audio_url: str, language: str) -> TranscriptionJob:
        """Start one remote transcription job."""
        logger.info("Starting transcription for %s...", audio_url)
        handle = await self.retry_policy.call(
            self.provider.create,
            audio_url,
            language,
            description="Create prediction",
        )
        return TranscriptionJob(handle=handle)

    async def poll(self, job: TranscriptionJob) -> PredictionStatus:
        """Query the job once and fold the result into its local state."""
        status = await self.retry_policy.call(
            self.provider.get,
            job.handle,
            description="Get prediction status",
        )
        if status.status == JobState.SUCCEEDED.value:
            job.state = JobState.SUCCEEDED
            job.output = status.output
        elif status.status in (JobState.FAILED.value, JobState.CANCELED.value):
            job.state = JobState(status.status)
            job.error = status.error
        else:
            job.state = JobState.POLLING
        return status

    async def _renew(self, lease: TaskLease, job: TranscriptionJob) -> None:
        try:
            await lease.extend(self.lock_extension)
        except SermonProcessingError:
            raise
        except Exception as exc:
            raise LeaseTimeoutError(
                f"Could not extend lease while waiting on prediction {job.handle}: {exc}"
            ) from exc
        logger.debug("Extended lease by %.0fs for prediction %s", self.lock_extension, job.handle)

    async def _sleep_or_cancel(self, cancel_event: asyncio.Event | None) -> bool:
        """Sleep one poll interval; return True if cancellation was requested."""
        if cancel_event is None:
            await asyncio.sleep(self.poll_interval)
            return False
        if cancel_event.is_set():
            return True
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            return False
        return True

    async def wait(
        self,
        job: TranscriptionJob,
        lease: TaskLease | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Any:
        """Poll *job* until it reaches a terminal state.

        Returns:
            The provider output of a succeeded job.

        Raises:
            ProviderTerminalError: The job ended ``failed`` or ``canceled``.
            LeaseTimeoutError: The task lease could not be renewed.
            TranscriptionCancelledError: *cancel_event* was set. The remote
                job is left running; only the local wait stops.
        """
        job.state = JobState.POLLING
        while True:
            if lease is not None:
                await self._renew(lease, job)

            status = await self.poll(job)
            if job.state is JobState.SUCCEEDED:
                logger.info("Transcription succeeded.")
                return job.output
            if job.state in (JobState.FAILED, JobState.CANCELED):
                error = ProviderTerminalError(status.status, status.error)
                logger.error(error.message)
                raise error

            logger.info(
                "Transcription status: %s. Polling again in %.0fs...",
                status.status,
                self.poll_interval,
            )
            if await self._sleep_or_cancel(cancel_event):
                logger.warning("Stopped waiting on prediction %s; remote job left running", job.handle)
                raise TranscriptionCancelledError(
                    f"Cancelled while waiting on prediction {job.handle}"
                )

    async def transcribe(
        self,
        audio_url: str,
        language: str,
        lease: TaskLease | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Any:
        """Submit a job for *audio_url* and wait for its output."""
        job = await self.submit(audio_url, language)
        return await self.wait(job, lease=lease, cancel_event=cancel_event)
