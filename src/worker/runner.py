"""Queue worker: runs the sermon pipeline for queued items, N at a time."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable

import httpx
import redis.asyncio as redis
from pydantic import ValidationError

from src.config import Settings, get_settings
from src.errors import InvalidInputError, TranscriptionCancelledError, classify_error
from src.ingestion.models import SermonRequest
from src.ingestion.pipeline import SermonPipeline
from src.ingestion.storage import BlobStore, SermonIndex, get_redis_client, get_supabase_client
from src.pipeline_config import PipelineConfig
from src.transcription.orchestrator import TranscriptionOrchestrator
from src.transcription.provider import ReplicateProvider
from src.transcription.retry import RetryPolicy
from src.worker.queue import Job, JobLease, JobQueue

logger = logging.getLogger(__name__)

JobHandler = Callable[[Job, JobLease, asyncio.Event], Awaitable[None]]


class Worker:
    """Pull jobs from *queue* with bounded concurrency.

    Each consumer slot processes one job at a time.  A maintenance task
    promotes delayed retries and redelivers stalled jobs.  Setting the
    shutdown event stops new reservations and interrupts transcription waits.
    """

    def __init__(
        self,
        queue: JobQueue,
        handler: JobHandler,
        concurrency: int = 5,
        *,
        reserve_timeout: int = 1,
        maintenance_interval: float = 30.0,
    ) -> None:
        self.queue = queue
        self.handler = handler
        self.concurrency = concurrency
        self.reserve_timeout = reserve_timeout
        self.maintenance_interval = maintenance_interval
        self._shutdown = asyncio.Event()

    def shutdown(self) -> None:
        self._shutdown.set()

    async def process_job(self, job: Job) -> None:
        if job.lease is None:
            raise ValueError(f"Job {job.id} was not reserved from the queue and holds no lease")
        try:
            await self.handler(job, job.lease, self._shutdown)
        except TranscriptionCancelledError:
            logger.info("Job %s interrupted by shutdown; returning it to the queue", job.id)
            await self.queue.release(job)
        except Exception as exc:
            kind = classify_error(exc)
            logger.error("Job %s failed (%s): %s", job.id, kind.value, exc)
            await self.queue.fail(job, exc, retry=kind.retryable)
        else:
            await self.queue.complete(job)

    async def _consume(self, slot: int) -> None:
        while not self._shutdown.is_set():
            try:
                job = await self.queue.reserve(timeout=self.reserve_timeout)
                if job is not None:
                    await self.process_job(job)
            except Exception:
                # The job, if any, is redelivered once its lease expires.
                logger.exception("Worker slot %d: queue operation failed", slot)
                await asyncio.sleep(self.reserve_timeout)

    async def _maintain(self) -> None:
        while not self._shutdown.is_set():
            try:
                await self.queue.promote_delayed()
                await self.queue.requeue_stalled()
            except Exception:
                logger.exception("Queue maintenance failed")
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=self.maintenance_interval)
            except asyncio.TimeoutError:
                pass

    async def run(self) -> None:
        logger.info("Worker started with concurrency %d and waiting for jobs...", self.concurrency)
        tasks = [asyncio.create_task(self._consume(slot)) for slot in range(self.concurrency)]
        tasks.append(asyncio.create_task(self._maintain()))
        await asyncio.gather(*tasks)
        logger.info("Worker has been closed.")


def make_sermon_handler(pipeline: SermonPipeline) -> JobHandler:
    """Adapt :meth:`SermonPipeline.process` to the queue's job shape."""

    async def handle(job: Job, lease: JobLease, cancel_event: asyncio.Event) -> None:
        try:
            request = SermonRequest.model_validate(job.data["sermon"])
        except (KeyError, ValidationError) as exc:
            raise InvalidInputError(f"Job {job.id} has no valid sermon payload: {exc}") from exc
        logger.info("Processing sermon with audio: %s", request.audio_url)
        await pipeline.process(request, lease=lease, cancel_event=cancel_event)
        logger.info("Finished processing sermon with audio: %s", request.audio_url)

    return handle


def build_retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay_seconds,
    )


def build_queue(settings: Settings, redis_client: redis.Redis) -> JobQueue:
    return JobQueue(
        redis_client,
        settings.queue_name,
        lock_duration=settings.lock_duration_seconds,
        max_attempts=settings.job_attempts,
        backoff_delay=settings.job_backoff_seconds,
    )


def build_pipeline(
    settings: Settings,
    http_client: httpx.AsyncClient,
    blob_store: BlobStore,
    index: SermonIndex,
) -> SermonPipeline:
    retry_policy = build_retry_policy(settings)
    orchestrator = TranscriptionOrchestrator(
        ReplicateProvider.from_token(
            settings.replicate_api_token, settings.replicate_model_version
        ),
        retry_policy,
        poll_interval=settings.poll_interval_seconds,
        lock_extension=settings.lock_extension_seconds,
    )
    return SermonPipeline(
        http_client,
        orchestrator,
        blob_store,
        index,
        PipelineConfig.from_settings(settings),
        retry_policy,
    )


async def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    redis_client = get_redis_client(settings.redis_url)
    retry_policy = build_retry_policy(settings)
    blob_store = BlobStore(
        get_supabase_client(settings.supabase_url, settings.supabase_key),
        settings.storage_bucket,
        retry_policy,
    )
    index = SermonIndex(redis_client, retry_policy)

    async with httpx.AsyncClient(timeout=60.0) as http_client:
        pipeline = build_pipeline(settings, http_client, blob_store, index)
        worker = Worker(
            build_queue(settings, redis_client),
            make_sermon_handler(pipeline),
            concurrency=settings.worker_concurrency,
        )

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, worker.shutdown)

        try:
            await worker.run()
        finally:
            await redis_client.aclose()


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    asyncio.run(main())
