"""Durable Redis job queue with leases, attempt counting and redelivery.

Keys, all prefixed with the queue name::

    <q>:wait        list of job ids ready to run (LPUSH in, BLMOVE out)
    <q>:active      list of job ids currently reserved by a worker
    <q>:delayed     sorted set of job ids waiting out their retry backoff
    <q>:failed      list of job ids that exhausted their attempts
    <q>:completed   capped list of recently completed job ids
    <q>:job:<id>    hash with name, data (JSON), attempts, failed_reason
    <q>:lock:<id>   lease token with a TTL while a worker holds the job

Delivery is at-least-once: a job whose lease expires is moved back to
``wait`` by :meth:`JobQueue.requeue_stalled`.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

import redis.asyncio as redis

from src.errors import LeaseTimeoutError

logger = logging.getLogger(__name__)

COMPLETED_HISTORY = 1000

_EXTEND_LOCK = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("PEXPIRE", KEYS[1], ARGV[2])
end
return 0
"""

_FINISH_LEASE = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    redis.call("DEL", KEYS[1])
    redis.call("LREM", KEYS[2], 1, ARGV[2])
    return 1
end
return 0
"""


@dataclass
class Job:
    id: str
    name: str
    data: dict[str, Any]
    attempts_made: int = 0
    lease: JobLease | None = field(default=None, repr=False)


class JobLease:
    """Proof that one worker holds a job; must be extended before it expires."""

    def __init__(self, queue: JobQueue, job_id: str, token: str) -> None:
        self.queue = queue
        self.job_id = job_id
        self.token = token

    async def extend(self, seconds: float) -> None:
        """Push the lease expiry *seconds* into the future.

        Raises:
            LeaseTimeoutError: The lease already expired or was taken over.
        """
        extended = await self.queue._extend_script(
            keys=[self.queue.lock_key(self.job_id)],
            args=[self.token, int(seconds * 1000)],
        )
        if not extended:
            raise LeaseTimeoutError(f"Lease on job {self.job_id} expired before renewal")

    async def release(self) -> bool:
        """Drop the lease and the job's ``active`` entry if the lease is still ours.

        Returns False when the lease expired or another worker took the job
        over; the caller must then leave the job alone.
        """
        released = await self.queue._finish_script(
            keys=[self.queue.lock_key(self.job_id), self.queue.key("active")],
            args=[self.token, self.job_id],
        )
        return bool(released)


class JobQueue:
    def __init__(
        self,
        client: redis.Redis,
        name: str = "sermon-processing",
        *,
        lock_duration: float = 600.0,
        max_attempts: int = 3,
        backoff_delay: float = 5.0,
    ) -> None:
        self.client = client
        self.name = name
        self.lock_duration = lock_duration
        self.max_attempts = max_attempts
        self.backoff_delay = backoff_delay
        self._extend_script = client.register_script(_EXTEND_LOCK)
        self._finish_script = client.register_script(_FINISH_LEASE)
        self._stall_suspects: set[str] = set()

    def key(self, suffix: str) -> str:
        return f"{self.name}:{suffix}"

    def job_key(self, job_id: str) -> str:
        return self.key(f"job:{job_id}")

    def lock_key(self, job_id: str) -> str:
        return self.key(f"lock:{job_id}")

    async def add(self, name: str, data: dict[str, Any]) -> str:
        """Persist a job and make it ready to run; return its id."""
        job_id = uuid.uuid4().hex
        await self.client.hset(
            self.job_key(job_id),
            mapping={
                "name": name,
                "data": json.dumps(data),
                "attempts": 0,
                "created_at": int(time.time() * 1000),
            },
        )
        await self.client.lpush(self.key("wait"), job_id)
        logger.debug("Queued job %s (%s)", job_id, name)
        return job_id

    async def get_job(self, job_id: str) -> Job | None:
        raw = await self.client.hgetall(self.job_key(job_id))
        if not raw:
            return None
        return Job(
            id=job_id,
            name=raw.get("name", ""),
            data=json.loads(raw.get("data", "{}")),
            attempts_made=int(raw.get("attempts", 0)),
        )

    async def reserve(self, timeout: int = 1) -> Job | None:
        """Block up to *timeout* seconds for the next job and lease it."""
        job_id = await self.client.blmove(
            self.key("wait"), self.key("active"), timeout, "RIGHT", "LEFT"
        )
        if job_id is None:
            return None

        token = uuid.uuid4().hex
        await self.client.set(self.lock_key(job_id), token, px=int(self.lock_duration * 1000))
        job = await self.get_job(job_id)
        if job is None:
            logger.warning("Dropping job %s with no stored data", job_id)
            await self.client.lrem(self.key("active"), 1, job_id)
            await self.client.delete(self.lock_key(job_id))
            return None
        job.lease = JobLease(self, job_id, token)
        return job

    async def _finish(self, job: Job) -> bool:
        if job.lease is None:
            await self.client.lrem(self.key("active"), 1, job.id)
            return True
        if await job.lease.release():
            return True
        logger.warning("Lease on job %s was lost; leaving it to its current owner", job.id)
        return False

    async def complete(self, job: Job) -> None:
        if not await self._finish(job):
            return
        await self.client.lpush(self.key("completed"), job.id)
        await self.client.ltrim(self.key("completed"), 0, COMPLETED_HISTORY - 1)

    async def fail(self, job: Job, exc: BaseException, *, retry: bool = True) -> bool:
        """Record a failed attempt; return True if the job was re-queued.

        Re-queued jobs wait ``backoff_delay * 2 ** (attempts - 1)`` seconds.
        Nothing is recorded when the caller no longer holds the job's lease.
        """
        if not await self._finish(job):
            return False
        attempts = await self.client.hincrby(self.job_key(job.id), "attempts", 1)
        await self.client.hset(self.job_key(job.id), "failed_reason", str(exc))
        job.attempts_made = attempts

        if retry and attempts < self.max_attempts:
            delay = self.backoff_delay * 2 ** (attempts - 1)
            await self.client.zadd(self.key("delayed"), {job.id: time.time() + delay})
            logger.info("Job %s failed attempt %d; retrying in %.0fs", job.id, attempts, delay)
            return True

        await self.client.lpush(self.key("failed"), job.id)
        logger.warning("Job %s failed permanently after %d attempt(s)", job.id, attempts)
        return False

    async def release(self, job: Job) -> None:
        """Hand a job back without counting an attempt (worker shutdown)."""
        if not await self._finish(job):
            return
        await self.client.rpush(self.key("wait"), job.id)

    async def promote_delayed(self) -> int:
        """Move delayed jobs whose backoff has elapsed back to ``wait``."""
        due = await self.client.zrangebyscore(self.key("delayed"), 0, time.time())
        promoted = 0
        for job_id in due:
            if await self.client.zrem(self.key("delayed"), job_id):
                await self.client.lpush(self.key("wait"), job_id)
                promoted += 1
        return promoted

    async def requeue_stalled(self) -> int:
        """Redeliver active jobs whose lease has expired.

        A job is only moved once it has been seen without a lease on two
        consecutive checks, so a worker between BLMOVE and taking its lease
        is not mistaken for a dead one.
        """
        lockless: set[str] = set()
        for job_id in await self.client.lrange(self.key("active"), 0, -1):
            if not await self.client.exists(self.lock_key(job_id)):
                lockless.add(job_id)

        requeued = 0
        for job_id in lockless & self._stall_suspects:
            if await self.client.lrem(self.key("active"), 1, job_id):
                await self.client.rpush(self.key("wait"), job_id)
                logger.warning("Job %s stalled; lease expired, redelivering", job_id)
                requeued += 1
        self._stall_suspects = lockless
        return requeued

    async def counts(self) -> dict[str, int]:
        return {
            "wait": await self.client.llen(self.key("wait")),
            "active": await self.client.llen(self.key("active")),
            "delayed": await self.client.zcard(self.key("delayed")),
            "failed": await self.client.llen(self.key("failed")),
            "completed": await self.client.llen(self.key("completed")),
        }
