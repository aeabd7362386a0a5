"""Job queue backends.

Both backends give at-least-once delivery keyed by evidence id: a job stays known to the queue
from ``enqueue`` until it is acked, and enqueueing another job for the same key meanwhile is a
no-op that returns ``False``.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Protocol

import redis

from beacongate.logging import get_logger
from beacongate.queue.jobs import CaptureJob

logger = get_logger(__name__)


@dataclass(frozen=True)
class Delivery:
    """A reserved job and how many times it has been handed out."""

    job: CaptureJob
    deliveries: int


class JobQueue(Protocol):
    async def enqueue(self, job: CaptureJob) -> bool: ...

    async def reserve(self, timeout_s: float) -> Delivery | None: ...

    async def ack(self, delivery: Delivery) -> None: ...

    async def nack(self, delivery: Delivery, *, delay_s: float) -> None: ...


@dataclass
class InMemoryJobQueue:
    """Single-process queue for tests and local runs."""

    _jobs: dict[str, CaptureJob] = field(default_factory=dict)
    _pending: deque[str] = field(default_factory=deque)
    _delayed: dict[str, float] = field(default_factory=dict)
    _deliveries: dict[str, int] = field(default_factory=dict)
    _in_flight: set[str] = field(default_factory=set)

    async def enqueue(self, job: CaptureJob) -> bool:
        if job.key in self._jobs:
            logger.info("Job for evidence %s already queued", job.key)
            return False
        self._jobs[job.key] = job
        self._deliveries[job.key] = 0
        self._pending.append(job.key)
        return True

    async def reserve(self, timeout_s: float) -> Delivery | None:
        self._promote_due()
        if not self._pending:
            if timeout_s > 0:
                await asyncio.sleep(min(timeout_s, 0.05))
                self._promote_due()
            if not self._pending:
                return None
        key = self._pending.popleft()
        self._in_flight.add(key)
        self._deliveries[key] += 1
        return Delivery(job=self._jobs[key], deliveries=self._deliveries[key])

    async def ack(self, delivery: Delivery) -> None:
        key = delivery.job.key
        self._in_flight.discard(key)
        self._jobs.pop(key, None)
        self._deliveries.pop(key, None)

    async def nack(self, delivery: Delivery, *, delay_s: float) -> None:
        key = delivery.job.key
        self._in_flight.discard(key)
        self._delayed[key] = time.monotonic() + delay_s

    def __len__(self) -> int:
        return len(self._jobs)

    @property
    def idle(self) -> bool:
        """True when nothing is pending, delayed or in flight."""

        return not self._jobs

    def _promote_due(self) -> None:
        now = time.monotonic()
        for key, due in sorted(self._delayed.items(), key=lambda kv: kv[1]):
            if due <= now:
                del self._delayed[key]
                self._pending.append(key)


class RedisJobQueue:
    """Redis-backed queue shared by any number of worker processes.

    Keys (all under ``{prefix}:queue:{name}``):
        ``:jobs``        hash evidence id -> job JSON (the dedupe set)
        ``:pending``     list of evidence ids ready to run
        ``:processing``  list of evidence ids reserved by a worker
        ``:delayed``     sorted set of evidence ids waiting out a backoff
        ``:deliveries``  hash evidence id -> delivery count
    """

    def __init__(
        self,
        redis_url: str,
        *,
        key_prefix: str,
        queue_name: str,
        client: redis.Redis | None = None,
    ) -> None:
        self._client = client if client is not None else redis.Redis.from_url(redis_url, decode_responses=True)
        base = f"{key_prefix}:queue:{queue_name}"
        self._jobs_key = f"{base}:jobs"
        self._pending_key = f"{base}:pending"
        self._processing_key = f"{base}:processing"
        self._delayed_key = f"{base}:delayed"
        self._deliveries_key = f"{base}:deliveries"

    async def enqueue(self, job: CaptureJob) -> bool:
        return await asyncio.to_thread(self._enqueue, job)

    async def reserve(self, timeout_s: float) -> Delivery | None:
        return await asyncio.to_thread(self._reserve, timeout_s)

    async def ack(self, delivery: Delivery) -> None:
        await asyncio.to_thread(self._ack, delivery.job.key)

    async def nack(self, delivery: Delivery, *, delay_s: float) -> None:
        await asyncio.to_thread(self._nack, delivery.job.key, delay_s)

    def recover_in_flight(self) -> int:
        """Move every reserved job back to pending.

        Only safe while no other worker is consuming; used at start-up after a crash.
        """

        moved = 0
        while self._client.lmove(self._processing_key, self._pending_key, "RIGHT", "LEFT") is not None:
            moved += 1
        if moved:
            logger.warning("Requeued %d in-flight capture job(s)", moved)
        return moved

    def _enqueue(self, job: CaptureJob) -> bool:
        payload = job.model_dump_json(by_alias=True)
        if not self._client.hsetnx(self._jobs_key, job.key, payload):
            logger.info("Job for evidence %s already queued", job.key)
            return False
        pipe = self._client.pipeline()
        pipe.hset(self._deliveries_key, job.key, 0)
        pipe.lpush(self._pending_key, job.key)
        pipe.execute()
        return True

    def _reserve(self, timeout_s: float) -> Delivery | None:
        self._promote_due()
        if timeout_s > 0:
            key = self._client.blmove(self._pending_key, self._processing_key, timeout_s, "RIGHT", "LEFT")
        else:
            # BLMOVE with timeout 0 would block forever.
            key = self._client.lmove(self._pending_key, self._processing_key, "RIGHT", "LEFT")
        if key is None:
            return None
        payload = self._client.hget(self._jobs_key, key)
        if payload is None:
            # Acked by another consumer after a recovery requeue.
            self._client.lrem(self._processing_key, 1, key)
            return None
        deliveries = int(self._client.hincrby(self._deliveries_key, key, 1))
        return Delivery(job=CaptureJob.model_validate_json(payload), deliveries=deliveries)

    def _ack(self, key: str) -> None:
        pipe = self._client.pipeline()
        pipe.lrem(self._processing_key, 1, key)
        pipe.hdel(self._jobs_key, key)
        pipe.hdel(self._deliveries_key, key)
        pipe.execute()

    def _nack(self, key: str, delay_s: float) -> None:
        pipe = self._client.pipeline()
        pipe.lrem(self._processing_key, 1, key)
        pipe.zadd(self._delayed_key, {key: time.time() + delay_s})
        pipe.execute()

    def _promote_due(self) -> None:
        due = self._client.zrangebyscore(self._delayed_key, 0, time.time())
        for key in due:
            # zrem is the claim; only the consumer that removes it requeues it.
            if self._client.zrem(self._delayed_key, key):
                self._client.lpush(self._pending_key, key)
