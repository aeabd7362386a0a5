"""Queue consumer loop for capture jobs."""

from __future__ import annotations

import asyncio

from beacongate.logging import get_logger, log_exception
from beacongate.queue.backends import Delivery, JobQueue
from beacongate.worker.concurrency import TaskPool
from beacongate.worker.orchestrator import CaptureOrchestrator

logger = get_logger(__name__)


def backoff_delay(base_s: float, deliveries: int) -> float:
    """Exponential backoff: base, 2*base, 4*base, ..."""

    return base_s * (2 ** max(0, deliveries - 1))


class CaptureWorker:
    """Pull capture jobs and run them with bounded concurrency.

    A job whose processing raises is redelivered with exponential backoff until it has been
    delivered ``max_deliveries`` times, then dropped with an error log.
    """

    def __init__(
        self,
        queue: JobQueue,
        orchestrator: CaptureOrchestrator,
        *,
        concurrency: int = 2,
        max_deliveries: int = 2,
        backoff_s: float = 2.0,
        poll_s: float = 1.0,
    ) -> None:
        self._queue = queue
        self._orchestrator = orchestrator
        self._concurrency = concurrency
        self._max_deliveries = max_deliveries
        self._backoff_s = backoff_s
        self._poll_s = poll_s

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Consume until ``stop`` is set, then wait for in-flight jobs."""

        stop = stop or asyncio.Event()
        pool = TaskPool(self._concurrency)
        logger.info("Capture worker started (concurrency=%d)", self._concurrency)
        try:
            while not stop.is_set():
                await pool.limiter.acquire()
                try:
                    delivery = await self._queue.reserve(self._poll_s)
                except Exception:
                    pool.limiter.release()
                    raise
                if delivery is None:
                    pool.limiter.release()
                    continue
                pool.spawn(self.handle(delivery))
        finally:
            await pool.wait_all()
            logger.info("Capture worker stopped")

    async def drain(self) -> int:
        """Process jobs one at a time until the queue hands out nothing; return the count."""

        handled = 0
        while True:
            delivery = await self._queue.reserve(0)
            if delivery is None:
                return handled
            await self.handle(delivery)
            handled += 1

    async def handle(self, delivery: Delivery) -> None:
        job = delivery.job
        try:
            await self._orchestrator.process(job)
        except Exception:
            log_exception(
                logger, "Capture job raised", evidence_id=job.evidence_id, deliveries=delivery.deliveries
            )
            if delivery.deliveries >= self._max_deliveries:
                logger.error(
                    "Giving up on evidence %s after %d deliveries", job.evidence_id, delivery.deliveries
                )
                await self._queue.ack(delivery)
                return
            await self._queue.nack(delivery, delay_s=backoff_delay(self._backoff_s, delivery.deliveries))
            return
        await self._queue.ack(delivery)
