"""Forwarder worker: drains the event queue into CouchDB.

One cycle:
1. Collect a batch from Redis (bounded by count and wait time)
2. Deduplicate per key, keeping the latest event
3. Fetch the prior current-state record of every key in one call
4. Reconcile each event against its prior record
5. Bulk-write current-state ops and history appends
6. Requeue surplus duplicates and anything that failed to persist

Cycles run strictly one after another. A stop request is honoured between
cycles, so the in-flight batch is always finished first.
"""

import asyncio
import contextlib
import signal
import time
from dataclasses import dataclass

import structlog

from forwarder import metrics
from forwarder.config import Settings
from forwarder.couch import CouchStore
from forwarder.queue import RedisQueue
from forwarder.schemas import Event, TransportFailure
from forwarder.services.collector import Batch, BatchCollector
from forwarder.services.dedupe import dedupe
from forwarder.services.failures import handle_failures, requeue
from forwarder.services.reconciler import reconcile
from forwarder.services.uploader import upload

log = structlog.get_logger(__name__)


@dataclass
class CycleStats:
    collected: int = 0
    surplus: int = 0
    current_ops: int = 0
    history_appends: int = 0
    requeued: int = 0
    transport_failure: bool = False


class Forwarder:
    def __init__(self, queue: RedisQueue, store: CouchStore, settings: Settings) -> None:
        self.queue = queue
        self.store = store
        self.settings = settings
        self.collector = BatchCollector(queue, settings)
        self.stop_event = asyncio.Event()
        # events taken off the queue and not yet persisted or pushed back
        self.in_flight: list[Event] = []

    def stop(self) -> None:
        """Ask the loop to exit after the in-flight batch."""
        self.stop_event.set()

    async def process_batch(self, batch: Batch) -> CycleStats:
        """Reconcile and persist one collected batch."""
        stats = CycleStats(collected=len(batch.events))
        if not batch.events:
            return stats

        latest, surplus = dedupe(batch.events)
        stats.surplus = len(surplus)
        if surplus:
            await requeue(self.queue, surplus, reason="surplus")
        self.in_flight = latest

        try:
            return await self._persist(latest, stats)
        except Exception:
            log.error("cycle_failed", batch_size=len(latest), exc_info=True)
            await requeue(self.queue, latest, reason="cycle_error")
            raise

    async def _persist(self, latest: list[Event], stats: CycleStats) -> CycleStats:
        prior = await self.store.fetch_prior(event.key for event in latest)
        if isinstance(prior, TransportFailure):
            log.error("fetch_prior_failed", error=prior.error, batch_size=len(latest))
            metrics.transport_failures.labels(operation=prior.operation).inc()
            stats.transport_failure = True
            stats.requeued = await requeue(self.queue, latest, reason="transport_failure")
            return stats

        reconciliation = reconcile(latest, prior)
        for decision in reconciliation.decisions.values():
            metrics.events_decided.labels(decision=decision.value).inc()
        stats.current_ops = len(reconciliation.current_ops)
        stats.history_appends = len(reconciliation.history)

        result = await upload(self.store, reconciliation.current_ops, reconciliation.history)
        stats.transport_failure = result.transport_failure is not None

        retry = handle_failures(latest, reconciliation, result)
        if retry:
            reason = "transport_failure" if stats.transport_failure else "document_failure"
            stats.requeued = await requeue(self.queue, retry, reason=reason)
        return stats

    async def run_cycle(self) -> CycleStats:
        batch = await self.collector.collect()
        if not batch.events:
            if batch.failure is not None:
                # Queue is down; avoid spinning on it
                await asyncio.sleep(self.settings.queue_retry_seconds)
            return CycleStats()

        start = time.monotonic()
        self.in_flight = batch.events
        try:
            stats = await self.process_batch(batch)
        finally:
            self.in_flight = []
            metrics.cycle_duration.observe(time.monotonic() - start)

        log.info(
            "batch_processed",
            collected=stats.collected,
            surplus=stats.surplus,
            current_ops=stats.current_ops,
            history_appends=stats.history_appends,
            requeued=stats.requeued,
            transport_failure=stats.transport_failure,
        )
        return stats

    async def run(self) -> None:
        """Main loop: run cycles until stop() is called."""
        log.info(
            "forwarder_worker_started",
            queue=self.settings.queue_name,
            current_db=self.settings.current_db,
            history_db=self.settings.history_db,
            max_batch_count=self.settings.max_batch_count,
            max_wait_time=self.settings.max_wait_time,
        )
        while not self.stop_event.is_set():
            try:
                await self.run_cycle()
            except Exception:
                log.error("forwarder_worker_error", exc_info=True)
                await asyncio.sleep(self.settings.queue_retry_seconds)
        log.info("forwarder_worker_stopped")

    async def shutdown(self, task: asyncio.Task, timeout: float) -> None:
        """Stop the loop running in `task`, waiting up to `timeout` seconds.

        If the in-flight batch does not finish in time the task is cancelled
        and its unpersisted events are pushed back onto the queue.
        """
        self.stop()
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
            return
        except asyncio.TimeoutError:
            pass

        pending = list(self.in_flight)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        log.error("forwarder_worker_shutdown_timeout", in_flight=len(pending))
        if pending:
            await requeue(self.queue, pending, reason="shutdown")


async def run_worker(settings: Settings) -> None:
    """Standalone entrypoint: run until SIGINT/SIGTERM, then close clients."""
    queue = RedisQueue(settings)
    store = CouchStore(settings)
    forwarder = Forwarder(queue, store, settings)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, forwarder.stop)

    try:
        await forwarder.run()
    finally:
        await store.close()
        await queue.close()
