"""Batch collector: drains the queue until a count or time limit is reached.

This is the pipeline's only admission control. Downstream stores see at most
one bulk round-trip per `max_wait_time` or per `max_batch_count` events.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Optional

import structlog

from forwarder import metrics
from forwarder.config import Settings
from forwarder.queue import RedisQueue
from forwarder.schemas import Event, MalformedEventError, TransportFailure

log = structlog.get_logger(__name__)


@dataclass
class Batch:
    events: list[Event] = field(default_factory=list)
    failure: Optional[TransportFailure] = None

    def __len__(self) -> int:
        return len(self.events)


class BatchCollector:
    def __init__(self, queue: RedisQueue, settings: Settings) -> None:
        self.queue = queue
        self.max_count = settings.max_batch_count
        self.max_wait = settings.max_wait_time

    async def collect(self) -> Batch:
        """Pop events until max_count is reached or max_wait has elapsed.

        An expired wait with nothing collected returns an empty Batch. A queue
        failure stops collection early; whatever was already popped is kept.
        """
        batch = Batch()
        deadline = time.monotonic() + self.max_wait

        while len(batch.events) < self.max_count:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break

            raw = await self.queue.pop(timeout=remaining)
            if raw is None:
                break
            if isinstance(raw, TransportFailure):
                log.error("queue_pop_failed", error=raw.error, collected=len(batch.events))
                metrics.transport_failures.labels(operation=raw.operation).inc()
                batch.failure = raw
                break

            try:
                event = Event.from_payload(json.loads(raw))
            except (ValueError, MalformedEventError) as exc:
                # Nothing to reconcile and nothing meaningful to requeue
                log.error("event_malformed_dropped", raw=raw[:500], error=str(exc))
                metrics.events_lost.labels(reason="malformed").inc()
                continue
            batch.events.append(event)

        if batch.events:
            metrics.events_collected.inc(len(batch.events))
            log.debug("batch_collected", count=len(batch.events))
        return batch
