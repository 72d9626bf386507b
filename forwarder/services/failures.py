"""Failure handling: choose what goes back on the queue, and push it there.

Reconciliation is idempotent, so requeueing an event that was in fact
persisted is harmless: the next cycle sees it as not newer than the stored
record and does nothing.
"""

from typing import Iterable

import structlog

from forwarder import metrics
from forwarder.queue import RedisQueue
from forwarder.schemas import DocResult, Event, EventKey, TransportFailure
from forwarder.services.reconciler import Reconciliation
from forwarder.services.uploader import UploadResult

log = structlog.get_logger(__name__)


def _report_history_lost(
    reconciliation: Reconciliation, current_results: list[DocResult], failure: TransportFailure
) -> None:
    """Report alerts whose record was written but whose history append was not.

    The batch is still requeued, but the replay finds the record it wrote and
    reconciles to a no-op, so the history entry never reaches the log.
    """
    persisted = {
        op.key for op, result in zip(reconciliation.current_ops, current_results) if result.ok
    }
    for record in reconciliation.history:
        key = record.event.key
        if record.event.is_resolved or key not in persisted:
            continue
        log.error(
            "history_append_lost",
            doc_id=key.doc_id,
            issued=record.event.issued,
            error=failure.error,
        )
        metrics.events_lost.labels(reason="history_append").inc()


def handle_failures(
    events: list[Event], reconciliation: Reconciliation, upload: UploadResult
) -> list[Event]:
    """Return the events of this batch that must be retried.

    - A transport failure on either bulk request requeues the whole batch. When
      only the history request failed, alerts whose record was written are
      reported lost as well.
    - A failed current-state op requeues its event.
    - A failed history append requeues a resolution, which is always logged
      again on retry. For any other event the retry would reconcile to a
      no-op, so the entry is reported lost instead.
    """
    if upload.transport_failure is not None:
        if isinstance(upload.history, TransportFailure) and not isinstance(
            upload.current, TransportFailure
        ):
            _report_history_lost(reconciliation, upload.current, upload.history)
        return list(events)

    by_key = {event.key: event for event in events}
    failed: dict[EventKey, Event] = {}

    current_results: list[DocResult] = upload.current
    for op, result in zip(reconciliation.current_ops, current_results):
        if result.ok:
            continue
        log.warning(
            "current_op_failed",
            doc_id=op.key.doc_id,
            op=op.kind.value,
            error=result.error,
            reason=result.reason,
        )
        failed[op.key] = by_key[op.key]

    history_results: list[DocResult] = upload.history
    for record, result in zip(reconciliation.history, history_results):
        if result.ok:
            continue
        key = record.event.key
        if not record.event.is_resolved:
            if key not in failed:
                log.error(
                    "history_append_lost",
                    doc_id=key.doc_id,
                    issued=record.event.issued,
                    error=result.error,
                    reason=result.reason,
                )
                metrics.events_lost.labels(reason="history_append").inc()
            continue
        log.warning(
            "history_append_failed",
            doc_id=key.doc_id,
            error=result.error,
            reason=result.reason,
        )
        failed[key] = by_key[key]

    return list(failed.values())


async def requeue(queue: RedisQueue, events: Iterable[Event], reason: str) -> int:
    """Push events back onto the queue exactly as they were read.

    A failed push is not retried: the event is logged in full as lost.

    Returns:
        Number of events successfully requeued.
    """
    pushed = 0
    for event in events:
        failure = await queue.push(event.payload)
        if failure is not None:
            log.critical(
                "event_lost",
                reason=reason,
                doc_id=event.key.doc_id,
                issued=event.issued,
                error=failure.error,
                payload=event.payload,
            )
            metrics.events_lost.labels(reason="requeue_failed").inc()
            continue
        pushed += 1
        metrics.events_requeued.labels(reason=reason).inc()
    if pushed:
        log.info("events_requeued", reason=reason, count=pushed)
    return pushed
