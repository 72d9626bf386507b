"""Executes the two bulk writes of a reconciled batch."""

from dataclasses import dataclass, field
from typing import Optional, Union

import structlog

from forwarder import metrics
from forwarder.couch import CouchStore
from forwarder.schemas import CurrentOp, DocResult, HistoryRecord, TransportFailure

log = structlog.get_logger(__name__)

BulkOutcome = Union[list[DocResult], TransportFailure]


@dataclass
class UploadResult:
    current: BulkOutcome = field(default_factory=list)
    history: BulkOutcome = field(default_factory=list)

    @property
    def transport_failure(self) -> Optional[TransportFailure]:
        for outcome in (self.current, self.history):
            if isinstance(outcome, TransportFailure):
                return outcome
        return None


async def upload(
    store: CouchStore, current_ops: list[CurrentOp], history: list[HistoryRecord]
) -> UploadResult:
    """Send current-state ops and history appends as one bulk request each.

    Results are order-preserving and parallel to the submitted lists. An empty
    list sends no request.
    """
    result = UploadResult()
    if current_ops:
        result.current = await store.bulk_apply(current_ops)
    if history:
        result.history = await store.bulk_append(history)

    for outcome in (result.current, result.history):
        if isinstance(outcome, TransportFailure):
            log.error("bulk_upload_failed", operation=outcome.operation, error=outcome.error)
            metrics.transport_failures.labels(operation=outcome.operation).inc()
    return result
