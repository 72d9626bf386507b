from .event import (
    STATUS_NAMES,
    CurrentOp,
    CurrentStateRecord,
    Event,
    EventKey,
    HistoryRecord,
    MalformedEventError,
    OpKind,
    Status,
)
from .results import DocResult, TransportFailure

__all__ = [
    "STATUS_NAMES",
    "CurrentOp",
    "CurrentStateRecord",
    "DocResult",
    "Event",
    "EventKey",
    "HistoryRecord",
    "MalformedEventError",
    "OpKind",
    "Status",
    "TransportFailure",
]
