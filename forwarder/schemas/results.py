"""Outcome values returned by the queue and store clients.

Clients never raise across their boundary for network trouble; they return a
TransportFailure, and bulk calls return one DocResult per submitted document.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class TransportFailure:
    """A whole call failed: unreachable, timed out, 5xx or unreadable reply."""

    operation: str
    error: str


@dataclass(frozen=True)
class DocResult:
    """Per-document outcome of a CouchDB _bulk_docs request."""

    id: Optional[str] = None
    rev: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "DocResult":
        return cls(
            id=row.get("id"),
            rev=row.get("rev"),
            error=row.get("error"),
            reason=row.get("reason"),
        )
