"""Event and state-record schemas.

Events arrive on the queue in the Sensu event shape::

    {"client": {"name": "web-1", ...},
     "check": {"name": "ping", "status": 2, "issued": 1400000000, "output": "..."},
     ...}

The raw payload is kept untouched so requeued events go back exactly as read.
"""

import copy
import enum
from dataclasses import dataclass
from typing import Any, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class Status(enum.IntEnum):
    OK = 0  # a.k.a. resolved
    WARNING = 1
    CRITICAL = 2
    UNKNOWN = 3


STATUS_NAMES = {
    Status.OK: "OK",
    Status.WARNING: "Warning",
    Status.CRITICAL: "Critical",
    Status.UNKNOWN: "Unknown",
}


class MalformedEventError(ValueError):
    """Raised when a payload cannot be read as a monitoring event."""
    pass


class EventKey(NamedTuple):
    client: str
    check: str

    @property
    def doc_id(self) -> str:
        return f"{self.client}/{self.check}"


class Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    client: str = Field(min_length=1)
    check: str = Field(min_length=1)
    status: int = Field(ge=0)  # ordinal; values beyond Status are carried as-is
    issued: int
    output: str = ""
    state_change: Optional[int] = None
    payload: dict[str, Any] = Field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: Any) -> "Event":
        """Parse a raw queue/store document into an Event.

        Raises:
            MalformedEventError: when required fields are missing or invalid.
        """
        try:
            client = payload["client"]
            check = payload["check"]
            return cls(
                client=client["name"],
                check=check["name"],
                status=check["status"],
                issued=check["issued"],
                output=check.get("output") or "",
                state_change=check.get("state_change"),
                payload=payload,
            )
        except (KeyError, TypeError, ValidationError) as exc:
            raise MalformedEventError(str(exc)) from exc

    @property
    def key(self) -> EventKey:
        return EventKey(self.client, self.check)

    @property
    def is_resolved(self) -> bool:
        return self.status == Status.OK

    def with_state_change(self, state_change: int) -> "Event":
        return self.model_copy(update={"state_change": state_change})

    def to_document(self) -> dict[str, Any]:
        """Payload with the computed state_change written into the check."""
        doc = copy.deepcopy(self.payload)
        check = doc.setdefault("check", {})
        check["state_change"] = self.state_change
        return doc


@dataclass(frozen=True)
class CurrentStateRecord:
    """Latest persisted event for a key, plus its CouchDB revision."""

    event: Event
    rev: str

    @property
    def key(self) -> EventKey:
        return self.event.key

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "CurrentStateRecord":
        return cls(event=Event.from_payload(doc["event"]), rev=doc["_rev"])


class OpKind(str, enum.Enum):
    insert = "insert"
    update = "update"
    delete = "delete"


@dataclass(frozen=True)
class CurrentOp:
    """One mutation of the current-state database."""

    kind: OpKind
    event: Event
    rev: Optional[str] = None

    @property
    def key(self) -> EventKey:
        return self.event.key

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"_id": self.key.doc_id}
        if self.rev is not None:
            doc["_rev"] = self.rev
        if self.kind is OpKind.delete:
            doc["_deleted"] = True
        else:
            doc["event"] = self.event.to_document()
        return doc


@dataclass(frozen=True)
class HistoryRecord:
    """Append-only log entry; CouchDB assigns the id."""

    event: Event

    def to_document(self) -> dict[str, Any]:
        return {"event": self.event.to_document()}
