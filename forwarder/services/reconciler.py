"""Reconciliation of incoming events against the last persisted state.

For each event the decision depends on whether a current-state record exists
for its key and whether the event is newer than that record:

- Resolved (status 0): always logged to history; deletes the current record
  when one exists and the resolution is newer.
- No prior record: inserted and logged, state_change = issued.
- Prior record, same key:
    * not newer than the record  -> discarded (already decided)
    * status changed             -> updated and logged, state_change = issued
    * only output changed        -> updated, not logged
    * nothing changed            -> no-op

An alert issued before its own last resolution finds no record (the
resolution deleted it) and is treated as a first occurrence.
"""

import enum
from dataclasses import dataclass, field
from typing import Mapping, Optional

from forwarder.schemas import CurrentOp, CurrentStateRecord, Event, EventKey, HistoryRecord, OpKind


class Decision(str, enum.Enum):
    insert = "insert"
    update = "update"
    output_update = "output_update"
    delete = "delete"
    resolved_logged = "resolved_logged"
    out_of_order = "out_of_order"
    unchanged = "unchanged"


@dataclass
class Reconciliation:
    current_ops: list[CurrentOp] = field(default_factory=list)
    history: list[HistoryRecord] = field(default_factory=list)
    decisions: dict[EventKey, Decision] = field(default_factory=dict)


def decide(
    event: Event, prior: Optional[CurrentStateRecord]
) -> tuple[Decision, Optional[CurrentOp], Optional[HistoryRecord]]:
    """Decide the current-store mutation and history append for one event."""
    out_of_order = prior is not None and prior.event.issued >= event.issued

    if event.is_resolved:
        event = event.with_state_change(event.issued)
        history = HistoryRecord(event)
        if prior is None or out_of_order:
            return Decision.resolved_logged, None, history
        return Decision.delete, CurrentOp(OpKind.delete, event, rev=prior.rev), history

    if prior is None:
        event = event.with_state_change(event.issued)
        return Decision.insert, CurrentOp(OpKind.insert, event), HistoryRecord(event)

    state_changed = prior.event.status != event.status
    if state_changed:
        event = event.with_state_change(event.issued)
    elif prior.event.state_change is not None:
        event = event.with_state_change(prior.event.state_change)
    else:
        # record written without state_change: its own issue time is the best bound
        event = event.with_state_change(prior.event.issued)
    output_changed = prior.event.output != event.output

    if out_of_order:
        return Decision.out_of_order, None, None
    if state_changed:
        return Decision.update, CurrentOp(OpKind.update, event, rev=prior.rev), HistoryRecord(event)
    if output_changed:
        return Decision.output_update, CurrentOp(OpKind.update, event, rev=prior.rev), None
    return Decision.unchanged, None, None


def reconcile(
    events: list[Event], prior_by_key: Mapping[EventKey, CurrentStateRecord]
) -> Reconciliation:
    """Compute current-store ops and history appends for a deduplicated batch.

    Events must be unique per key; decisions are made in the given order.
    """
    result = Reconciliation()
    for event in events:
        decision, op, history = decide(event, prior_by_key.get(event.key))
        result.decisions[event.key] = decision
        if op is not None:
            result.current_ops.append(op)
        if history is not None:
            result.history.append(history)
    return result
