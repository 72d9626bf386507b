"""Within-batch ordering and deduplication."""

from forwarder.schemas import Event, EventKey


def dedupe(events: list[Event]) -> tuple[list[Event], list[Event]]:
    """Keep the most recent event per key.

    Sorts by `issued` (stable, so equal timestamps keep arrival order) and lets
    later occurrences replace earlier ones. Replaced events are returned as
    surplus for requeueing; they are not reconciled in this cycle.

    Returns:
        (latest events in ascending `issued` order, surplus events)
    """
    latest: dict[EventKey, Event] = {}
    surplus: list[Event] = []
    for event in sorted(events, key=lambda e: e.issued):
        previous = latest.pop(event.key, None)
        if previous is not None:
            surplus.append(previous)
        latest[event.key] = event
    return sorted(latest.values(), key=lambda e: e.issued), surplus
