"""Filtering, sorting and facet counts over current-state events.

Backs the dashboard's event list. The response mirrors what the event list
reads: `count`, `rows` as `{"doc": {"event": ...}}`, `counts` by check and
client for the leaderboards, and `ranges.status` for the status totals.

Query syntax is a whitespace-separated list of terms, all of which must match:

- `field:value` on client, check, status or output. Values ending in `*`
  match by prefix; output matches by substring.
- a bare term matches client, check or output by substring.
- empty or `*:*` matches everything.
"""

from collections import Counter
from typing import Any

from forwarder.schemas import STATUS_NAMES, Status

# "occurences" is the spelling the dashboard sends
SORT_FIELDS = ("client", "check", "issued", "status", "occurrences", "occurences", "output")

# Most recent / most severe / most frequent first
DESCENDING = {"issued", "status", "occurrences"}


def _field(event: dict[str, Any], name: str) -> Any:
    check = event.get("check") or {}
    client = event.get("client") or {}
    if name == "client":
        return client.get("name") or ""
    if name == "check":
        return check.get("name") or ""
    if name == "occurrences":
        return event.get("occurrences") or 0
    if name in ("issued", "status"):
        return check.get(name) or 0
    return check.get(name) or ""


def _term_matches(event: dict[str, Any], term: str) -> bool:
    if ":" not in term:
        needle = term.lower()
        return any(
            needle in str(_field(event, name)).lower() for name in ("client", "check", "output")
        )

    name, value = term.split(":", 1)
    if name == "*" and value == "*":
        return True
    if name not in ("client", "check", "status", "output"):
        return False
    actual = str(_field(event, name)).lower()
    value = value.lower()
    if name == "output":
        return value.rstrip("*") in actual
    if value.endswith("*"):
        return actual.startswith(value[:-1])
    return actual == value


def search_events(
    events: list[dict[str, Any]], query: str = "", sort: str = "client", limit: int = 50
) -> dict[str, Any]:
    """Filter, sort and facet current-state events.

    Facets and `count` cover every matching event; `rows` holds at most
    `limit` of them.
    """
    terms = query.split()
    matched = [e for e in events if all(_term_matches(e, t) for t in terms)]

    if sort == "occurences":
        sort = "occurrences"
    matched.sort(key=lambda e: _field(e, sort), reverse=sort in DESCENDING)

    statuses = {name: 0 for name in STATUS_NAMES.values()}
    for event in matched:
        name = STATUS_NAMES.get(_field(event, "status"), STATUS_NAMES[Status.UNKNOWN])
        statuses[name] += 1

    return {
        "count": len(matched),
        "rows": [{"doc": {"event": event}} for event in matched[:limit]],
        "counts": {
            "check": dict(Counter(_field(e, "check") for e in matched)),
            "client": dict(Counter(_field(e, "client") for e in matched)),
        },
        "ranges": {"status": statuses},
    }
