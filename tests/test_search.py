"""Tests for event list filtering, sorting and facets."""

from forwarder.services.search import search_events


def _event(client, check, status=2, issued=0, output="", occurrences=1):
    return {
        "client": {"name": client},
        "check": {"name": check, "status": status, "issued": issued, "output": output},
        "occurrences": occurrences,
    }


EVENTS = [
    _event("web-1", "http", status=2, issued=300, output="HTTP 500", occurrences=4),
    _event("web-2", "http", status=1, issued=100, output="slow response", occurrences=9),
    _event("db-1", "disk", status=3, issued=200, output="disk 91%", occurrences=1),
    _event("db-1", "ping", status=0, issued=50, output="ok", occurrences=2),
]


def _names(result):
    return [(r["doc"]["event"]["client"]["name"], r["doc"]["event"]["check"]["name"]) for r in result["rows"]]


def test_empty_query_matches_everything():
    result = search_events(EVENTS)

    assert result["count"] == 4
    assert result["ranges"]["status"] == {"OK": 1, "Warning": 1, "Critical": 1, "Unknown": 1}
    assert result["counts"]["check"] == {"http": 2, "disk": 1, "ping": 1}
    assert result["counts"]["client"] == {"web-1": 1, "web-2": 1, "db-1": 2}


def test_match_all_query():
    assert search_events(EVENTS, query="*:*")["count"] == 4


def test_default_sort_by_client_name():
    assert [c for c, _ in _names(search_events(EVENTS))] == ["db-1", "db-1", "web-1", "web-2"]


def test_numeric_sorts_put_largest_first():
    assert _names(search_events(EVENTS, sort="issued"))[0] == ("web-1", "http")
    assert _names(search_events(EVENTS, sort="status"))[0] == ("db-1", "disk")
    assert _names(search_events(EVENTS, sort="occurences"))[0] == ("web-2", "http")


def test_field_terms():
    assert _names(search_events(EVENTS, query="check:http client:web-2")) == [("web-2", "http")]
    assert search_events(EVENTS, query="client:db*")["count"] == 2
    assert search_events(EVENTS, query="status:0")["counts"]["check"] == {"ping": 1}
    assert search_events(EVENTS, query="output:500")["count"] == 1


def test_bare_term_matches_names_and_output():
    assert search_events(EVENTS, query="DISK")["count"] == 1
    assert search_events(EVENTS, query="web")["count"] == 2


def test_unknown_field_matches_nothing():
    assert search_events(EVENTS, query="address:10.0.0.1")["count"] == 0


def test_limit_applies_to_rows_not_facets():
    result = search_events(EVENTS, limit=1)

    assert len(result["rows"]) == 1
    assert result["count"] == 4
    assert sum(result["counts"]["client"].values()) == 4


def test_unknown_status_ordinal_counted_as_unknown():
    result = search_events([_event("a", "b", status=7)])

    assert result["ranges"]["status"]["Unknown"] == 1
