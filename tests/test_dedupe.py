"""Tests for within-batch ordering and deduplication."""

from forwarder.services.dedupe import dedupe


def test_older_duplicate_is_surplus(make_event):
    """Of two same-key events, the one with the greater issued time wins."""
    newer = make_event(status=2, issued=100)
    older = make_event(status=1, issued=90)

    latest, surplus = dedupe([newer, older])

    assert latest == [newer]
    assert surplus == [older]


def test_output_sorted_by_issued(make_event):
    """Distinct keys come back in ascending issued order."""
    c = make_event(client="C", issued=30)
    a = make_event(client="A", issued=10)
    b = make_event(client="B", issued=20)

    latest, surplus = dedupe([c, a, b])

    assert [e.client for e in latest] == ["A", "B", "C"]
    assert surplus == []


def test_equal_timestamps_keep_last_arrival(make_event):
    """With identical issued times the later arrival is kept."""
    first = make_event(issued=50, output="first")
    second = make_event(issued=50, output="second")

    latest, surplus = dedupe([first, second])

    assert [e.output for e in latest] == ["second"]
    assert [e.output for e in surplus] == ["first"]


def test_many_duplicates_across_keys(make_event):
    """Only the greatest issued per key survives; everything else is surplus."""
    events = [
        make_event(client="A", issued=3),
        make_event(client="B", issued=1),
        make_event(client="A", issued=1),
        make_event(client="A", issued=2),
        make_event(client="B", issued=5),
    ]

    latest, surplus = dedupe(events)

    assert {(e.client, e.issued) for e in latest} == {("A", 3), ("B", 5)}
    assert len(surplus) == 3
    assert len(latest) + len(surplus) == len(events)


def test_empty_batch():
    assert dedupe([]) == ([], [])
