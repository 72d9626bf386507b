"""Tests for event parsing and document shapes."""

import pytest

from forwarder.schemas import Event, EventKey, MalformedEventError, Status


def test_from_payload_reads_sensu_shape():
    event = Event.from_payload({
        "client": {"name": "web-1"},
        "check": {"name": "http", "status": 1, "issued": 1400000000, "output": "slow"},
    })

    assert event.key == EventKey("web-1", "http")
    assert event.key.doc_id == "web-1/http"
    assert event.status == Status.WARNING
    assert event.issued == 1400000000
    assert event.state_change is None
    assert not event.is_resolved


def test_missing_output_defaults_to_empty():
    event = Event.from_payload({
        "client": {"name": "a"},
        "check": {"name": "b", "status": 0, "issued": 1, "output": None},
    })

    assert event.output == ""
    assert event.is_resolved


@pytest.mark.parametrize("payload", [
    None,
    [],
    {"check": {"name": "b", "status": 0, "issued": 1}},
    {"client": {"name": "a"}, "check": {"name": "b", "status": 0}},
    {"client": {"name": ""}, "check": {"name": "b", "status": 0, "issued": 1}},
    {"client": {"name": "a"}, "check": {"name": "b", "status": -1, "issued": 1}},
    {"client": "a", "check": {"name": "b", "status": 0, "issued": 1}},
])
def test_malformed_payloads_rejected(payload):
    with pytest.raises(MalformedEventError):
        Event.from_payload(payload)


def test_with_state_change_leaves_original_untouched(make_event):
    event = make_event(issued=10)

    changed = event.with_state_change(10)

    assert event.state_change is None
    assert changed.state_change == 10
    assert changed.to_document()["check"]["state_change"] == 10
    assert "state_change" not in event.payload["check"]
