import pytest

from forwarder.config import Settings
from forwarder.schemas import CurrentStateRecord, Event


def build_event(client="A", check="ping", status=2, issued=100, output="", **extra) -> Event:
    payload = {
        "client": {"name": client, "address": "10.0.0.1"},
        "check": {"name": check, "status": status, "issued": issued, "output": output},
        "occurrences": 1,
    }
    payload["check"].update(extra)
    return Event.from_payload(payload)


@pytest.fixture
def settings():
    """Settings isolated from the environment, with short waits for tests."""
    return Settings(
        _env_file=None,
        max_batch_count=3,
        max_wait_time=0.2,
        queue_retry_seconds=0,
        circuit_failure_threshold=2,
    )


@pytest.fixture
def make_event():
    return build_event


@pytest.fixture
def make_prior():
    def _make_prior(status=2, issued=50, state_change=None, output="", rev="1-abc", **kwargs):
        event = build_event(status=status, issued=issued, output=output, **kwargs)
        state_change = issued if state_change is None else state_change
        return CurrentStateRecord(event=event.with_state_change(state_change), rev=rev)

    return _make_prior
