import threading
from typing import List, Optional

import pytest

from print_relay.core.config import DispatcherSettings
from print_relay.core.errors import QueueUnavailable, StoreUnavailable, TransportFailure, Unauthorized
from print_relay.core.jobs import PrintJob
from print_relay.printing.dispatcher import Dispatcher, build_dispatcher
from print_relay.printing.tickets import DRAWER_PIN0
from print_relay.printing.transports import NetworkTransport, Transport


def _drawer(job_id: str) -> PrintJob:
    return PrintJob(id=job_id, type="cash_drawer", payload={}, created_at="2024-01-01T00:00:00+00:00")


def _kitchen(job_id: str, name: str = "Burger") -> PrintJob:
    return PrintJob(
        id=job_id,
        type="kitchen",
        payload={"table": "1", "items": [{"name": name, "quantity": 2}]},
        created_at="2024-01-01T00:00:00+00:00",
    )


class FakeClient:
    base_url = "http://queue"

    def __init__(self, batches: Optional[List] = None):
        self.batches = list(batches or [])
        self.acks: List[List[str]] = []
        self.fetches = 0
        self.ack_errors: List[Exception] = []

    def fetch_pending(self, long_poll=True, types=None):
        self.fetches += 1
        self.last_types = types
        item = self.batches.pop(0) if self.batches else []
        if isinstance(item, Exception):
            raise item
        return item

    def acknowledge(self, ids):
        if self.ack_errors:
            raise self.ack_errors.pop(0)
        self.acks.append(list(ids))
        return len(ids)


class FakeTransport(Transport):
    name = "fake"

    def __init__(self, fail_when=None):
        self.sent: List[bytes] = []
        self.attempts = 0
        self.fail_when = fail_when or (lambda data: False)

    def send(self, data):
        self.attempts += 1
        if self.fail_when(data):
            raise TransportFailure("printer offline")
        self.sent.append(data)

    def probe(self):
        return None


def _dispatcher(client, transport, **kw):
    sleeps: List[float] = []
    d = Dispatcher(client, transport, retry_delay=0.1, error_delay=2.0, sleep=sleeps.append, **kw)
    return d, sleeps


def test_prints_then_acknowledges_batch():
    client = FakeClient([[_kitchen("a"), _drawer("b")]])
    transport = FakeTransport()
    d, sleeps = _dispatcher(client, transport)

    result = d.run_once()

    assert result.printed == ["a", "b"]
    assert client.acks == [["a", "b"]]
    assert result.acknowledged == 2
    assert b"2x Burger" in transport.sent[0]
    assert transport.sent[1] == bytes(DRAWER_PIN0)
    assert sleeps == []


def test_failed_job_is_not_acknowledged():
    # X prints, Y's device write fails: only X is acknowledged
    client = FakeClient([[_kitchen("x", "Soup"), _kitchen("y", "Steak")]])
    transport = FakeTransport(fail_when=lambda data: b"Steak" in data)
    d, sleeps = _dispatcher(client, transport, send_attempts=3)

    result = d.run_once()

    assert result.printed == ["x"]
    assert result.failed == ["y"]
    assert client.acks == [["x"]]
    # 1 success + 3 attempts for y
    assert transport.attempts == 4
    assert sleeps == [0.1, 0.1, 2.0]


def test_transport_failure_only_fails_that_job():
    client = FakeClient([[_kitchen("x", "Soup"), _kitchen("y", "Steak"), _kitchen("z", "Rice")]])
    transport = FakeTransport(fail_when=lambda data: b"Steak" in data)
    d, sleeps = _dispatcher(client, transport, send_attempts=1)

    result = d.run_once()

    assert result.printed == ["x", "z"]
    assert result.failed == ["y"]
    assert transport.attempts == 3
    assert client.acks == [["x", "z"]]
    # One pause at the end of the cycle, not between jobs
    assert sleeps == [2.0]


def test_every_job_failing_acknowledges_nothing():
    client = FakeClient([[_drawer("a"), _drawer("b"), _drawer("c")]])
    transport = FakeTransport(fail_when=lambda data: True)
    d, sleeps = _dispatcher(client, transport, send_attempts=1)

    result = d.run_once()

    assert result.printed == []
    assert result.failed == ["a", "b", "c"]
    assert transport.attempts == 3
    assert client.acks == []
    assert sleeps == [2.0]


def test_encoder_crash_skips_job_and_acks_the_rest(monkeypatch):
    import print_relay.printing.dispatcher as dispatcher_mod

    real_encode = dispatcher_mod.encode_job

    def _encode(job, options):
        if job.id == "boom":
            raise RuntimeError("unexpected glyph")
        return real_encode(job, options)

    monkeypatch.setattr(dispatcher_mod, "encode_job", _encode)
    client = FakeClient([[_drawer("a"), _drawer("boom"), _drawer("c")]])
    transport = FakeTransport()
    d, sleeps = _dispatcher(client, transport)

    result = d.run_once()

    assert result.skipped == ["boom"]
    assert result.printed == ["a", "c"]
    assert client.acks == [["a", "c"]]
    assert len(transport.sent) == 2
    assert sleeps == []


def test_retry_succeeds_on_second_attempt():
    calls = {"n": 0}

    def _flaky(data):
        calls["n"] += 1
        return calls["n"] == 1

    client = FakeClient([[_drawer("a")]])
    d, sleeps = _dispatcher(client, FakeTransport(fail_when=_flaky))
    result = d.run_once()
    assert result.printed == ["a"]
    assert sleeps == [0.1]


def test_unprintable_job_is_skipped_not_acknowledged():
    bad = PrintJob(id="bad", type="kitchen", payload={"items": [{"quantity": 1}]}, created_at="t")
    client = FakeClient([[bad, _drawer("ok")]])
    d, sleeps = _dispatcher(client, FakeTransport())

    result = d.run_once()

    assert result.skipped == ["bad"]
    assert result.printed == ["ok"]
    assert client.acks == [["ok"]]
    assert sleeps == []


def test_only_unprintable_jobs_back_off():
    bad = PrintJob(id="bad", type="receipt", payload={}, created_at="t")
    client = FakeClient([[bad]])
    d, sleeps = _dispatcher(client, FakeTransport())
    d.run_once()
    assert sleeps == [2.0]


def test_fetch_error_sleeps_and_returns():
    client = FakeClient([QueueUnavailable("connection refused")])
    transport = FakeTransport()
    d, sleeps = _dispatcher(client, transport)

    result = d.run_once()

    assert result.error.startswith("fetch")
    assert sleeps == [2.0]
    assert transport.sent == []


def test_unauthorized_fetch_is_fatal():
    client = FakeClient([Unauthorized("unauthorized"), [_drawer("a")]])
    transport = FakeTransport()
    d, sleeps = _dispatcher(client, transport)

    with pytest.raises(Unauthorized):
        d.run_once()

    assert sleeps == []
    assert transport.sent == []
    assert client.fetches == 1


def test_unauthorized_acknowledge_keeps_ids_and_raises():
    client = FakeClient([[_drawer("a")]])
    client.ack_errors = [Unauthorized("unauthorized")]
    d, sleeps = _dispatcher(client, FakeTransport())

    with pytest.raises(Unauthorized):
        d.run_once()

    assert d.unacknowledged == ["a"]
    assert sleeps == []


def test_run_forever_stops_on_unauthorized():
    stop = threading.Event()
    client = FakeClient([Unauthorized("unauthorized"), [], []])
    d, sleeps = _dispatcher(client, FakeTransport())

    with pytest.raises(Unauthorized):
        d.run_forever(stop)

    assert client.fetches == 1
    assert not stop.is_set()
    assert sleeps == []


def test_empty_fetch_is_quiet():
    client = FakeClient([[]])
    d, sleeps = _dispatcher(client, FakeTransport())
    result = d.run_once()
    assert result.fetched == 0
    assert client.acks == []
    assert sleeps == []


def test_failed_acknowledge_is_retried_next_cycle():
    client = FakeClient([[_drawer("a")], []])
    client.ack_errors = [StoreUnavailable("db down")]
    transport = FakeTransport()
    d, sleeps = _dispatcher(client, transport)

    first = d.run_once()
    assert first.printed == ["a"]
    assert first.error.startswith("acknowledge")
    assert d.unacknowledged == ["a"]

    second = d.run_once()
    assert client.acks == [["a"]]
    assert second.acknowledged == 1
    assert d.unacknowledged == []
    # Not printed twice by the dispatcher itself
    assert len(transport.sent) == 1


def test_types_are_forwarded_to_fetch():
    client = FakeClient([[]])
    d, _ = _dispatcher(client, FakeTransport(), types=["cash_drawer"])
    d.run_once()
    assert client.last_types == ["cash_drawer"]


def test_run_forever_survives_crashes_and_stops():
    stop = threading.Event()

    class CrashingClient(FakeClient):
        def fetch_pending(self, long_poll=True, types=None):
            self.fetches += 1
            if self.fetches >= 3:
                stop.set()
                return []
            raise RuntimeError("bug")

    client = CrashingClient()
    d, sleeps = _dispatcher(client, FakeTransport())
    d.run_forever(stop)
    assert client.fetches == 3
    assert sleeps == [2.0, 2.0]


class FlakyDevice(FakeTransport):
    def __init__(self, outcomes):
        super().__init__()
        self.outcomes = list(outcomes)
        self.checks = 0

    def probe(self):
        self.checks += 1
        if self.outcomes and not self.outcomes.pop(0):
            raise TransportFailure("no route to host")


def test_check_device_tracks_reachability():
    transport = FlakyDevice([False, True])
    d, _ = _dispatcher(FakeClient(), transport)
    assert d.device_ok is None
    assert d.check_device() is False
    assert d.device_ok is False
    assert d.check_device() is True
    assert d.device_ok is True


def test_run_forever_checks_device_on_interval():
    stop = threading.Event()
    now = {"t": 0.0}

    class TickingClient(FakeClient):
        def fetch_pending(self, long_poll=True, types=None):
            self.fetches += 1
            # Each long poll takes 25s of wall time
            now["t"] += 25.0
            if self.fetches >= 7:
                stop.set()
            return []

    transport = FlakyDevice([False, True, True])
    client = TickingClient()
    d, sleeps = _dispatcher(client, transport, probe_interval=60.0, clock=lambda: now["t"])

    d.run_forever(stop)

    # Checked before cycles starting at t=0, 75 and 150
    assert client.fetches == 7
    assert transport.checks == 3
    assert d.device_ok is True
    assert transport.sent == []
    assert sleeps == []


def test_device_check_disabled_by_default():
    stop = threading.Event()

    class OneShot(FakeClient):
        def fetch_pending(self, long_poll=True, types=None):
            stop.set()
            return []

    transport = FlakyDevice([False])
    d, _ = _dispatcher(OneShot(), transport)
    d.run_forever(stop)
    assert transport.checks == 0
    assert d.device_ok is None


def test_build_dispatcher_from_settings():
    settings = DispatcherSettings(
        queue_url="https://pos.example.com",
        secret="s",
        network_ip="10.0.0.5",
        types=["kitchen"],
        send_attempts=5,
        drawer_pin="1",
    )
    d = build_dispatcher(settings)
    assert isinstance(d.transport, NetworkTransport)
    assert d.client.base_url == "https://pos.example.com"
    assert d.types == ["kitchen"]
    assert d.send_attempts == 5
    assert d.options.drawer_pin == "1"
