from typing import Any, Dict, List

import pytest
import requests

from print_relay.core.errors import (
    InvalidRequest,
    NotFound,
    QueueUnavailable,
    StoreUnavailable,
    Unauthorized,
)
from print_relay.printing.client import LONG_POLL_GRACE, QueueClient


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None):
        self.status_code = status_code
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp


def _client(*responses) -> QueueClient:
    return QueueClient("https://pos.example.com/", "secret", timeout=10, session=FakeSession(list(responses)))


def test_fetch_pending_sends_secret_and_long_poll():
    job = {"id": "j1", "type": "cash_drawer", "payload": {}, "created_at": "2024-01-01T00:00:00+00:00"}
    client = _client(FakeResponse(200, {"jobs": [job]}))
    jobs = client.fetch_pending(long_poll=True, types=["cash_drawer"])

    assert [j.id for j in jobs] == ["j1"]
    assert jobs[0].pending
    call = client.session.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://pos.example.com/print-queue"
    assert call["headers"]["x-print-secret"] == "secret"
    assert call["params"] == {"longPoll": "1", "types": "cash_drawer"}
    assert call["timeout"] == 10 + LONG_POLL_GRACE


def test_acknowledge_posts_printed_ids():
    client = _client(FakeResponse(200, {"ok": True, "updated": 2}))
    assert client.acknowledge(["a", "b"]) == 2
    call = client.session.calls[0]
    assert call["method"] == "PATCH"
    assert call["json"] == {"printedIds": ["a", "b"]}


def test_acknowledge_empty_makes_no_call():
    client = _client()
    assert client.acknowledge([]) == 0
    assert client.session.calls == []


def test_enqueue_returns_id():
    client = _client(FakeResponse(201, {"id": "new", "ok": True}))
    assert client.enqueue("cash_drawer") == "new"
    assert client.session.calls[0]["json"] == {"type": "cash_drawer"}


@pytest.mark.parametrize(
    "status,exc",
    [
        (400, InvalidRequest),
        (401, Unauthorized),
        (404, NotFound),
        (500, StoreUnavailable),
        (503, StoreUnavailable),
    ],
)
def test_status_codes_map_to_errors(status, exc):
    client = _client(FakeResponse(status, {"error": "boom"}))
    with pytest.raises(exc, match="boom"):
        client.fetch_pending(long_poll=False)


def test_network_errors_become_queue_unavailable():
    client = _client(requests.ConnectionError("refused"))
    with pytest.raises(QueueUnavailable):
        client.fetch_pending()

    client = _client(requests.Timeout("slow"))
    with pytest.raises(QueueUnavailable):
        client.acknowledge(["a"])


def test_non_json_success_body():
    client = _client(FakeResponse(200, None))
    with pytest.raises(QueueUnavailable):
        client.fetch_pending()
