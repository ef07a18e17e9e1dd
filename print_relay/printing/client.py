"""
HTTP client for the hosted print queue, used by the LAN dispatcher and by
producers/CLI tools that enqueue jobs.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from print_relay.core.errors import (
    InvalidRequest,
    NotFound,
    PrintRelayError,
    QueueUnavailable,
    StoreUnavailable,
    Unauthorized,
)
from print_relay.core.jobs import PrintJob

logger = logging.getLogger(__name__)

QUEUE_PATH = "/print-queue"
SECRET_HEADER = "x-print-secret"

# Extra seconds on top of the server's long-poll wait before giving up
LONG_POLL_GRACE = 5.0


class QueueClient:
    def __init__(
        self,
        base_url: str,
        secret: str,
        *,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.secret = secret
        self.timeout = float(timeout)
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {SECRET_HEADER: self.secret, "Accept": "application/json"}

    def _url(self, suffix: str = "") -> str:
        return f"{self.base_url}{QUEUE_PATH}{suffix}"

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        kwargs.setdefault("timeout", self.timeout)
        try:
            resp = self.session.request(method, url, headers=self._headers(), **kwargs)
        except requests.RequestException as e:
            raise QueueUnavailable(f"{method} {url} failed: {e}") from e
        return self._check(resp, method, url)

    @staticmethod
    def _error_message(resp: Any) -> str:
        try:
            body = resp.json()
            if isinstance(body, dict) and body.get("error"):
                return str(body["error"])
        except ValueError:
            pass
        return f"HTTP {resp.status_code}"

    def _check(self, resp: Any, method: str, url: str) -> Dict[str, Any]:
        code = resp.status_code
        if code < 400:
            try:
                body = resp.json()
            except ValueError as e:
                raise QueueUnavailable(f"{method} {url}: response is not JSON") from e
            return body if isinstance(body, dict) else {}
        msg = self._error_message(resp)
        if code == 400:
            raise InvalidRequest(msg)
        if code == 401:
            raise Unauthorized(msg)
        if code == 404:
            raise NotFound(msg)
        if code >= 500:
            raise StoreUnavailable(msg)
        raise PrintRelayError(f"{method} {url}: unexpected HTTP {code}: {msg}")

    def fetch_pending(self, long_poll: bool = True, types: Optional[Sequence[str]] = None) -> List[PrintJob]:
        params: Dict[str, str] = {"longPoll": "1" if long_poll else "0"}
        if types:
            params["types"] = ",".join(types)
        timeout = self.timeout + LONG_POLL_GRACE if long_poll else self.timeout
        body = self._request("GET", self._url(), params=params, timeout=timeout)
        return [PrintJob.from_dict(j) for j in body.get("jobs") or []]

    def acknowledge(self, job_ids: Sequence[str]) -> int:
        if not job_ids:
            return 0
        body = self._request("PATCH", self._url(), json={"printedIds": list(job_ids)})
        return int(body.get("updated", 0))

    def enqueue(self, kind: str, payload: Optional[Dict[str, Any]] = None) -> str:
        data: Dict[str, Any] = {"type": kind}
        if payload is not None:
            data["payload"] = payload
        body = self._request("POST", self._url(), json=data)
        return str(body["id"])

    def get_job(self, job_id: str) -> PrintJob:
        return PrintJob.from_dict(self._request("GET", self._url(f"/{job_id}")))


__all__ = ["LONG_POLL_GRACE", "QueueClient"]
