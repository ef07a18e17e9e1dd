"""
Queue operations shared by the HTTP API, the CLI and tests.

This module is Flask-agnostic: the store helpers pick up the request's
connection when called inside an app context and a per-thread one otherwise.

Delivery is at-least-once. Nothing here locks a job to a worker; a job stays
visible until acknowledge() tombstones it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import db as store
from .config import QueueSettings
from .errors import InvalidRequest, NotFound
from .jobs import JOB_TYPES, validate_job

logger = logging.getLogger(__name__)


def enqueue(kind: Any, payload: Any = None) -> str:
    """
    Validate and append a job. Returns the new job id.

    Raises InvalidRequest on a bad type/payload and StoreUnavailable on store errors.
    """
    normalized = validate_job(kind, payload)
    job_id = store.insert_job(kind, normalized)
    logger.info("Enqueued %s job id=%s", kind, job_id)
    return job_id


def _normalize_types(types: Optional[Iterable[str]]) -> Optional[List[str]]:
    if not types:
        return None
    wanted = [t for t in dict.fromkeys(str(t).strip() for t in types) if t]
    unknown = [t for t in wanted if t not in JOB_TYPES]
    if unknown:
        raise InvalidRequest(f"unknown job type filter: {', '.join(unknown)}")
    return wanted or None


def fetch_pending(
    long_poll: bool = False,
    *,
    settings: Optional[QueueSettings] = None,
    types: Optional[Sequence[str]] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> List[Dict[str, Any]]:
    """
    Return up to settings.batch_size pending jobs, oldest first.

    With long_poll, an empty result is re-checked every long_poll_interval
    seconds until a job shows up or the (clamped) max wait elapses, then one
    last check is made. The call never outlives max wait + one interval, even
    if the client has already gone away.
    """
    settings = settings or QueueSettings.from_env()
    wanted = _normalize_types(types)
    jobs = store.fetch_pending_jobs(settings.batch_size, wanted)
    if jobs or not long_poll:
        return jobs

    interval = max(0.01, settings.long_poll_interval)
    deadline = clock() + settings.effective_max_wait
    checks = 1
    while True:
        remaining = deadline - clock()
        if remaining <= 0:
            break
        sleep(min(interval, remaining))
        jobs = store.fetch_pending_jobs(settings.batch_size, wanted)
        checks += 1
        if jobs:
            break
    logger.debug("Long poll finished after %d checks with %d jobs", checks, len(jobs))
    return jobs


def acknowledge(job_ids: Any) -> int:
    """
    Mark the listed jobs printed. Returns the number of newly marked jobs.

    Unknown and already printed ids are skipped, so repeating a call is a no-op.
    """
    if job_ids is None:
        return 0
    if isinstance(job_ids, (str, bytes)) or not isinstance(job_ids, Iterable):
        raise InvalidRequest("printedIds must be a list of job ids")
    ids = [str(i) for i in job_ids]
    if not ids:
        return 0
    updated = store.mark_printed(ids)
    logger.info("Acknowledged %d/%d jobs", updated, len(ids))
    return updated


def get_job(job_id: str) -> Dict[str, Any]:
    job = store.get_job(job_id)
    if job is None:
        raise NotFound(f"job {job_id} not found")
    return job


def queue_status() -> Dict[str, Any]:
    return store.pending_stats()


__all__ = ["acknowledge", "enqueue", "fetch_pending", "get_job", "queue_status"]
