from __future__ import annotations

"""
Health endpoint for the hosted Queue API.

`/healthz` reports:
- Overall status ("ok" or "degraded")
- Job store reachability
- Pending backlog size and the age of the oldest pending job. A backlog that
  keeps growing usually means the LAN dispatcher or its printer is offline.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import Blueprint, current_app

from print_relay.core import print_queue
from print_relay.core.errors import StoreUnavailable

health_bp = Blueprint("health", __name__)


def _age_seconds(iso_ts: Optional[str]) -> Optional[float]:
    if not iso_ts:
        return None
    try:
        created = datetime.fromisoformat(iso_ts)
    except ValueError:
        return None
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return round((datetime.now(timezone.utc) - created).total_seconds(), 3)


@health_bp.get("/healthz")
def healthz():
    status: Dict[str, Any] = {"status": "ok"}
    try:
        stats = print_queue.queue_status()
    except StoreUnavailable:
        status.update(status="degraded", store_ok=False, reason="store_unavailable")
        return status, 503

    status["store_ok"] = True
    status["pending"] = stats["pending"]
    status["oldest_pending_age_seconds"] = _age_seconds(stats["oldest_created_at"])

    stale_after = float(current_app.config.get("PRINTRELAY_STALE_BACKLOG_SECONDS", 300))
    age = status["oldest_pending_age_seconds"]
    if age is not None and age > stale_after:
        status["status"] = "degraded"
        status["reason"] = "stale_backlog"
    if not current_app.config.get("PRINTRELAY_SECRET"):
        status["status"] = "degraded"
        status["reason"] = "no_secret"
    return status, 200
