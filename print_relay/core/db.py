"""
SQLite job store for Print Relay.

Features:
- DB path resolution with env/XDG defaults (or PRINTRELAY_DB_PATH in app.config)
- Per-request connection lifecycle (cached on Flask `g`), per-thread outside Flask
- PRAGMAs for concurrent readers/writers: WAL, synchronous=NORMAL, busy timeout
- Schema bootstrap (schema_version = 1)
- Append, fetch-pending and conditional mark-printed helpers

Rows are never deleted: printed_at is the completion tombstone.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from collections.abc import Iterable
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

from flask import current_app, g, has_app_context

from .config import get_db_path
from .errors import StoreUnavailable

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
BUSY_TIMEOUT_SECONDS = 5.0

_local = threading.local()


def _iso_now() -> str:
    # Fixed width so created_at sorts lexically
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


# ----- Connection management -------------------------------------------------


def _apply_pragmas(db: sqlite3.Connection) -> None:
    try:
        db.execute("PRAGMA journal_mode = WAL")
    except sqlite3.DatabaseError:
        # In-memory databases cannot switch to WAL
        pass
    db.execute("PRAGMA synchronous = NORMAL")


def _connect(path: str) -> sqlite3.Connection:
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, timeout=BUSY_TIMEOUT_SECONDS)
    conn.row_factory = sqlite3.Row
    _apply_pragmas(conn)
    _ensure_schema(conn)
    return conn


def _resolve_path(path: Optional[str]) -> str:
    if path:
        return path
    if has_app_context():
        configured = current_app.config.get("PRINTRELAY_DB_PATH")
        if configured:
            return str(configured)
    return get_db_path()


def get_db(path: Optional[str] = None) -> sqlite3.Connection:
    """
    Return a sqlite3 connection; per-request if a Flask app context is active,
    otherwise one per thread and path (dispatcher-side tools, CLI, tests).
    """
    db_path = _resolve_path(path)
    if has_app_context():
        conn = getattr(g, "db", None)
        if conn is None or getattr(g, "db_path", None) != db_path:
            if conn is not None:
                conn.close()
            g.db = _connect(db_path)
            g.db_path = db_path
        return g.db

    conns: Dict[str, sqlite3.Connection] = getattr(_local, "conns", None) or {}
    _local.conns = conns
    if db_path not in conns:
        conns[db_path] = _connect(db_path)
    return conns[db_path]


def close_db(e: Optional[BaseException] = None) -> None:
    """
    Close the active connection(s): the request's inside Flask, else this thread's.
    """
    if has_app_context():
        conn = g.pop("db", None)
        g.pop("db_path", None)
        if conn is not None:
            conn.close()
        return

    conns: Dict[str, sqlite3.Connection] = getattr(_local, "conns", None) or {}
    for conn in conns.values():
        try:
            conn.close()
        except sqlite3.Error:
            logger.debug("Ignoring error closing job store connection", exc_info=True)
    _local.conns = {}


def init_app(app) -> None:
    """
    Register the teardown hook on a Flask app.
    """
    app.teardown_appcontext(close_db)


@contextmanager
def _store_errors(op: str) -> Iterator[None]:
    """Translate sqlite failures into StoreUnavailable for the API layer."""
    try:
        yield
    except sqlite3.Error as e:
        logger.exception("Job store %s failed: %s", op, e)
        raise StoreUnavailable(f"job store unavailable ({op})") from e


# ----- Schema ----------------------------------------------------------------


def _ensure_schema(db: sqlite3.Connection) -> None:
    """
    Create tables if not present and ensure schema_version is initialized.
    """
    with db:
        db.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
              version INTEGER NOT NULL
            )
            """,
        )
        db.execute(
            """
            CREATE TABLE IF NOT EXISTS print_jobs (
              id          TEXT PRIMARY KEY,
              type        TEXT NOT NULL,
              payload     TEXT NOT NULL DEFAULT '{}',
              created_at  TEXT NOT NULL,
              printed_at  TEXT
            )
            """,
        )
        db.execute("CREATE INDEX IF NOT EXISTS idx_print_jobs_pending ON print_jobs(printed_at, created_at)")

        row = db.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1").fetchone()
        if row is None:
            db.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        elif int(row["version"]) > SCHEMA_VERSION:
            logger.warning("Job store schema v%s is newer than this build (v%s)", row["version"], SCHEMA_VERSION)


def _row_to_job(r: sqlite3.Row) -> Dict[str, Any]:
    try:
        payload = json.loads(r["payload"]) if r["payload"] else {}
    except ValueError:
        logger.warning("Job %s has an unreadable payload; returning it empty", r["id"])
        payload = {}
    return {
        "id": r["id"],
        "type": r["type"],
        "payload": payload,
        "created_at": r["created_at"],
        "printed_at": r["printed_at"],
    }


# ----- Job operations --------------------------------------------------------


def insert_job(kind: str, payload: Dict[str, Any]) -> str:
    """
    Append a pending job and return its id. Callers validate type/payload first.
    """
    job_id = uuid.uuid4().hex
    with _store_errors("insert"):
        db = get_db()
        with db:
            db.execute(
                "INSERT INTO print_jobs (id, type, payload, created_at, printed_at) VALUES (?,?,?,?,NULL)",
                (job_id, kind, json.dumps(payload, ensure_ascii=False), _iso_now()),
            )
    return job_id


def fetch_pending_jobs(limit: int = 20, types: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
    """
    Return up to `limit` pending jobs, oldest first (insertion order breaks ties).
    """
    sql = "SELECT * FROM print_jobs WHERE printed_at IS NULL"
    params: List[Any] = []
    if types:
        sql += f" AND type IN ({','.join('?' for _ in types)})"
        params.extend(types)
    sql += " ORDER BY created_at ASC, rowid ASC LIMIT ?"
    params.append(max(0, int(limit)))
    with _store_errors("fetch"):
        rows = get_db().execute(sql, params).fetchall()
    return [_row_to_job(r) for r in rows]


def mark_printed(job_ids: Iterable[str]) -> int:
    """
    Set printed_at on each pending id and return how many rows were newly marked.

    Each row is a conditional update, so overlapping acknowledgements for the
    same id count it once and never move an existing printed_at.
    """
    ids = list(dict.fromkeys(str(i) for i in job_ids))
    if not ids:
        return 0
    now = _iso_now()
    updated = 0
    with _store_errors("acknowledge"):
        db = get_db()
        with db:
            for job_id in ids:
                cur = db.execute(
                    "UPDATE print_jobs SET printed_at = ? WHERE id = ? AND printed_at IS NULL",
                    (now, job_id),
                )
                updated += cur.rowcount
    return updated


def get_job(job_id: str) -> Optional[Dict[str, Any]]:
    with _store_errors("get"):
        row = get_db().execute("SELECT * FROM print_jobs WHERE id = ?", (job_id,)).fetchone()
    return _row_to_job(row) if row is not None else None


def pending_stats() -> Dict[str, Any]:
    """
    Count pending jobs and report the oldest one's created_at (backlog signal).
    """
    with _store_errors("stats"):
        row = get_db().execute(
            "SELECT COUNT(*) AS pending, MIN(created_at) AS oldest FROM print_jobs WHERE printed_at IS NULL",
        ).fetchone()
    return {"pending": int(row["pending"] or 0), "oldest_created_at": row["oldest"]}


__all__ = [
    "SCHEMA_VERSION",
    "close_db",
    "fetch_pending_jobs",
    "get_db",
    "get_job",
    "init_app",
    "insert_job",
    "mark_printed",
    "pending_stats",
]
