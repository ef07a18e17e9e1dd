"""
Logging setup shared by the Queue API and the LAN dispatcher.

Both sides log through the root logger. Records carry two extra fields:

- request_id: the API request being served (X-Request-ID), "-" elsewhere
- component: "api" inside a Flask request, otherwise the name passed to
  configure_logging() (the CLI passes its subcommand, e.g. "dispatch")

PRINTRELAY_JSON_LOGS=true switches to one JSON object per line, and
PRINTRELAY_LOG_LEVEL overrides the level chosen by the caller.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Optional

PLAIN_FORMAT = "[%(asctime)s] %(levelname)s %(component)s %(request_id)s %(name)s: %(message)s"

# Per-request chatter from the HTTP stack; the dispatcher logs its own summary
NOISY_LOGGERS = ("urllib3", "werkzeug")


class ContextFilter(logging.Filter):
    """
    Stamp request_id, path and component on every record.
    """

    def __init__(self, component: str = "print-relay") -> None:
        super().__init__()
        self.component = component

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        record.request_id = "-"
        record.path = "-"
        record.component = self.component
        try:
            from flask import g, has_request_context, request  # lazy import

            if has_request_context():
                record.request_id = getattr(g, "request_id", "-")
                record.path = request.path
                record.component = "api"
        except ImportError:
            pass
        return True


class JsonFormatter(logging.Formatter):
    """
    One JSON object per record. Job ids passed via `extra={"job_id": ...}` are included.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        doc = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "component": getattr(record, "component", "-"),
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        path = getattr(record, "path", "-")
        if path != "-":
            doc["path"] = path
        job_id = getattr(record, "job_id", None)
        if job_id:
            doc["job_id"] = job_id
        if record.exc_info:
            doc["exc"] = self.formatException(record.exc_info)
        return json.dumps(doc, ensure_ascii=False)


def _level_from_env(default: int) -> int:
    name = os.environ.get("PRINTRELAY_LOG_LEVEL", "").strip().upper()
    if not name:
        return default
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


def _make_handler(component: str) -> logging.Handler:
    # Dispatcher boxes usually run it as a systemd unit
    try:
        from systemd.journal import JournalHandler  # type: ignore

        return JournalHandler(SYSLOG_IDENTIFIER=f"print-relay-{component}")
    except ImportError:
        return logging.StreamHandler()


def configure_logging(level: int = logging.INFO, component: Optional[str] = None) -> logging.Logger:
    """
    Install a single handler on the root logger and return it.

    Safe to call repeatedly (app factory in tests, CLI subcommands): existing
    root handlers are replaced, and Flask's app logger is made to propagate
    instead of keeping its own handler.
    """
    component = component or "print-relay"
    root = logging.getLogger()
    root.setLevel(_level_from_env(level))
    root.handlers = []

    json_logs = os.environ.get("PRINTRELAY_JSON_LOGS", "false").lower() in ("1", "true", "yes")
    handler = _make_handler(component)
    handler.setFormatter(JsonFormatter() if json_logs else logging.Formatter(PLAIN_FORMAT))
    handler.addFilter(ContextFilter(component))
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root.level))

    flask_logger = logging.getLogger("flask.app")
    flask_logger.handlers = []
    flask_logger.propagate = True
    return root


__all__ = ["ContextFilter", "JsonFormatter", "configure_logging"]
