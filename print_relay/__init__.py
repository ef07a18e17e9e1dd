"""
Print Relay package

Application factory for the hosted Queue API:
- Configures logging via print_relay.core.logging
- Creates a Flask app with env-driven settings (secret, job store path, long-poll limits)
- Initializes CSRF protection (the machine API blueprint is exempt)
- Registers the print queue and health blueprints
- Assigns a request id to every request and echoes it as X-Request-ID

The LAN side (encoders, transports, dispatcher, queue client) lives in
print_relay.printing and does not need Flask at runtime.
"""

from __future__ import annotations

import importlib
import os
import uuid
from collections.abc import Sequence
from typing import Optional

from flask import Flask, g, request
from flask_wtf import CSRFProtect

csrf = CSRFProtect()

__version__ = "0.3.0"


def _default_secret_key() -> str:
    return os.environ.get("PRINTRELAY_SECRET_KEY", "printrelay_dev_secret_key")


def _env_config() -> dict:
    from print_relay.core.config import QueueSettings, get_db_path

    qs = QueueSettings.from_env()
    return {
        "PRINTRELAY_SECRET": os.environ.get("PRINTRELAY_SECRET", ""),
        "PRINTRELAY_DB_PATH": get_db_path(),
        "PRINTRELAY_BATCH_SIZE": qs.batch_size,
        "PRINTRELAY_LONG_POLL_MAX_WAIT": qs.long_poll_max_wait,
        "PRINTRELAY_LONG_POLL_INTERVAL": qs.long_poll_interval,
        "PRINTRELAY_MAX_REQUEST_SECONDS": qs.max_request_seconds,
        "PRINTRELAY_STALE_BACKLOG_SECONDS": float(os.environ.get("PRINTRELAY_STALE_BACKLOG_SECONDS", 300)),
        "MAX_CONTENT_LENGTH": int(os.environ.get("PRINTRELAY_MAX_CONTENT_LENGTH", 256 * 1024)),
    }


def _register_blueprint(app: Flask, import_path: str, attr: str) -> None:
    mod = importlib.import_module(import_path)
    app.register_blueprint(getattr(mod, attr))
    app.logger.debug("Registered blueprint: %s.%s", import_path, attr)


def _set_request_id() -> None:
    incoming = (request.headers.get("X-Request-ID") or "").strip()
    g.request_id = incoming[:64] if incoming else uuid.uuid4().hex


def create_app(
    config_overrides: Optional[dict] = None,
    blueprints: Optional[Sequence[tuple[str, str]]] = None,
) -> Flask:
    """
    Application factory.

    Parameters:
    - config_overrides: values to inject into app.config after env defaults
    - blueprints: optional list of (import_path, attribute) tuples to register.
      If None, the queue API and health endpoint are registered.

    Returns:
    - Flask app instance
    """
    from print_relay.core import db as _db
    from print_relay.core.logging import configure_logging

    app = Flask("print_relay")
    app.secret_key = _default_secret_key()
    app.config.update(_env_config())
    if config_overrides:
        app.config.update(config_overrides)

    csrf.init_app(app)
    _db.init_app(app)

    configure_logging(component="api")
    app.url_map.strict_slashes = False

    if not app.config.get("PRINTRELAY_SECRET"):
        app.logger.warning("PRINTRELAY_SECRET is not set; every print queue request will be rejected")

    @app.before_request
    def _before_request():
        _set_request_id()

    @app.after_request
    def _after_request(response):
        response.headers.setdefault("X-Request-ID", getattr(g, "request_id", "-"))
        return response

    default_blueprints = [
        ("print_relay.web.queue", "queue_bp"),
        ("print_relay.web.health", "health_bp"),
    ]
    for import_path, attr in blueprints or default_blueprints:
        _register_blueprint(app, import_path, attr)

    app.logger.info("Print Relay app created (db=%s)", app.config.get("PRINTRELAY_DB_PATH"))
    return app


__all__ = ["__version__", "create_app", "csrf"]
