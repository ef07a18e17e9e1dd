"""
Core utilities for Print Relay.

This package groups non-HTTP pieces used by both the hosted Queue API and
the LAN dispatcher:
- config: paths, JSON load/save, queue and dispatcher settings
- logging: request id / component aware filter, JSON formatter, root logger config
- errors: the shared error taxonomy
- jobs: job kinds and their typed payloads
- db: the SQLite job store
- print_queue: enqueue / fetch pending / acknowledge

Exports are explicit to keep static analyzers (e.g., Pyright) happy.
"""

from .config import (
    DispatcherSettings,
    QueueSettings,
    default_config_path,
    default_db_path,
    get_config_path,
    get_db_path,
    load_config,
    load_dispatcher_settings,
)
from .errors import (
    InvalidRequest,
    NotFound,
    PrintRelayError,
    QueueUnavailable,
    StoreUnavailable,
    TransportFailure,
    Unauthorized,
)
from .jobs import JOB_TYPES, PrintJob, parse_payload, validate_job
from .logging import (
    ContextFilter,
    JsonFormatter,
    configure_logging,
)

__all__ = [
    # config
    "DispatcherSettings",
    "QueueSettings",
    "default_config_path",
    "default_db_path",
    "get_config_path",
    "get_db_path",
    "load_config",
    "load_dispatcher_settings",
    # errors
    "InvalidRequest",
    "NotFound",
    "PrintRelayError",
    "QueueUnavailable",
    "StoreUnavailable",
    "TransportFailure",
    "Unauthorized",
    # jobs
    "JOB_TYPES",
    "PrintJob",
    "parse_payload",
    "validate_job",
    # logging
    "configure_logging",
    "ContextFilter",
    "JsonFormatter",
]
