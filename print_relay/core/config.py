"""
Config utilities for Print Relay.

Responsibilities:
- Resolve config/data paths with environment and XDG support
- Load the dispatcher's JSON device config
- Build typed settings for the Queue API (env driven) and the LAN dispatcher
  (JSON file, then env overrides)
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

TRUTHY = ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except Exception:
        return default


def default_config_path() -> str:
    """
    Resolve the default config path using:
    1) $XDG_CONFIG_HOME/printrelay/config.json
    2) ~/.config/printrelay/config.json
    """
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return str(Path(xdg) / "printrelay" / "config.json")
    return str(Path.home() / ".config" / "printrelay" / "config.json")


def default_db_path() -> str:
    """
    Resolve the default job store path using:
    1) $XDG_DATA_HOME/printrelay/jobs.db
    2) ~/.local/share/printrelay/jobs.db
    """
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return str(Path(xdg) / "printrelay" / "jobs.db")
    return str(Path.home() / ".local" / "share" / "printrelay" / "jobs.db")


def get_config_path() -> str:
    """
    Return the config path honoring PRINTRELAY_CONFIG_PATH override.
    """
    return os.environ.get("PRINTRELAY_CONFIG_PATH", default_config_path())


def get_db_path() -> str:
    """
    Return the job store path honoring PRINTRELAY_DB_PATH override.
    """
    return os.environ.get("PRINTRELAY_DB_PATH", default_db_path())


def load_config(path: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Load the JSON config if it exists; return None if missing.

    Raises:
        json.JSONDecodeError if the file exists but contains invalid JSON.
        OSError for I/O errors other than missing file.
    """
    cfg_path = Path(path or get_config_path())
    if not cfg_path.exists():
        return None
    with cfg_path.open("r", encoding="utf-8") as f:
        return json.load(f)


# ----- Queue API settings ----------------------------------------------------


@dataclass
class QueueSettings:
    batch_size: int = 20
    long_poll_max_wait: float = 8.0
    long_poll_interval: float = 0.5
    max_request_seconds: float = 10.0

    @property
    def effective_max_wait(self) -> float:
        """Long-poll wait clamped so one check interval still fits under the request ceiling."""
        ceiling = max(0.0, self.max_request_seconds - self.long_poll_interval)
        return max(0.0, min(self.long_poll_max_wait, ceiling))

    @classmethod
    def from_env(cls) -> "QueueSettings":
        return cls(
            batch_size=_env_int("PRINTRELAY_BATCH_SIZE", 20),
            long_poll_max_wait=_env_float("PRINTRELAY_LONG_POLL_MAX_WAIT", 8.0),
            long_poll_interval=_env_float("PRINTRELAY_LONG_POLL_INTERVAL", 0.5),
            max_request_seconds=_env_float("PRINTRELAY_MAX_REQUEST_SECONDS", 10.0),
        )

    @classmethod
    def from_app_config(cls, config: Mapping[str, Any]) -> "QueueSettings":
        base = cls.from_env()
        return cls(
            batch_size=int(config.get("PRINTRELAY_BATCH_SIZE", base.batch_size)),
            long_poll_max_wait=float(config.get("PRINTRELAY_LONG_POLL_MAX_WAIT", base.long_poll_max_wait)),
            long_poll_interval=float(config.get("PRINTRELAY_LONG_POLL_INTERVAL", base.long_poll_interval)),
            max_request_seconds=float(config.get("PRINTRELAY_MAX_REQUEST_SECONDS", base.max_request_seconds)),
        )


# ----- Dispatcher settings ---------------------------------------------------

TRANSPORTS = ("network", "spooler", "serial")


@dataclass
class DispatcherSettings:
    queue_url: str = "http://localhost:8000"
    secret: str = ""
    http_timeout: float = 15.0
    types: List[str] = field(default_factory=list)

    transport: str = "network"
    network_ip: str = ""
    network_port: int = 9100
    printer_name: str = ""
    spooler_command: Optional[List[str]] = None
    serial_port: str = ""
    serial_baudrate: int = 9600
    transport_timeout: float = 5.0

    send_attempts: int = 3
    retry_delay: float = 1.0
    error_delay: float = 2.0
    probe_interval: float = 60.0

    printer_profile: Optional[str] = None
    line_width: int = 48
    cut_feed_lines: int = 2
    drawer_pin: str = "0"
    drawer_double_pulse: bool = False

    def validate(self) -> "DispatcherSettings":
        if self.transport not in TRANSPORTS:
            raise ValueError(f"Unsupported transport: {self.transport!r} (use one of {', '.join(TRANSPORTS)})")
        if self.transport == "network" and not self.network_ip:
            raise ValueError("network transport requires network_ip")
        if self.transport == "spooler" and not self.printer_name:
            raise ValueError("spooler transport requires printer_name")
        if self.transport == "serial" and not self.serial_port:
            raise ValueError("serial transport requires serial_port")
        if self.drawer_pin not in ("0", "1", "both"):
            raise ValueError(f"drawer_pin must be 0, 1 or both, got {self.drawer_pin!r}")
        if self.send_attempts < 1:
            raise ValueError("send_attempts must be at least 1")
        return self


# env var -> (field, parser)
_DISPATCHER_ENV = {
    "PRINTRELAY_QUEUE_URL": ("queue_url", str),
    "PRINTRELAY_SECRET": ("secret", str),
    "PRINTRELAY_HTTP_TIMEOUT": ("http_timeout", float),
    "PRINTRELAY_TYPES": ("types", lambda v: [t.strip() for t in v.split(",") if t.strip()]),
    "PRINTRELAY_TRANSPORT": ("transport", lambda v: v.strip().lower()),
    "PRINTRELAY_PRINTER_IP": ("network_ip", str),
    "PRINTRELAY_PRINTER_PORT": ("network_port", int),
    "PRINTRELAY_PRINTER_NAME": ("printer_name", str),
    "PRINTRELAY_SERIAL_PORT": ("serial_port", str),
    "PRINTRELAY_SERIAL_BAUDRATE": ("serial_baudrate", int),
    "PRINTRELAY_TRANSPORT_TIMEOUT": ("transport_timeout", float),
    "PRINTRELAY_SEND_ATTEMPTS": ("send_attempts", int),
    "PRINTRELAY_RETRY_DELAY": ("retry_delay", float),
    "PRINTRELAY_ERROR_DELAY": ("error_delay", float),
    "PRINTRELAY_PROBE_INTERVAL": ("probe_interval", float),
    "PRINTRELAY_PRINTER_PROFILE": ("printer_profile", str),
    "PRINTRELAY_DRAWER_PIN": ("drawer_pin", str),
    "PRINTRELAY_DRAWER_DOUBLE_PULSE": ("drawer_double_pulse", lambda v: v.lower() in TRUTHY),
}


def load_dispatcher_settings(path: Optional[str] = None, validate: bool = True) -> DispatcherSettings:
    """
    Build dispatcher settings from the JSON config (if present) and env overrides.

    Unknown keys in the JSON file are ignored. With validate (the default),
    raises ValueError on an invalid device combination (e.g. network
    transport without an address). Producers that only talk to the queue
    pass validate=False.
    """
    data: Dict[str, Any] = dict(load_config(path) or {})
    known = {f.name for f in fields(DispatcherSettings)}
    values: Dict[str, Any] = {k: v for k, v in data.items() if k in known}

    for env_name, (attr, parse) in _DISPATCHER_ENV.items():
        raw = os.environ.get(env_name)
        if raw is None or raw == "":
            continue
        try:
            values[attr] = parse(raw)
        except ValueError as e:
            raise ValueError(f"Invalid value for {env_name}: {raw!r}") from e

    if "drawer_pin" in values:
        values["drawer_pin"] = str(values["drawer_pin"]).strip().lower()
    settings = DispatcherSettings(**values)
    return settings.validate() if validate else settings


__all__ = [
    "DispatcherSettings",
    "QueueSettings",
    "TRANSPORTS",
    "default_config_path",
    "default_db_path",
    "get_config_path",
    "get_db_path",
    "load_config",
    "load_dispatcher_settings",
]
