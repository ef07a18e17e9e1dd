"""
Device transports for the LAN dispatcher.

Each adapter has one job: push raw ESC/POS bytes to a device and raise
TransportFailure if that did not happen. One adapter is chosen at startup
(build_transport); they are never combined.

- NetworkTransport: raw TCP (port 9100 "JetDirect" style) thermal printers
- SpoolerTransport: the OS print spooler (`lp` on Linux/macOS, or a custom
  command such as a PowerShell raw-print helper on Windows)
- SerialTransport: printers or drawer interfaces on a serial/COM port
"""

from __future__ import annotations

import base64
import logging
import shutil
import socket
import subprocess
from typing import List, Optional, Sequence

import serial

from print_relay.core.config import DispatcherSettings
from print_relay.core.errors import TransportFailure

logger = logging.getLogger(__name__)


class Transport:
    """Base class for device transports."""

    name = "transport"

    def send(self, data: bytes) -> None:
        raise NotImplementedError

    def probe(self) -> None:
        """Check the device is reachable without printing. Raises TransportFailure."""
        raise NotImplementedError

    def describe(self) -> str:
        return self.name


class NetworkTransport(Transport):
    name = "network"

    def __init__(self, host: str, port: int = 9100, timeout: float = 5.0) -> None:
        self.host = host
        self.port = int(port)
        self.timeout = float(timeout)

    def describe(self) -> str:
        return f"tcp://{self.host}:{self.port}"

    def _connect(self) -> socket.socket:
        try:
            return socket.create_connection((self.host, self.port), timeout=self.timeout)
        except OSError as e:
            raise TransportFailure(f"cannot connect to {self.describe()}: {e}") from e

    def send(self, data: bytes) -> None:
        sock = self._connect()
        try:
            sock.sendall(data)
        except OSError as e:
            raise TransportFailure(f"write to {self.describe()} failed: {e}") from e
        finally:
            sock.close()
        logger.debug("Sent %d bytes to %s", len(data), self.describe())

    def probe(self) -> None:
        self._connect().close()


DEFAULT_SPOOLER_COMMAND = ["lp", "-d", "{printer}", "-o", "raw"]


class SpoolerTransport(Transport):
    """
    Hand the bytes to an OS print command.

    The command is a list of arguments where `{printer}` is replaced by the
    printer name. If any argument contains `{base64}`, the payload is passed
    base64-encoded in that argument; otherwise it is written to stdin.
    """

    name = "spooler"

    def __init__(self, printer_name: str, command: Optional[Sequence[str]] = None, timeout: float = 15.0) -> None:
        self.printer_name = printer_name
        self.command = list(command or DEFAULT_SPOOLER_COMMAND)
        self.timeout = float(timeout)

    def describe(self) -> str:
        return f"spooler:{self.printer_name}"

    def build_args(self, data: bytes) -> List[str]:
        encoded = base64.b64encode(data).decode("ascii")
        return [arg.replace("{printer}", self.printer_name).replace("{base64}", encoded) for arg in self.command]

    def _uses_stdin(self) -> bool:
        return not any("{base64}" in arg for arg in self.command)

    def send(self, data: bytes) -> None:
        args = self.build_args(data)
        try:
            result = subprocess.run(
                args,
                input=data if self._uses_stdin() else None,
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise TransportFailure(f"{args[0]} timed out after {self.timeout:.0f}s") from e
        except OSError as e:
            raise TransportFailure(f"cannot run {args[0]}: {e}") from e
        if result.returncode != 0:
            stderr = (result.stderr or b"").decode("utf-8", "replace").strip()
            raise TransportFailure(f"{args[0]} exited with {result.returncode}: {stderr[:200]}")
        logger.debug("Spooled %d bytes to %s", len(data), self.printer_name)

    def probe(self) -> None:
        if shutil.which(self.command[0]) is None:
            raise TransportFailure(f"print command not found: {self.command[0]}")


class SerialTransport(Transport):
    """
    Serial port writer. Every send opens, writes, drains and closes the port;
    no handle is kept between jobs.
    """

    name = "serial"

    def __init__(self, port: str, baudrate: int = 9600, timeout: float = 5.0) -> None:
        self.port = port
        self.baudrate = int(baudrate)
        self.timeout = float(timeout)

    def describe(self) -> str:
        return f"serial:{self.port}@{self.baudrate}"

    def _open(self) -> serial.Serial:
        try:
            return serial.Serial(self.port, self.baudrate, timeout=self.timeout, write_timeout=self.timeout)
        except (serial.SerialException, ValueError, OSError) as e:
            raise TransportFailure(f"cannot open {self.describe()}: {e}") from e

    def send(self, data: bytes) -> None:
        port = self._open()
        try:
            port.write(data)
            # flush() blocks until the output buffer is drained
            port.flush()
        except (serial.SerialException, OSError) as e:
            raise TransportFailure(f"write to {self.describe()} failed: {e}") from e
        finally:
            port.close()
        logger.debug("Wrote %d bytes to %s", len(data), self.describe())

    def probe(self) -> None:
        self._open().close()


def build_transport(settings: DispatcherSettings) -> Transport:
    """
    Create the single transport configured for this deployment.
    """
    kind = settings.transport
    if kind == "network":
        return NetworkTransport(settings.network_ip, settings.network_port, timeout=settings.transport_timeout)
    if kind == "spooler":
        return SpoolerTransport(
            settings.printer_name,
            command=settings.spooler_command,
            timeout=max(settings.transport_timeout, 15.0),
        )
    if kind == "serial":
        return SerialTransport(settings.serial_port, settings.serial_baudrate, timeout=settings.transport_timeout)
    raise ValueError(f"Unsupported transport: {kind}")


__all__ = [
    "DEFAULT_SPOOLER_COMMAND",
    "NetworkTransport",
    "SerialTransport",
    "SpoolerTransport",
    "Transport",
    "build_transport",
]
