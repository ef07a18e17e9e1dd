"""
Error taxonomy shared by the Queue API, the job store and the dispatcher.

HTTP-facing errors carry the status code the web layer responds with.
TransportFailure and QueueUnavailable never leave the LAN dispatcher.
"""

from __future__ import annotations


class PrintRelayError(Exception):
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class InvalidRequest(PrintRelayError):
    status_code = 400


class Unauthorized(PrintRelayError):
    status_code = 401


class NotFound(PrintRelayError):
    status_code = 404


class StoreUnavailable(PrintRelayError):
    status_code = 503


class QueueUnavailable(PrintRelayError):
    """The dispatcher could not reach the Queue API (network error or timeout)."""

    status_code = 503


class TransportFailure(PrintRelayError):
    """A device write failed: printer offline, port busy, spooler error."""


__all__ = [
    "InvalidRequest",
    "NotFound",
    "PrintRelayError",
    "QueueUnavailable",
    "StoreUnavailable",
    "TransportFailure",
    "Unauthorized",
]
