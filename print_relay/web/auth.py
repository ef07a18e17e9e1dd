"""
Shared-secret guard for the print queue endpoints.

Workers are unattended processes, so they authenticate with a static secret
(PRINTRELAY_SECRET) sent as `x-print-secret` or `Authorization: Bearer ...`
instead of a staff session.
"""

from __future__ import annotations

import hmac
import secrets
from functools import wraps
from typing import Callable, Optional

from flask import current_app, request

from print_relay.core.errors import Unauthorized

SECRET_HEADER = "x-print-secret"


def generate_secret(nbytes: int = 32) -> str:
    return secrets.token_urlsafe(nbytes)


def presented_secret() -> Optional[str]:
    header = request.headers.get(SECRET_HEADER)
    if header:
        return header.strip()
    auth = request.headers.get("Authorization", "")
    scheme, _, token = auth.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


def check_secret() -> None:
    """
    Raise Unauthorized unless the request carries the configured secret.
    With no secret configured nothing is accepted.
    """
    expected = str(current_app.config.get("PRINTRELAY_SECRET") or "")
    given = presented_secret()
    if not expected or not given or not hmac.compare_digest(expected.encode(), given.encode()):
        current_app.logger.warning("Rejected print queue request: missing or wrong secret")
        raise Unauthorized("unauthorized")


def require_secret(view: Callable) -> Callable:
    @wraps(view)
    def wrapper(*args, **kwargs):
        check_secret()
        return view(*args, **kwargs)

    return wrapper


__all__ = ["SECRET_HEADER", "check_secret", "generate_secret", "presented_secret", "require_secret"]
