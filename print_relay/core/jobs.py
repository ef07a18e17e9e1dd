"""
Print job kinds and their typed payloads.

The queue stores payloads as JSON; each job type maps to one pydantic model
so producers are validated at enqueue time and the dispatcher gets a typed
object back instead of a loose dict.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidRequest


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except Exception:
        return default


MAX_ITEMS = _env_int("PRINTRELAY_MAX_ITEMS", 100)
MAX_TEXT_LEN = _env_int("PRINTRELAY_MAX_TEXT_LEN", 200)

JOB_TYPES = ("kitchen", "correction", "cash_drawer")
JobType = Literal["kitchen", "correction", "cash_drawer"]

# Types that cannot be enqueued without a payload
PAYLOAD_REQUIRED = frozenset({"kitchen", "correction"})


def _has_control_chars(s: str) -> bool:
    return any((ord(c) < 32 and c not in "\n\r\t") or ord(c) == 127 for c in s)


def _clean_text(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = str(v).strip()
    if len(v) > MAX_TEXT_LEN:
        raise ValueError(f"text too long (max {MAX_TEXT_LEN})")
    # ESC/GS bytes in ticket text would be interpreted by the printer
    if _has_control_chars(v):
        raise ValueError("control characters not allowed")
    return v


class OrderLine(BaseModel):
    """One line of a comanda: quantity, dish name, and cook notes."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1, le=999)
    notes: Optional[str] = None
    previous_quantity: Optional[int] = Field(default=None, ge=0, le=999)

    @field_validator("name", "notes", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return _clean_text(v)


class TicketHeader(BaseModel):
    model_config = ConfigDict(extra="ignore")

    waiter: Optional[str] = None
    table: Optional[str] = None
    area: Optional[str] = None
    time: Optional[str] = None
    items: List[OrderLine] = Field(default_factory=list)

    @field_validator("waiter", "table", "area", "time", mode="before")
    @classmethod
    def _header_text(cls, v: Any) -> Optional[str]:
        # Tables are often numbers on the producer side
        return _clean_text(v)

    @field_validator("items")
    @classmethod
    def _items_cap(cls, v: List[OrderLine]) -> List[OrderLine]:
        if len(v) > MAX_ITEMS:
            raise ValueError(f"too many items (max {MAX_ITEMS})")
        return v


class KitchenTicket(TicketHeader):
    """Comanda sent to the kitchen printer when an order is placed."""


class CorrectionSlip(TicketHeader):
    """Slip printed when lines are added, removed or changed after sending."""

    kind: Literal["add", "remove", "quantity", "modify"] = "modify"

    @field_validator("kind", mode="before")
    @classmethod
    def _kind_norm(cls, v: Any) -> str:
        return str(v or "modify").strip().lower()


class DrawerPulse(BaseModel):
    """Cash drawer jobs carry no data."""

    model_config = ConfigDict(extra="ignore")


JobPayload = Union[KitchenTicket, CorrectionSlip, DrawerPulse]

PAYLOAD_MODELS: Dict[str, type] = {
    "kitchen": KitchenTicket,
    "correction": CorrectionSlip,
    "cash_drawer": DrawerPulse,
}


def _first_error(e: ValidationError) -> str:
    try:
        err = e.errors()[0]
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = err.get("msg") or str(e)
        return f"{loc}: {msg}" if loc else msg
    except Exception:
        return str(e)


def validate_job(kind: Any, payload: Any) -> Dict[str, Any]:
    """
    Validate a job submission and return the normalized payload dict to store.

    Raises InvalidRequest when the type is missing/unknown, a required payload
    is absent, or the payload does not match the type's model.
    """
    if not isinstance(kind, str) or kind not in JOB_TYPES:
        raise InvalidRequest(f"type is required ({'|'.join(JOB_TYPES)})")
    if payload is None:
        if kind in PAYLOAD_REQUIRED:
            raise InvalidRequest(f"payload is required for {kind} jobs")
        payload = {}
    if not isinstance(payload, Mapping):
        raise InvalidRequest("payload must be a JSON object")
    try:
        model = PAYLOAD_MODELS[kind].model_validate(dict(payload))
    except ValidationError as e:
        raise InvalidRequest(f"invalid {kind} payload: {_first_error(e)}") from e
    return model.model_dump(exclude_none=True)


def parse_payload(kind: str, payload: Optional[Mapping[str, Any]]) -> JobPayload:
    """
    Parse a stored payload back into its typed model (dispatcher side).

    Raises InvalidRequest for unknown job types or payloads that no longer validate.
    """
    model_cls = PAYLOAD_MODELS.get(kind)
    if model_cls is None:
        raise InvalidRequest(f"unknown job type: {kind!r}")
    try:
        return model_cls.model_validate(dict(payload or {}))
    except ValidationError as e:
        raise InvalidRequest(f"invalid {kind} payload: {_first_error(e)}") from e


@dataclass
class PrintJob:
    id: str
    type: str
    payload: Dict[str, Any]
    created_at: str
    printed_at: Optional[str] = None

    @property
    def pending(self) -> bool:
        return self.printed_at is None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PrintJob":
        return cls(
            id=str(data["id"]),
            type=str(data.get("type", "")),
            payload=dict(data.get("payload") or {}),
            created_at=str(data.get("created_at", "")),
            printed_at=data.get("printed_at"),
        )

    def typed_payload(self) -> JobPayload:
        return parse_payload(self.type, self.payload)


__all__ = [
    "CorrectionSlip",
    "DrawerPulse",
    "JOB_TYPES",
    "JobPayload",
    "JobType",
    "KitchenTicket",
    "MAX_ITEMS",
    "MAX_TEXT_LEN",
    "OrderLine",
    "PAYLOAD_MODELS",
    "PAYLOAD_REQUIRED",
    "PrintJob",
    "TicketHeader",
    "parse_payload",
    "validate_job",
]
