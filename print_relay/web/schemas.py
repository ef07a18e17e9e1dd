from __future__ import annotations

"""
Pydantic schemas for the /print-queue API.

Request models only check the envelope; payload validation per job type
lives in print_relay.core.jobs so the CLI and tests share it.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EnqueueRequest(BaseModel):
    """Body of POST /print-queue."""

    type: Optional[str] = Field(
        default=None,
        description="Job kind: kitchen, correction or cash_drawer",
        examples=["kitchen", "correction", "cash_drawer"],
    )
    payload: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Ticket data; required for kitchen and correction, ignored for cash_drawer",
    )


class AcknowledgeRequest(BaseModel):
    """Body of PATCH /print-queue."""

    model_config = ConfigDict(populate_by_name=True)

    printed_ids: Optional[List[str]] = Field(
        default=None,
        alias="printedIds",
        description="Ids of jobs the worker sent to the printer in this cycle",
    )


class EnqueueResponse(BaseModel):
    id: str
    ok: bool = True


class JobOut(BaseModel):
    id: str
    type: str
    payload: Dict[str, Any]
    created_at: str


class JobDetail(JobOut):
    printed_at: Optional[str] = None


class FetchResponse(BaseModel):
    jobs: List[JobOut]


class AcknowledgeResponse(BaseModel):
    ok: bool = True
    updated: int


__all__ = [
    "AcknowledgeRequest",
    "AcknowledgeResponse",
    "EnqueueRequest",
    "EnqueueResponse",
    "FetchResponse",
    "JobDetail",
    "JobOut",
]
