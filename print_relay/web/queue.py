from __future__ import annotations

"""
Print queue endpoints.

Endpoints (all require the shared secret):
- POST  /print-queue              : Enqueue a job. 201 {id, ok}
- GET   /print-queue?longPoll=0|1 : Pending jobs, oldest first. 200 {jobs: [...]}
- PATCH /print-queue              : Acknowledge printed jobs. 200 {ok, updated}
- GET   /print-queue/<job_id>     : One job including printed_at (audit)

Optional `types=kitchen,correction` on GET restricts the kinds returned, so a
cash-register machine can poll only cash_drawer jobs.
"""

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from print_relay import csrf
from print_relay.core import print_queue
from print_relay.core.config import QueueSettings
from print_relay.core.errors import InvalidRequest, PrintRelayError

from . import schemas
from .auth import require_secret

queue_bp = Blueprint("print_queue", __name__)
# Machine-to-machine JSON API; the shared secret replaces CSRF tokens
csrf.exempt(queue_bp)

TRUTHY = ("1", "true", "yes", "on")


def _json_error(msg: str, code: int = 400):
    return jsonify({"error": msg}), code


@queue_bp.errorhandler(PrintRelayError)
def _handle_relay_error(e: PrintRelayError):
    if e.status_code >= 500:
        current_app.logger.error("%s %s failed: %s", request.method, request.path, e.message)
    return _json_error(e.message, e.status_code)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidRequest("Expected a JSON object body")
    return data


def _validation_message(e: ValidationError) -> str:
    try:
        return e.errors()[0].get("msg") or str(e)
    except Exception:
        return str(e)


@queue_bp.post("/print-queue")
@require_secret
def enqueue_job():
    try:
        req = schemas.EnqueueRequest.model_validate(_json_body())
    except ValidationError as e:
        raise InvalidRequest(_validation_message(e)) from e
    job_id = print_queue.enqueue(req.type, req.payload)
    return jsonify(schemas.EnqueueResponse(id=job_id).model_dump()), 201


@queue_bp.get("/print-queue")
@require_secret
def fetch_jobs():
    long_poll = str(request.args.get("longPoll", "0")).lower() in TRUTHY
    types_arg = request.args.get("types", "")
    types = [t for t in types_arg.split(",") if t.strip()] or None
    settings = QueueSettings.from_app_config(current_app.config)
    jobs = print_queue.fetch_pending(long_poll, settings=settings, types=types)
    if jobs:
        current_app.logger.info("GET /print-queue returned %d jobs (longPoll=%s)", len(jobs), long_poll)
    body = schemas.FetchResponse(jobs=[schemas.JobOut.model_validate(j) for j in jobs])
    return jsonify(body.model_dump())


@queue_bp.patch("/print-queue")
@require_secret
def acknowledge_jobs():
    try:
        req = schemas.AcknowledgeRequest.model_validate(_json_body())
    except ValidationError as e:
        raise InvalidRequest(_validation_message(e)) from e
    updated = print_queue.acknowledge(req.printed_ids or [])
    return jsonify(schemas.AcknowledgeResponse(updated=updated).model_dump())


@queue_bp.get("/print-queue/<job_id>")
@require_secret
def job_detail(job_id: str):
    job = print_queue.get_job(job_id)
    return jsonify(schemas.JobDetail.model_validate(job).model_dump())
