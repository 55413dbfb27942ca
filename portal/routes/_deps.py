from __future__ import annotations

import logging
import uuid

from fastapi import Request
from fastapi.responses import JSONResponse

from portal.domain import Actor
from portal.errors import ApiError
from portal.schemas import error_envelope
from portal.security import redact_sensitive, resolve_actor

logger = logging.getLogger(__name__)


def trace_id_from_request(request: Request) -> str:
    trace_id = getattr(request.state, "trace_id", None)
    if trace_id:
        return trace_id
    return uuid.uuid4().hex


def request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return request_id
    return f"req_{uuid.uuid4().hex[:12]}"


def current_actor(request: Request) -> Actor:
    actor = getattr(request.state, "actor", None)
    if isinstance(actor, Actor):
        return actor
    actor = resolve_actor(headers=request.headers, cfg=request.app.state.security_cfg)
    request.state.actor = actor
    return actor


def error_response(request: Request, exc: ApiError) -> JSONResponse:
    response = JSONResponse(
        status_code=exc.http_status,
        content=error_envelope(
            code=exc.code,
            message=exc.message,
            error_class=exc.error_class,
            retryable=exc.retryable,
            trace_id=trace_id_from_request(request),
            category=exc.category,
            details=exc.details,
        ),
    )
    response.headers["x-trace-id"] = trace_id_from_request(request)
    response.headers["x-request-id"] = request_id_from_request(request)
    return response


def log_security_event(*, request: Request, code: str, detail: str) -> None:
    security_cfg = request.app.state.security_cfg
    headers_obj = dict(request.headers.items())
    headers_payload = redact_sensitive(headers_obj) if security_cfg.log_redaction_enabled else headers_obj
    logger.warning(
        "security_blocked code=%s path=%s detail=%s headers=%s",
        code,
        request.url.path,
        detail,
        headers_payload,
    )


def require_idempotency_key(idempotency_key: str | None) -> str:
    if not idempotency_key or not idempotency_key.strip():
        raise ApiError(
            code="IDEMPOTENCY_MISSING",
            message="Idempotency-Key header is required",
            error_class="validation",
            retryable=False,
            http_status=400,
        )
    return idempotency_key.strip()
