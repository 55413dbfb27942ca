from __future__ import annotations

import logging
import os
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from portal.errors import ApiError, NotFound, ValidationError
from portal.logging_config import configure_logging, trace_id_var
from portal.routes import accounts, applications, services, stats
from portal.routes._deps import error_response, log_security_event, request_id_from_request, trace_id_from_request
from portal.schemas import success_envelope
from portal.security import JwtSecurityConfig, resolve_actor

logger = logging.getLogger(__name__)

_LOCATION_PREFIXES = {"body", "query", "path", "header", "cookie"}


def _field_from_validation_error(exc: RequestValidationError) -> str:
    for err in exc.errors():
        loc = [str(x) for x in err.get("loc", ()) if str(x) not in _LOCATION_PREFIXES]
        if loc:
            return ".".join(loc)
    return "payload"


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Citizen Service Portal API", version="0.1.0")
    security_cfg = JwtSecurityConfig.from_env()
    app.state.security_cfg = security_cfg
    cors_origins = os.environ.get("CORS_ALLOW_ORIGINS", "http://127.0.0.1:5173,http://localhost:5173")
    allow_origins = [x.strip() for x in cors_origins.split(",") if x.strip()]
    if allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def add_trace_id(request: Request, call_next):
        incoming_trace_id = request.headers.get("x-trace-id", "").strip()
        request.state.trace_id = incoming_trace_id or uuid.uuid4().hex
        request.state.request_id = request.headers.get("x-request-id", f"req_{uuid.uuid4().hex[:12]}")
        token = trace_id_var.set(request.state.trace_id)
        try:
            path = request.url.path
            if security_cfg.enabled and path.startswith("/api/v1/") and path != "/api/v1/health":
                request.state.actor = resolve_actor(headers=request.headers, cfg=security_cfg)
            response = await call_next(request)
            response.headers["x-trace-id"] = trace_id_from_request(request)
            response.headers["x-request-id"] = request_id_from_request(request)
            return response
        except ApiError as exc:
            log_security_event(request=request, code=exc.code, detail=exc.message)
            return error_response(request, exc)
        finally:
            trace_id_var.reset(token)

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        if exc.http_status in {401, 403}:
            log_security_event(request=request, code=exc.code, detail=exc.message)
        return error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return error_response(request, ValidationError(_field_from_validation_error(exc), "invalid payload"))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error_response(request, NotFound("route", request.url.path))
        return error_response(
            request,
            ApiError(
                code="REQ_HTTP_ERROR",
                message=str(exc.detail),
                error_class="validation",
                retryable=False,
                http_status=exc.status_code,
            ),
        )

    @app.get("/healthz")
    def healthz(request: Request) -> dict[str, object]:
        return success_envelope({"status": "ok"}, trace_id_from_request(request))

    @app.get("/api/v1/health")
    def health_api(request: Request) -> dict[str, object]:
        return success_envelope({"status": "ok"}, trace_id_from_request(request))

    app.include_router(accounts.router)
    app.include_router(services.router)
    app.include_router(applications.router)
    app.include_router(stats.router)
    return app


app = create_app()
