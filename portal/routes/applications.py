from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse

from portal.domain import Actor
from portal.routes._deps import current_actor, require_idempotency_key, trace_id_from_request
from portal.schemas import ApplicationSubmitRequest, TransitionRequest, success_envelope
from portal.store import store

router = APIRouter(prefix="/api/v1", tags=["applications"])


@router.post("/applications")
def submit_application(
    payload: ApplicationSubmitRequest,
    request: Request,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    actor: Actor = Depends(current_actor),
):
    key = require_idempotency_key(idempotency_key)
    req_payload = payload.model_dump(mode="json")
    data = store.run_idempotent(
        endpoint="POST:/api/v1/applications",
        actor_id=actor.id,
        idempotency_key=key,
        payload=req_payload,
        execute=lambda: store.submit_application(
            actor=actor,
            service_id=req_payload["service_id"],
            description=req_payload["description"],
            documents=req_payload["documents"],
        ),
    )
    return JSONResponse(status_code=201, content=success_envelope(data, trace_id_from_request(request)))


@router.get("/applications")
def list_all_applications(
    request: Request,
    status: str | None = Query(default=None),
    service_id: str | None = Query(default=None),
    user_id: str | None = Query(default=None),
    actor: Actor = Depends(current_actor),
):
    items = store.list_all_applications(actor=actor, status=status, service_id=service_id, user_id=user_id)
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.get("/applications/mine")
def list_my_applications(request: Request, actor: Actor = Depends(current_actor)):
    items = store.list_applications_for_owner(actor=actor)
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.get("/applications/recent")
def list_recent_applications(
    request: Request,
    limit: int = Query(default=5),
    actor: Actor = Depends(current_actor),
):
    items = store.list_recent_applications(actor=actor, limit=limit)
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.get("/applications/{application_id}")
def get_application(application_id: str, request: Request, actor: Actor = Depends(current_actor)):
    application = store.get_application(actor=actor, application_id=application_id)
    return success_envelope(application, trace_id_from_request(request))


@router.post("/applications/{application_id}/transition")
def transition_application(
    application_id: str,
    payload: TransitionRequest,
    request: Request,
    actor: Actor = Depends(current_actor),
):
    application = store.transition_application(
        actor=actor,
        application_id=application_id,
        expected_status=payload.expected_status,
        new_status=payload.new_status,
        remarks=payload.remarks,
    )
    return success_envelope(application, trace_id_from_request(request))


@router.get("/applications/{application_id}/history")
def list_status_history(application_id: str, request: Request, actor: Actor = Depends(current_actor)):
    items = store.list_status_history(actor=actor, application_id=application_id)
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.get("/applications/{application_id}/audit-replay")
def verify_audit_replay(application_id: str, request: Request, actor: Actor = Depends(current_actor)):
    data = store.verify_audit_replay(actor=actor, application_id=application_id)
    return success_envelope(data, trace_id_from_request(request))
