from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from portal.domain import Actor
from portal.routes._deps import current_actor, trace_id_from_request
from portal.schemas import ServiceCreateRequest, ServiceUpdateRequest, success_envelope
from portal.store import store

router = APIRouter(prefix="/api/v1", tags=["services"])


@router.get("/services")
def list_services(request: Request, actor: Actor = Depends(current_actor)):
    items = store.list_services(actor=actor)
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.post("/services")
def create_service(
    payload: ServiceCreateRequest,
    request: Request,
    actor: Actor = Depends(current_actor),
):
    service = store.create_service(actor=actor, payload=payload.model_dump(mode="json"))
    return JSONResponse(status_code=201, content=success_envelope(service, trace_id_from_request(request)))


@router.get("/services/{service_id}")
def get_service(service_id: str, request: Request, actor: Actor = Depends(current_actor)):
    service = store.get_service(actor=actor, service_id=service_id)
    return success_envelope(service, trace_id_from_request(request))


@router.put("/services/{service_id}")
def update_service(
    service_id: str,
    payload: ServiceUpdateRequest,
    request: Request,
    actor: Actor = Depends(current_actor),
):
    service = store.update_service(
        actor=actor,
        service_id=service_id,
        payload=payload.model_dump(mode="json", exclude_unset=True),
    )
    return success_envelope(service, trace_id_from_request(request))


@router.delete("/services/{service_id}")
def delete_service(service_id: str, request: Request, actor: Actor = Depends(current_actor)):
    data = store.delete_service(actor=actor, service_id=service_id)
    return success_envelope(data, trace_id_from_request(request))
