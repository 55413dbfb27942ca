from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from portal.domain import Actor
from portal.routes._deps import current_actor, trace_id_from_request
from portal.schemas import success_envelope
from portal.store import store

router = APIRouter(prefix="/api/v1", tags=["stats"])


@router.get("/stats")
def aggregate_stats(
    request: Request,
    owner_id: str | None = Query(default=None),
    actor: Actor = Depends(current_actor),
):
    data = store.aggregate_stats(actor=actor, owner_id=owner_id)
    return success_envelope(data, trace_id_from_request(request))


@router.get("/stats/overview")
def admin_overview(request: Request, actor: Actor = Depends(current_actor)):
    data = store.admin_overview(actor=actor)
    return success_envelope(data, trace_id_from_request(request))
