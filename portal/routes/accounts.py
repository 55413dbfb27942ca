from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from portal.domain import Actor
from portal.routes._deps import current_actor, trace_id_from_request
from portal.schemas import AccountRegisterRequest, AccountUpdateRequest, RoleAssignRequest, success_envelope
from portal.store import store

router = APIRouter(prefix="/api/v1", tags=["accounts"])


@router.post("/accounts")
def register_account(
    payload: AccountRegisterRequest,
    request: Request,
    actor: Actor = Depends(current_actor),
):
    account = store.register_account(actor=actor, name=payload.name, phone=payload.phone)
    return JSONResponse(status_code=201, content=success_envelope(account, trace_id_from_request(request)))


@router.get("/accounts/me")
def get_my_account(request: Request, actor: Actor = Depends(current_actor)):
    account = store.get_account(actor=actor, account_id=actor.id)
    return success_envelope(account, trace_id_from_request(request))


@router.patch("/accounts/me")
def update_my_account(
    payload: AccountUpdateRequest,
    request: Request,
    actor: Actor = Depends(current_actor),
):
    account = store.update_profile(actor=actor, name=payload.name, phone=payload.phone)
    return success_envelope(account, trace_id_from_request(request))


@router.get("/accounts")
def list_accounts(
    request: Request,
    role: str | None = Query(default=None),
    actor: Actor = Depends(current_actor),
):
    items = store.list_accounts(actor=actor, role=role)
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.get("/accounts/{account_id}")
def get_account(account_id: str, request: Request, actor: Actor = Depends(current_actor)):
    account = store.get_account(actor=actor, account_id=account_id)
    return success_envelope(account, trace_id_from_request(request))


@router.put("/accounts/{account_id}/role")
def assign_role(
    account_id: str,
    payload: RoleAssignRequest,
    request: Request,
    actor: Actor = Depends(current_actor),
):
    account = store.assign_role(actor=actor, account_id=account_id, role=payload.role)
    return success_envelope(account, trace_id_from_request(request))
