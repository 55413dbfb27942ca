from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from portal.domain import ApplicationStatus, Role


class AccountRegisterRequest(BaseModel):
    name: str = Field(default="", max_length=200)
    phone: str | None = Field(default=None, max_length=40)


class AccountUpdateRequest(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    phone: str | None = Field(default=None, max_length=40)


class RoleAssignRequest(BaseModel):
    role: Role


class ServiceCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    requirements: str = ""
    processing_time: str = ""
    fee: Decimal = Field(default=Decimal("0"), ge=0)


class ServiceUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    requirements: str | None = None
    processing_time: str | None = None
    fee: Decimal | None = Field(default=None, ge=0)


class DocumentRef(BaseModel):
    name: str
    url: str
    size: int = Field(ge=0)


class ApplicationSubmitRequest(BaseModel):
    service_id: str = Field(min_length=1)
    description: str = ""
    documents: list[DocumentRef] = Field(default_factory=list)


class TransitionRequest(BaseModel):
    expected_status: ApplicationStatus
    new_status: ApplicationStatus
    remarks: str | None = Field(default=None, max_length=2000)


def success_envelope(data: Any, trace_id: str, message: str = "ok") -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "message": message,
        "meta": {
            "trace_id": trace_id,
        },
    }


def error_envelope(
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    trace_id: str,
    category: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "retryable": retryable,
        "class": error_class,
        "category": category,
    }
    if details is not None:
        error["details"] = details
    return {
        "success": False,
        "error": error,
        "meta": {
            "trace_id": trace_id,
        },
    }
