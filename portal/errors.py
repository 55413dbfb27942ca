from __future__ import annotations

from typing import Any


class ApiError(Exception):
    category = "invalid input"

    def __init__(
        self,
        *,
        code: str,
        message: str,
        error_class: str,
        retryable: bool,
        http_status: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_class = error_class
        self.retryable = retryable
        self.http_status = http_status
        self.details = details


class Unauthenticated(ApiError):
    category = "authentication required"

    def __init__(self, message: str = "authentication required") -> None:
        super().__init__(
            code="AUTH_UNAUTHENTICATED",
            message=message,
            error_class="security_sensitive",
            retryable=False,
            http_status=401,
        )


class PermissionDenied(ApiError):
    category = "access denied"

    def __init__(self, reason: str, *, action: str | None = None) -> None:
        details: dict[str, Any] = {"reason": str(reason)}
        if action is not None:
            details["action"] = str(action)
        super().__init__(
            code="AUTH_FORBIDDEN",
            message=f"access denied: {reason}",
            error_class="security_sensitive",
            retryable=False,
            http_status=403,
            details=details,
        )
        self.reason = str(reason)


class NotFound(ApiError):
    category = "not found"

    def __init__(self, resource: str, resource_id: str = "") -> None:
        super().__init__(
            code=f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            error_class="validation",
            retryable=False,
            http_status=404,
            details={"resource": resource, "id": resource_id} if resource_id else {"resource": resource},
        )
        self.resource = resource


class ValidationError(ApiError):
    category = "invalid input"

    def __init__(self, field: str, message: str | None = None) -> None:
        super().__init__(
            code="REQ_VALIDATION_FAILED",
            message=message or f"invalid value for field: {field}",
            error_class="validation",
            retryable=False,
            http_status=400,
            details={"field": field},
        )
        self.field = field


class InvalidTransition(ApiError):
    category = "invalid input"

    def __init__(self, old_status: str, new_status: str) -> None:
        super().__init__(
            code="WF_STATE_TRANSITION_INVALID",
            message=f"invalid transition: {old_status} -> {new_status}",
            error_class="business_rule",
            retryable=False,
            http_status=409,
            details={"old_status": str(old_status), "new_status": str(new_status)},
        )


class Conflict(ApiError):
    category = "conflicting update"

    def __init__(self, expected_status: str, current_status: str) -> None:
        super().__init__(
            code="WF_STATE_CONFLICT",
            message="application was updated by another actor; re-read before retrying",
            error_class="concurrency",
            retryable=True,
            http_status=409,
            details={"expected_status": str(expected_status), "current_status": str(current_status)},
        )


class StorageError(ApiError):
    category = "transient failure"

    def __init__(
        self,
        message: str = "storage backend unavailable",
        *,
        code: str = "STORE_UNAVAILABLE",
        retryable: bool = True,
        http_status: int = 503,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            error_class="transient",
            retryable=retryable,
            http_status=http_status,
        )


def invalid_record(kind: str, detail: str) -> StorageError:
    return StorageError(
        f"stored {kind} record is invalid: {detail}",
        code="STORE_RECORD_INVALID",
        retryable=False,
        http_status=500,
    )
