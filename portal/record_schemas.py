from __future__ import annotations

from typing import Any

from jsonschema import Draft202012Validator

from portal.domain import ApplicationStatus, Role
from portal.errors import ValidationError, invalid_record

_ROLE_VALUES = [role.value for role in Role]
_STATUS_VALUES = [status.value for status in ApplicationStatus]
_NULLABLE_STRING = {"type": ["string", "null"]}

RECORD_SCHEMAS: dict[str, dict[str, Any]] = {
    "account": {
        "type": "object",
        "required": ["account_id", "name", "email", "created_at", "updated_at"],
        "properties": {
            "account_id": {"type": "string", "minLength": 1},
            "name": {"type": "string"},
            "email": {"type": "string"},
            "phone": _NULLABLE_STRING,
            # Accounts without a role are representable so they can be denied.
            "role": {"enum": [*_ROLE_VALUES, None, ""]},
            "created_at": {"type": "string"},
            "updated_at": {"type": "string"},
        },
    },
    "service": {
        "type": "object",
        "required": [
            "service_id",
            "title",
            "description",
            "requirements",
            "processing_time",
            "fee",
            "created_at",
            "updated_at",
        ],
        "properties": {
            "service_id": {"type": "string", "minLength": 1},
            "title": {"type": "string", "minLength": 1},
            "description": {"type": "string"},
            "requirements": {"type": "string"},
            "processing_time": {"type": "string"},
            "fee": {"type": "string", "pattern": r"^\d+(\.\d+)?$"},
            "created_by": _NULLABLE_STRING,
            "created_at": {"type": "string"},
            "updated_at": {"type": "string"},
        },
    },
    "application": {
        "type": "object",
        "required": [
            "application_id",
            "user_id",
            "service_id",
            "status",
            "description",
            "documents",
            "submitted_at",
            "updated_at",
        ],
        "properties": {
            "application_id": {"type": "string", "minLength": 1},
            "user_id": {"type": "string", "minLength": 1},
            "service_id": {"type": "string", "minLength": 1},
            "status": {"enum": _STATUS_VALUES},
            "description": {"type": "string"},
            "documents": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["name", "url", "size"],
                    "properties": {
                        "name": {"type": "string"},
                        "url": {"type": "string"},
                        "size": {"type": "integer", "minimum": 0},
                    },
                },
            },
            "staff_remarks": _NULLABLE_STRING,
            "submitted_at": {"type": "string"},
            "updated_at": {"type": "string"},
        },
    },
    "status_change_event": {
        "type": "object",
        "required": [
            "event_id",
            "application_id",
            "changed_by",
            "old_status",
            "new_status",
            "timestamp",
        ],
        "properties": {
            "event_id": {"type": "string", "minLength": 1},
            "application_id": {"type": "string", "minLength": 1},
            "changed_by": {
                "type": "object",
                "required": ["id", "name"],
                "properties": {"id": {"type": "string"}, "name": {"type": "string"}},
            },
            "old_status": {"enum": _STATUS_VALUES},
            "new_status": {"enum": _STATUS_VALUES},
            "timestamp": {"type": "string"},
            "remarks": _NULLABLE_STRING,
        },
    },
}

_VALIDATORS = {kind: Draft202012Validator(schema) for kind, schema in RECORD_SCHEMAS.items()}


def _first_error(kind: str, record: dict[str, Any]) -> tuple[str, str] | None:
    validator = _VALIDATORS.get(kind)
    if validator is None:
        raise KeyError(f"unknown record kind: {kind}")
    errors = sorted(validator.iter_errors(record), key=lambda err: [str(x) for x in err.path])
    if not errors:
        return None
    err = errors[0]
    field = ".".join(str(x) for x in err.path)
    if not field and err.validator == "required":
        field = str(err.message).split("'")[1] if "'" in err.message else kind
    return field or kind, err.message


def ensure_valid_record(kind: str, record: dict[str, Any]) -> dict[str, Any]:
    """Validate a record before it is written."""
    failure = _first_error(kind, record)
    if failure is not None:
        field, message = failure
        raise ValidationError(field, f"invalid {kind} record: {message}")
    return record


def ensure_loaded_record(kind: str, record: dict[str, Any]) -> dict[str, Any]:
    """Validate a record read back from storage; unknown values are a storage fault."""
    failure = _first_error(kind, record)
    if failure is not None:
        field, message = failure
        raise invalid_record(kind, f"{field}: {message}")
    return record
