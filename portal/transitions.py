"""Status Transition Engine.

A transition is authorized, checked against the caller's optimistic concurrency
token (``expected_status``) and the state machine, and then written together
with exactly one status change event in a single unit of work provided by the
applications repository. Failure paths write nothing.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol

from portal.authorization import Action, AuthorizationService
from portal.domain import (
    ApplicationStatus,
    Actor,
    INITIAL_STATUS,
    is_legal_transition,
    parse_status,
)
from portal.errors import Conflict, InvalidTransition, ValidationError

logger = logging.getLogger(__name__)


class TransitionStore(Protocol):
    def apply_transition(
        self,
        *,
        application_id: str,
        fn: Callable[[dict[str, Any]], tuple[dict[str, Any], dict[str, Any]]],
    ) -> dict[str, Any]: ...


def utcnow() -> datetime:
    return datetime.now(UTC)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def coerce_status(value: Any, *, field: str) -> ApplicationStatus:
    if value is None or not str(value).strip():
        raise ValidationError(field, f"{field} is required")
    try:
        return ApplicationStatus(str(value).strip())
    except ValueError:
        raise ValidationError(field, f"unknown status for {field}: {value}") from None


class StatusTransitionEngine:
    def __init__(
        self,
        *,
        applications_repository: TransitionStore,
        authorization: AuthorizationService,
        clock: Callable[[], datetime] = utcnow,
        event_id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._applications = applications_repository
        self._authorization = authorization
        self._clock = clock
        self._event_id_factory = event_id_factory or (lambda: f"evt_{uuid.uuid4().hex[:16]}")

    def _stamp_after(self, stored: dict[str, Any]) -> str:
        now = self._clock()
        last_raw = stored.get("updated_at")
        if last_raw:
            last = datetime.fromisoformat(str(last_raw))
            if last > now:
                now = last
        return format_timestamp(now)

    def transition(
        self,
        *,
        application_id: str,
        expected_status: ApplicationStatus | str | None,
        new_status: ApplicationStatus | str | None,
        actor: Actor,
        remarks: str | None = None,
    ) -> dict[str, Any]:
        if not str(application_id or "").strip():
            raise ValidationError("application_id", "application_id is required")
        expected = coerce_status(expected_status, field="expected_status")
        target = coerce_status(new_status, field="new_status")
        note = remarks.strip() if isinstance(remarks, str) and remarks.strip() else None

        self._authorization.require(actor, Action.TRANSITION_APPLICATION)

        # Requests that can never succeed fail before reading the stored record.
        if target == INITIAL_STATUS or not is_legal_transition(expected, target):
            logger.warning(
                "transition_rejected application_id=%s reason=invalid_transition from=%s to=%s",
                application_id,
                expected.value,
                target.value,
            )
            raise InvalidTransition(expected.value, target.value)

        def _apply(stored: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
            current = parse_status(stored.get("status"))
            if current != expected:
                logger.warning(
                    "transition_conflict application_id=%s expected=%s current=%s actor=%s",
                    application_id,
                    expected.value,
                    current.value,
                    actor.id,
                )
                raise Conflict(expected.value, current.value)

            timestamp = self._stamp_after(stored)
            updated = dict(stored)
            updated["status"] = target.value
            updated["updated_at"] = timestamp
            if note is not None:
                updated["staff_remarks"] = note
            event = {
                "event_id": self._event_id_factory(),
                "application_id": str(stored["application_id"]),
                "changed_by": actor.changed_by(),
                "old_status": current.value,
                "new_status": target.value,
                "timestamp": timestamp,
                "remarks": note,
            }
            return updated, event

        updated = self._applications.apply_transition(application_id=application_id, fn=_apply)
        logger.info(
            "application_transitioned application_id=%s from=%s to=%s actor=%s",
            application_id,
            expected.value,
            target.value,
            actor.id,
        )
        return updated
