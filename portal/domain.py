"""Roles, application statuses and the application state machine.

State machine::

    submitted
        ├──> in_review
        ├──> approved (terminal)
        └──> rejected (terminal)

    in_review
        ├──> approved (terminal)
        └──> rejected (terminal)

No transition leaves a terminal status and nothing ever returns to ``submitted``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from portal.errors import invalid_record


class Role(StrEnum):
    CITIZEN = "citizen"
    STAFF = "staff"
    OFFICER = "officer"
    ADMIN = "admin"


class ApplicationStatus(StrEnum):
    SUBMITTED = "submitted"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"


INITIAL_STATUS = ApplicationStatus.SUBMITTED

TERMINAL_STATUSES: frozenset[ApplicationStatus] = frozenset(
    {ApplicationStatus.APPROVED, ApplicationStatus.REJECTED}
)

ALLOWED_TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    ApplicationStatus.SUBMITTED: frozenset(
        {ApplicationStatus.IN_REVIEW, ApplicationStatus.APPROVED, ApplicationStatus.REJECTED}
    ),
    ApplicationStatus.IN_REVIEW: frozenset({ApplicationStatus.APPROVED, ApplicationStatus.REJECTED}),
    ApplicationStatus.APPROVED: frozenset(),
    ApplicationStatus.REJECTED: frozenset(),
}

STAFF_ROLES: frozenset[Role] = frozenset({Role.STAFF, Role.OFFICER, Role.ADMIN})


@dataclass(frozen=True)
class Actor:
    """Identity performing an operation, as resolved by the identity provider."""

    id: str
    display_name: str = ""
    email: str = ""

    def changed_by(self) -> dict[str, str]:
        return {"id": self.id, "name": self.display_name or self.id}


def is_legal_transition(old_status: ApplicationStatus, new_status: ApplicationStatus) -> bool:
    return new_status in ALLOWED_TRANSITIONS.get(old_status, frozenset())


def parse_role(value: Any) -> Role | None:
    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None
    try:
        return Role(raw)
    except ValueError:
        raise invalid_record("account", f"unknown role {raw!r}") from None


def parse_status(value: Any) -> ApplicationStatus:
    try:
        return ApplicationStatus(str(value))
    except ValueError:
        raise invalid_record("application", f"unknown status {value!r}") from None


def replay_status(events: Iterable[Mapping[str, Any]]) -> ApplicationStatus:
    """Fold status change events (already ordered by timestamp) into a status.

    Raises ValueError when an event's ``old_status`` does not continue the chain.
    """
    status = INITIAL_STATUS
    for index, event in enumerate(events):
        old_status = parse_status(event.get("old_status"))
        if old_status != status:
            raise ValueError(
                f"event {index} breaks the chain: expected old_status={status} got {old_status}"
            )
        status = parse_status(event.get("new_status"))
    return status
