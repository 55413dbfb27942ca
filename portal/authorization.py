"""Role directory and role/action authorization.

``authorize`` is pure: given an already resolved role it decides permit/deny
without touching storage. ``AuthorizationService`` adds the single role lookup
through ``RoleDirectory``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from portal.domain import Actor, Role, parse_role
from portal.errors import NotFound, PermissionDenied

logger = logging.getLogger(__name__)


class Action(StrEnum):
    VIEW_OWN_APPLICATION = "view_own_application"
    VIEW_ANY_APPLICATION = "view_any_application"
    LIST_ALL_APPLICATIONS = "list_all_applications"
    TRANSITION_APPLICATION = "transition_application"
    SUBMIT_APPLICATION = "submit_application"
    MANAGE_SERVICES = "manage_services"
    MANAGE_ACCOUNT_ROLES = "manage_account_roles"
    VIEW_ADMIN_OVERVIEW = "view_admin_overview"


class DenyReason(StrEnum):
    NO_ROLE_ASSIGNED = "NoRoleAssigned"
    INSUFFICIENT_ROLE = "InsufficientRole"
    NOT_OWNER = "NotOwner"


PERMISSION_MATRIX: dict[Action, frozenset[Role]] = {
    Action.VIEW_OWN_APPLICATION: frozenset({Role.CITIZEN}),
    Action.VIEW_ANY_APPLICATION: frozenset({Role.STAFF, Role.OFFICER, Role.ADMIN}),
    Action.LIST_ALL_APPLICATIONS: frozenset({Role.STAFF, Role.OFFICER, Role.ADMIN}),
    Action.TRANSITION_APPLICATION: frozenset({Role.STAFF, Role.OFFICER, Role.ADMIN}),
    Action.SUBMIT_APPLICATION: frozenset({Role.CITIZEN}),
    Action.MANAGE_SERVICES: frozenset({Role.OFFICER, Role.ADMIN}),
    Action.MANAGE_ACCOUNT_ROLES: frozenset({Role.ADMIN}),
    Action.VIEW_ADMIN_OVERVIEW: frozenset({Role.OFFICER, Role.ADMIN}),
}

# Actions whose permission additionally depends on owning the resource.
_OWNER_SCOPED_ACTIONS: frozenset[Action] = frozenset({Action.VIEW_OWN_APPLICATION})


@dataclass(frozen=True)
class Decision:
    permitted: bool
    reason: DenyReason | None = None
    role: Role | None = None

    @classmethod
    def permit(cls, role: Role) -> "Decision":
        return cls(permitted=True, role=role)

    @classmethod
    def deny(cls, reason: DenyReason) -> "Decision":
        return cls(permitted=False, reason=reason)


def authorize(
    role: Role | None,
    action: Action,
    *,
    actor_id: str | None = None,
    resource_owner_id: str | None = None,
) -> Decision:
    if role is None:
        return Decision.deny(DenyReason.NO_ROLE_ASSIGNED)
    if role not in PERMISSION_MATRIX.get(action, frozenset()):
        return Decision.deny(DenyReason.INSUFFICIENT_ROLE)
    if action in _OWNER_SCOPED_ACTIONS:
        if not actor_id or resource_owner_id != actor_id:
            return Decision.deny(DenyReason.NOT_OWNER)
    return Decision.permit(role)


class AccountLookup(Protocol):
    def get(self, *, account_id: str) -> dict[str, Any] | None: ...


class RoleDirectory:
    def __init__(self, accounts_repository: AccountLookup) -> None:
        self._accounts = accounts_repository

    def resolve_role(self, account_id: str) -> Role | None:
        account = self._accounts.get(account_id=account_id)
        if account is None:
            raise NotFound("account", account_id)
        return parse_role(account.get("role"))


class AuthorizationService:
    def __init__(self, role_directory: RoleDirectory) -> None:
        self._directory = role_directory

    def role_for(self, actor: Actor) -> Role | None:
        try:
            return self._directory.resolve_role(actor.id)
        except NotFound:
            # Unregistered identities carry no role.
            return None

    def check(self, actor: Actor, action: Action, *, resource_owner_id: str | None = None) -> Decision:
        return authorize(
            self.role_for(actor),
            action,
            actor_id=actor.id,
            resource_owner_id=resource_owner_id,
        )

    def require(self, actor: Actor, action: Action, *, resource_owner_id: str | None = None) -> Role:
        decision = self.check(actor, action, resource_owner_id=resource_owner_id)
        if not decision.permitted or decision.role is None:
            logger.warning(
                "authorization_denied actor=%s action=%s reason=%s",
                actor.id,
                action.value,
                decision.reason,
            )
            raise PermissionDenied(str(decision.reason), action=action.value)
        return decision.role

    def require_view(self, actor: Actor, application: dict[str, Any]) -> Role:
        any_view = self.check(actor, Action.VIEW_ANY_APPLICATION)
        if any_view.permitted and any_view.role is not None:
            return any_view.role
        return self.require(
            actor,
            Action.VIEW_OWN_APPLICATION,
            resource_owner_id=str(application.get("user_id") or ""),
        )
