from __future__ import annotations

import pytest

from conftest import seed_account
from portal.authorization import (
    Action,
    AuthorizationService,
    DenyReason,
    PERMISSION_MATRIX,
    RoleDirectory,
    authorize,
)
from portal.domain import Actor, Role
from portal.errors import NotFound, PermissionDenied


def test_permission_matrix_staff_roles_can_transition():
    for role in (Role.STAFF, Role.OFFICER, Role.ADMIN):
        assert authorize(role, Action.TRANSITION_APPLICATION).permitted
        assert authorize(role, Action.LIST_ALL_APPLICATIONS).permitted
        assert authorize(role, Action.VIEW_ANY_APPLICATION).permitted
    decision = authorize(Role.CITIZEN, Action.TRANSITION_APPLICATION)
    assert not decision.permitted
    assert decision.reason == DenyReason.INSUFFICIENT_ROLE


def test_manage_services_is_officer_and_admin_only():
    assert PERMISSION_MATRIX[Action.MANAGE_SERVICES] == {Role.OFFICER, Role.ADMIN}
    assert not authorize(Role.STAFF, Action.MANAGE_SERVICES).permitted
    assert authorize(Role.OFFICER, Action.MANAGE_SERVICES).permitted


def test_manage_account_roles_is_admin_only():
    for role in (Role.CITIZEN, Role.STAFF, Role.OFFICER):
        assert not authorize(role, Action.MANAGE_ACCOUNT_ROLES).permitted
    assert authorize(Role.ADMIN, Action.MANAGE_ACCOUNT_ROLES).permitted


def test_view_own_requires_ownership():
    assert authorize(Role.CITIZEN, Action.VIEW_OWN_APPLICATION, actor_id="c1", resource_owner_id="c1").permitted
    decision = authorize(Role.CITIZEN, Action.VIEW_OWN_APPLICATION, actor_id="c1", resource_owner_id="c2")
    assert decision.reason == DenyReason.NOT_OWNER


def test_no_role_is_denied_for_every_action():
    for action in Action:
        decision = authorize(None, action)
        assert not decision.permitted
        assert decision.reason == DenyReason.NO_ROLE_ASSIGNED


def test_role_directory_raises_not_found_for_unknown_account(portal_store):
    directory = RoleDirectory(portal_store.accounts_repository)
    with pytest.raises(NotFound):
        directory.resolve_role("ghost")


def test_account_without_role_gets_no_role_assigned(portal_store):
    roleless = seed_account(portal_store, "acc_norole", role=None)
    service = AuthorizationService(RoleDirectory(portal_store.accounts_repository))

    with pytest.raises(PermissionDenied) as exc:
        service.require(roleless, Action.LIST_ALL_APPLICATIONS)
    assert exc.value.reason == "NoRoleAssigned"
    assert exc.value.details == {"reason": "NoRoleAssigned", "action": "list_all_applications"}


def test_unregistered_actor_is_treated_as_no_role(portal_store):
    service = AuthorizationService(RoleDirectory(portal_store.accounts_repository))
    with pytest.raises(PermissionDenied) as exc:
        service.require(Actor(id="stranger"), Action.SUBMIT_APPLICATION)
    assert exc.value.reason == "NoRoleAssigned"


def test_require_view_grants_staff_and_owner_only(portal_store):
    owner = seed_account(portal_store, "cit_owner")
    other = seed_account(portal_store, "cit_other")
    staff = seed_account(portal_store, "stf_1", role="staff")
    service = AuthorizationService(RoleDirectory(portal_store.accounts_repository))
    application = {"application_id": "app_1", "user_id": owner.id}

    assert service.require_view(owner, application) == Role.CITIZEN
    assert service.require_view(staff, application) == Role.STAFF
    with pytest.raises(PermissionDenied) as exc:
        service.require_view(other, application)
    assert exc.value.reason == "NotOwner"


def test_check_reports_decision_with_resolved_role(portal_store):
    staff = seed_account(portal_store, "stf_1", role="staff")
    roleless = seed_account(portal_store, "acc_norole", role=None)
    service = AuthorizationService(RoleDirectory(portal_store.accounts_repository))

    permitted = service.check(staff, Action.TRANSITION_APPLICATION)
    assert permitted.permitted
    assert permitted.role == Role.STAFF

    denied = service.check(roleless, Action.VIEW_ANY_APPLICATION)
    assert not denied.permitted
    assert denied.reason == DenyReason.NO_ROLE_ASSIGNED
    assert denied.role is None


@pytest.mark.parametrize("read", ["get_application", "list_status_history"])
def test_roleless_account_is_denied_before_application_lookup(portal_store, read):
    roleless = seed_account(portal_store, "acc_norole", role=None)

    with pytest.raises(PermissionDenied) as exc:
        getattr(portal_store, read)(actor=roleless, application_id="app_missing")
    assert exc.value.reason == "NoRoleAssigned"


def test_citizen_still_gets_not_found_for_missing_application(portal_store):
    citizen = seed_account(portal_store, "cit_1")
    with pytest.raises(NotFound):
        portal_store.get_application(actor=citizen, application_id="app_missing")
