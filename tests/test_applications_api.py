from __future__ import annotations

import pytest

from conftest import seed_account, seed_service
from portal.store import store


@pytest.fixture
def portal_people():
    seed_service(store, "svc_birth", "Birth Certificate")
    return {
        "citizen": seed_account(store, "cit_1").id,
        "other": seed_account(store, "cit_2").id,
        "staff": seed_account(store, "stf_1", role="staff").id,
        "officer": seed_account(store, "off_1", role="officer").id,
        "admin": seed_account(store, "adm_1", role="admin").id,
        "roleless": seed_account(store, "acc_norole", role=None).id,
    }


def _submit(client, actor: str, key: str, **overrides):
    payload = {
        "service_id": "svc_birth",
        "description": "Certified copy for passport",
        "documents": [{"name": "id.pdf", "url": "https://files.example/id.pdf", "size": 2048}],
    }
    payload.update(overrides)
    return client.post("/api/v1/applications", json=payload, headers={"Idempotency-Key": key}, actor=actor)


def test_citizen_submits_and_reads_own_application(client, portal_people):
    resp = _submit(client, portal_people["citizen"], "idem_submit_1")

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["application_id"].startswith("app_")
    assert data["user_id"] == "cit_1"
    assert data["status"] == "submitted"
    assert data["documents"][0]["size"] == 2048

    fetched = client.get(f"/api/v1/applications/{data['application_id']}", actor=portal_people["citizen"])
    assert fetched.status_code == 200
    history = client.get(f"/api/v1/applications/{data['application_id']}/history", actor=portal_people["citizen"])
    assert history.json()["data"] == {"items": [], "total": 0}


def test_submission_requires_idempotency_key(client, portal_people):
    resp = client.post(
        "/api/v1/applications",
        json={"service_id": "svc_birth", "description": "", "documents": []},
        actor=portal_people["citizen"],
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "IDEMPOTENCY_MISSING"


def test_submission_idempotency_replays_and_detects_changed_payload(client, portal_people):
    first = _submit(client, portal_people["citizen"], "idem_submit_2")
    second = _submit(client, portal_people["citizen"], "idem_submit_2")
    assert first.json()["data"] == second.json()["data"]
    assert len(store.applications_repository.list()) == 1

    changed = _submit(client, portal_people["citizen"], "idem_submit_2", description="different")
    assert changed.status_code == 409
    assert changed.json()["error"]["code"] == "IDEMPOTENCY_CONFLICT"


def test_submission_to_unknown_service_is_not_found(client, portal_people):
    resp = _submit(client, portal_people["citizen"], "idem_submit_3", service_id="svc_missing")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "SERVICE_NOT_FOUND"
    assert resp.json()["error"]["category"] == "not found"


def test_staff_cannot_submit(client, portal_people):
    resp = _submit(client, portal_people["staff"], "idem_submit_4")
    assert resp.status_code == 403
    assert resp.json()["error"]["details"]["reason"] == "InsufficientRole"


def test_other_citizen_cannot_read_application(client, portal_people):
    app_id = _submit(client, portal_people["citizen"], "idem_submit_5").json()["data"]["application_id"]

    resp = client.get(f"/api/v1/applications/{app_id}", actor=portal_people["other"])
    assert resp.status_code == 403
    assert resp.json()["error"]["details"]["reason"] == "NotOwner"
    assert resp.json()["error"]["category"] == "access denied"


def test_list_mine_ignores_requested_owner(client, portal_people):
    _submit(client, portal_people["citizen"], "idem_mine_1")
    _submit(client, portal_people["other"], "idem_mine_2")

    resp = client.get("/api/v1/applications/mine?user_id=cit_1", actor=portal_people["other"])
    items = resp.json()["data"]["items"]
    assert len(items) == 1
    assert {x["user_id"] for x in items} == {"cit_2"}


def test_list_all_is_staff_only_and_filters_by_status(client, portal_people):
    app_id = _submit(client, portal_people["citizen"], "idem_all_1").json()["data"]["application_id"]
    _submit(client, portal_people["other"], "idem_all_2")
    client.post(
        f"/api/v1/applications/{app_id}/transition",
        json={"expected_status": "submitted", "new_status": "in_review"},
        actor=portal_people["staff"],
    )

    denied = client.get("/api/v1/applications", actor=portal_people["citizen"])
    assert denied.status_code == 403

    everything = client.get("/api/v1/applications", actor=portal_people["staff"])
    assert everything.json()["data"]["total"] == 2
    reviewing = client.get("/api/v1/applications?status=in_review", actor=portal_people["staff"])
    assert [x["application_id"] for x in reviewing.json()["data"]["items"]] == [app_id]

    bad = client.get("/api/v1/applications?status=pending", actor=portal_people["staff"])
    assert bad.status_code == 400
    assert bad.json()["error"]["details"]["field"] == "status"


def test_transition_flow_history_and_audit_replay(client, portal_people):
    app_id = _submit(client, portal_people["citizen"], "idem_flow_1").json()["data"]["application_id"]

    reviewed = client.post(
        f"/api/v1/applications/{app_id}/transition",
        json={"expected_status": "submitted", "new_status": "in_review", "remarks": "checking documents"},
        actor=portal_people["staff"],
    )
    assert reviewed.status_code == 200
    assert reviewed.json()["data"]["status"] == "in_review"
    assert reviewed.json()["data"]["staff_remarks"] == "checking documents"

    approved = client.post(
        f"/api/v1/applications/{app_id}/transition",
        json={"expected_status": "in_review", "new_status": "approved"},
        actor=portal_people["officer"],
    )
    assert approved.json()["data"]["status"] == "approved"

    history = client.get(f"/api/v1/applications/{app_id}/history", actor=portal_people["citizen"])
    items = history.json()["data"]["items"]
    assert [(x["old_status"], x["new_status"]) for x in items] == [
        ("submitted", "in_review"),
        ("in_review", "approved"),
    ]
    assert items[1]["changed_by"]["id"] == "off_1"

    replay = client.get(f"/api/v1/applications/{app_id}/audit-replay", actor=portal_people["staff"])
    assert replay.json()["data"] == {
        "application_id": app_id,
        "current_status": "approved",
        "replayed_status": "approved",
        "event_count": 2,
        "consistent": True,
    }
    citizen_replay = client.get(f"/api/v1/applications/{app_id}/audit-replay", actor=portal_people["citizen"])
    assert citizen_replay.status_code == 403


def test_regression_transition_is_rejected_as_invalid(client, portal_people):
    app_id = _submit(client, portal_people["citizen"], "idem_flow_2").json()["data"]["application_id"]
    resp = client.post(
        f"/api/v1/applications/{app_id}/transition",
        json={"expected_status": "in_review", "new_status": "submitted"},
        actor=portal_people["staff"],
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "WF_STATE_TRANSITION_INVALID"
    assert store.status_events_repository.list_for(application_id=app_id) == []


def test_stale_expected_status_returns_retryable_conflict(client, portal_people):
    app_id = _submit(client, portal_people["citizen"], "idem_flow_3").json()["data"]["application_id"]
    resp = client.post(
        f"/api/v1/applications/{app_id}/transition",
        json={"expected_status": "in_review", "new_status": "approved"},
        actor=portal_people["staff"],
    )
    assert resp.status_code == 409
    error = resp.json()["error"]
    assert error["code"] == "WF_STATE_CONFLICT"
    assert error["retryable"] is True
    assert error["category"] == "conflicting update"


def test_unknown_status_in_transition_payload_names_the_field(client, portal_people):
    app_id = _submit(client, portal_people["citizen"], "idem_flow_4").json()["data"]["application_id"]
    resp = client.post(
        f"/api/v1/applications/{app_id}/transition",
        json={"expected_status": "submitted", "new_status": "pending_documents"},
        actor=portal_people["staff"],
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "REQ_VALIDATION_FAILED"
    assert resp.json()["error"]["details"]["field"] == "new_status"


def test_roleless_account_is_denied_with_no_role_assigned(client, portal_people):
    app_id = _submit(client, portal_people["citizen"], "idem_flow_5").json()["data"]["application_id"]
    resp = client.post(
        f"/api/v1/applications/{app_id}/transition",
        json={"expected_status": "submitted", "new_status": "approved"},
        actor=portal_people["roleless"],
    )
    assert resp.status_code == 403
    assert resp.json()["error"]["details"]["reason"] == "NoRoleAssigned"

    for path in ("/api/v1/applications/app_missing", "/api/v1/applications/app_missing/history"):
        unknown = client.get(path, actor=portal_people["roleless"])
        assert unknown.status_code == 403
        assert unknown.json()["error"]["details"]["reason"] == "NoRoleAssigned"


def test_recent_applications_are_enriched_and_scoped(client, portal_people):
    _submit(client, portal_people["citizen"], "idem_recent_1")
    _submit(client, portal_people["other"], "idem_recent_2", service_id="svc_birth")
    store.services_repository.delete(service_id="svc_birth")

    staff_view = client.get("/api/v1/applications/recent?limit=5", actor=portal_people["staff"])
    items = staff_view.json()["data"]["items"]
    assert {x["applicant_name"] for x in items} == {"User cit_1", "User cit_2"}
    assert {x["service_title"] for x in items} == {"Unknown Service"}

    citizen_view = client.get("/api/v1/applications/recent", actor=portal_people["citizen"])
    assert [x["user_id"] for x in citizen_view.json()["data"]["items"]] == ["cit_1"]

    too_many = client.get("/api/v1/applications/recent?limit=500", actor=portal_people["staff"])
    assert too_many.status_code == 400
    assert too_many.json()["error"]["details"]["field"] == "limit"


def test_stats_are_scoped_by_role(client, portal_people):
    _submit(client, portal_people["citizen"], "idem_stats_1")
    _submit(client, portal_people["other"], "idem_stats_2")

    own = client.get("/api/v1/stats?owner_id=cit_2", actor=portal_people["citizen"]).json()["data"]
    assert own["scope"] == {"kind": "owner", "owner_id": "cit_1"}
    assert own["total"] == 1

    staff_global = client.get("/api/v1/stats", actor=portal_people["staff"]).json()["data"]
    assert staff_global["total"] == 2
    assert staff_global["by_status"] == {"submitted": 2, "in_review": 0, "approved": 0, "rejected": 0}

    staff_scoped = client.get("/api/v1/stats?owner_id=cit_2", actor=portal_people["staff"]).json()["data"]
    assert staff_scoped["total"] == 1


def test_admin_overview_counts(client, portal_people):
    _submit(client, portal_people["citizen"], "idem_overview_1")

    denied = client.get("/api/v1/stats/overview", actor=portal_people["staff"])
    assert denied.status_code == 403

    overview = client.get("/api/v1/stats/overview", actor=portal_people["officer"]).json()["data"]
    assert overview["total_applications"] == 1
    assert overview["total_accounts"] == 6
    assert overview["total_services"] == 1
    assert overview["staff_members"] == 3
