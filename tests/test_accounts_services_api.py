from __future__ import annotations

from conftest import seed_account
from portal.store import store


def test_register_account_creates_citizen_from_token_identity(client):
    resp = client.post("/api/v1/accounts", json={"name": "Amina Okafor", "phone": "+1 555 0100"}, actor="cit_new")

    assert resp.status_code == 201
    account = resp.json()["data"]
    assert account["account_id"] == "cit_new"
    assert account["email"] == "cit_new@example.org"
    assert account["role"] == "citizen"

    again = client.post("/api/v1/accounts", json={"name": "Amina"}, actor="cit_new")
    assert again.status_code == 400
    assert again.json()["error"]["details"]["field"] == "account_id"


def test_register_falls_back_to_token_name(client):
    resp = client.post("/api/v1/accounts", json={}, actor="cit_anon")
    assert resp.json()["data"]["name"] == "User cit_anon"


def test_profile_read_and_update(client):
    client.post("/api/v1/accounts", json={"name": "Lukas"}, actor="cit_me")

    updated = client.patch("/api/v1/accounts/me", json={"phone": "  +49 30 1234  "}, actor="cit_me")
    assert updated.status_code == 200
    assert updated.json()["data"]["phone"] == "+49 30 1234"
    assert updated.json()["data"]["name"] == "Lukas"

    me = client.get("/api/v1/accounts/me", actor="cit_me")
    assert me.json()["data"]["phone"] == "+49 30 1234"

    empty_name = client.patch("/api/v1/accounts/me", json={"name": "  "}, actor="cit_me")
    assert empty_name.status_code == 400


def test_unregistered_profile_is_not_found(client):
    resp = client.get("/api/v1/accounts/me", actor="ghost")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "ACCOUNT_NOT_FOUND"


def test_only_admin_reads_other_accounts_and_assigns_roles(client):
    seed_account(store, "adm_1", role="admin")
    seed_account(store, "cit_1")
    seed_account(store, "cit_2")

    peek = client.get("/api/v1/accounts/cit_2", actor="cit_1")
    assert peek.status_code == 403

    promote_denied = client.put("/api/v1/accounts/cit_2/role", json={"role": "staff"}, actor="cit_1")
    assert promote_denied.status_code == 403

    promoted = client.put("/api/v1/accounts/cit_2/role", json={"role": "staff"}, actor="adm_1")
    assert promoted.status_code == 200
    assert promoted.json()["data"]["role"] == "staff"

    staff_only = client.get("/api/v1/accounts?role=staff", actor="adm_1")
    assert [x["account_id"] for x in staff_only.json()["data"]["items"]] == ["cit_2"]

    bad_role = client.put("/api/v1/accounts/cit_2/role", json={"role": "superuser"}, actor="adm_1")
    assert bad_role.status_code == 400
    assert bad_role.json()["error"]["details"]["field"] == "role"

    missing = client.put("/api/v1/accounts/ghost/role", json={"role": "staff"}, actor="adm_1")
    assert missing.status_code == 404


def test_service_catalog_management(client):
    seed_account(store, "off_1", role="officer")
    seed_account(store, "stf_1", role="staff")
    seed_account(store, "cit_1")

    denied = client.post("/api/v1/services", json={"title": "Permit"}, actor="stf_1")
    assert denied.status_code == 403

    created = client.post(
        "/api/v1/services",
        json={"title": "Business Permit", "processing_time": "15 days", "fee": "150.5"},
        actor="off_1",
    )
    assert created.status_code == 201
    service = created.json()["data"]
    assert service["service_id"].startswith("svc_")
    assert service["fee"] == "150.5"
    assert service["created_by"] == "off_1"

    listed = client.get("/api/v1/services", actor="cit_1")
    assert listed.json()["data"]["total"] == 1

    updated = client.put(f"/api/v1/services/{service['service_id']}", json={"fee": 0}, actor="off_1")
    assert updated.json()["data"]["fee"] == "0"
    assert updated.json()["data"]["title"] == "Business Permit"

    negative = client.put(f"/api/v1/services/{service['service_id']}", json={"fee": -1}, actor="off_1")
    assert negative.status_code == 400
    assert negative.json()["error"]["details"]["field"] == "fee"

    deleted = client.delete(f"/api/v1/services/{service['service_id']}", actor="off_1")
    assert deleted.json()["data"] == {"service_id": service["service_id"], "deleted": True}
    gone = client.get(f"/api/v1/services/{service['service_id']}", actor="cit_1")
    assert gone.status_code == 404
