from __future__ import annotations

import importlib.util
from pathlib import Path

from portal.store import InMemoryStore

_SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "seed_sample_data.py"


def _load_seed_module():
    spec = importlib.util.spec_from_file_location("seed_sample_data", _SCRIPT)
    module = importlib.util.module_from_spec(spec)
    assert spec.loader is not None
    spec.loader.exec_module(module)
    return module


def test_seed_populates_empty_store_through_transition_engine():
    seed_module = _load_seed_module()
    target = InMemoryStore()

    result = seed_module.seed(target)

    assert result == {"services": 3, "accounts": 4, "applications": 4}
    staff = seed_module.STAFF
    statuses = sorted(x["status"] for x in target.list_all_applications(actor=staff))
    assert statuses == ["approved", "in_review", "rejected", "submitted"]
    for application in target.list_all_applications(actor=staff):
        replay = target.verify_audit_replay(actor=staff, application_id=application["application_id"])
        assert replay["consistent"] is True


def test_seed_is_skipped_when_applications_exist():
    seed_module = _load_seed_module()
    target = InMemoryStore()
    seed_module.seed(target)

    again = seed_module.seed(target)

    assert again == {"services": 0, "accounts": 0, "applications": 0}
    assert len(target.applications_repository.list()) == 4


def test_seed_reuses_services_created_before_any_application():
    seed_module = _load_seed_module()
    target = InMemoryStore()
    seed_module._bootstrap_admin(target)
    existing = target.create_service(actor=seed_module.ADMIN, payload=dict(seed_module.SERVICES[0]))

    result = seed_module.seed(target)

    assert result["services"] == 2
    assert target.services_repository.count() == 3
    titles = sorted(row["title"] for row in target.services_repository.list())
    assert titles == sorted(payload["title"] for payload in seed_module.SERVICES)
    first_service_apps = target.list_all_applications(actor=seed_module.STAFF, service_id=existing["service_id"])
    assert len(first_service_apps) == 2
