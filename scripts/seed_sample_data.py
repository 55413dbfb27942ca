#!/usr/bin/env python3
"""Populate an empty store with sample services, accounts and applications.

Usage:
    PORTAL_STORE_BACKEND=sqlite python scripts/seed_sample_data.py

Statuses other than ``submitted`` are reached through the transition engine,
so every seeded application has a matching status history.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from portal.domain import Actor, ApplicationStatus, Role
from portal.logging_config import configure_logging
from portal.store import InMemoryStore, store

ADMIN = Actor(id="seed_admin", display_name="Portal Administrator", email="admin@portal.example")
STAFF = Actor(id="seed_staff", display_name="Front Desk Staff", email="staff@portal.example")
CITIZENS = (
    Actor(id="seed_citizen_1", display_name="Amina Okafor", email="amina@example.org"),
    Actor(id="seed_citizen_2", display_name="Lukas Brandt", email="lukas@example.org"),
)

SERVICES: tuple[dict[str, Any], ...] = (
    {
        "title": "Birth Certificate",
        "description": "Certified copy of a registered birth.",
        "requirements": "Proof of identity; parent names",
        "processing_time": "5 working days",
        "fee": "12.50",
    },
    {
        "title": "Business Permit",
        "description": "Annual permit to operate a registered business.",
        "requirements": "Company registration; tax number; lease agreement",
        "processing_time": "15 working days",
        "fee": "150.00",
    },
    {
        "title": "Residence Certificate",
        "description": "Confirmation of registered address.",
        "requirements": "Utility bill or lease",
        "processing_time": "3 working days",
        "fee": "0",
    },
)

# (citizen index, service index, path of statuses after submission)
APPLICATIONS: tuple[tuple[int, int, tuple[ApplicationStatus, ...]], ...] = (
    (0, 0, ()),
    (0, 1, (ApplicationStatus.IN_REVIEW,)),
    (1, 2, (ApplicationStatus.APPROVED,)),
    (1, 0, (ApplicationStatus.IN_REVIEW, ApplicationStatus.REJECTED)),
)


def _bootstrap_admin(target: InMemoryStore) -> None:
    # No admin exists yet to grant roles, so the first one is written directly.
    if target.accounts_repository.get(account_id=ADMIN.id) is not None:
        return
    now = target._utcnow_iso()
    target.accounts_repository.upsert(
        account={
            "account_id": ADMIN.id,
            "name": ADMIN.display_name,
            "email": ADMIN.email,
            "phone": None,
            "role": Role.ADMIN.value,
            "created_at": now,
            "updated_at": now,
        }
    )


def _ensure_account(target: InMemoryStore, actor: Actor, role: Role) -> None:
    if target.accounts_repository.get(account_id=actor.id) is None:
        target.register_account(actor=actor, name=actor.display_name)
    if role != Role.CITIZEN:
        target.assign_role(actor=ADMIN, account_id=actor.id, role=role)


def _ensure_services(target: InMemoryStore) -> tuple[list[dict[str, Any]], int]:
    # Services an officer already created under the same title are reused.
    by_title = {str(row["title"]): row for row in target.services_repository.list()}
    services: list[dict[str, Any]] = []
    created = 0
    for payload in SERVICES:
        existing = by_title.get(payload["title"])
        if existing is None:
            existing = target.create_service(actor=ADMIN, payload=dict(payload))
            created += 1
        services.append(existing)
    return services, created


def seed(target: InMemoryStore) -> dict[str, int]:
    existing = target.applications_repository.count_by_status()
    if sum(existing.values()):
        return {"services": 0, "accounts": 0, "applications": 0}

    _bootstrap_admin(target)
    _ensure_account(target, STAFF, Role.STAFF)
    for citizen in CITIZENS:
        _ensure_account(target, citizen, Role.CITIZEN)

    services, services_created = _ensure_services(target)
    created = 0
    for citizen_index, service_index, path in APPLICATIONS:
        service = services[service_index]
        application = target.submit_application(
            actor=CITIZENS[citizen_index],
            service_id=service["service_id"],
            description=f"Sample request for {service['title']}",
            documents=[],
        )
        current = ApplicationStatus(application["status"])
        for next_status in path:
            target.transition_application(
                actor=STAFF,
                application_id=application["application_id"],
                expected_status=current,
                new_status=next_status,
                remarks=f"seeded: {current.value} -> {next_status.value}",
            )
            current = next_status
        created += 1
    return {"services": services_created, "accounts": 2 + len(CITIZENS), "applications": created}


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed the portal store with sample data when it is empty")
    parser.parse_args()
    configure_logging()
    result = seed(store)
    print(json.dumps(result, ensure_ascii=True, sort_keys=True, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
