from __future__ import annotations

import logging
from typing import Any

from portal.authorization import Action, DenyReason
from portal.domain import STAFF_ROLES, Actor, ApplicationStatus, Role, parse_status, replay_status
from portal.errors import NotFound, PermissionDenied, ValidationError
from portal.stats import StatsScope
from portal.transitions import coerce_status

logger = logging.getLogger(__name__)


def _normalize_documents(documents: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for index, doc in enumerate(documents or []):
        if not isinstance(doc, dict):
            raise ValidationError(f"documents.{index}", "document reference must be an object")
        try:
            size = int(doc.get("size", 0))
        except (TypeError, ValueError):
            raise ValidationError(f"documents.{index}.size", "size must be an integer") from None
        out.append({"name": str(doc.get("name") or ""), "url": str(doc.get("url") or ""), "size": size})
    return out


class StoreApplicationsMixin:
    """Application submission, reads, transitions, audit history and stats."""

    def submit_application(
        self,
        *,
        actor: Actor,
        service_id: str,
        description: str,
        documents: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        self.authorization.require(actor, Action.SUBMIT_APPLICATION)
        if not str(service_id or "").strip():
            raise ValidationError("service_id", "service_id is required")
        if self.services_repository.get(service_id=service_id) is None:
            raise NotFound("service", service_id)
        now = self._utcnow_iso()
        created = self.applications_repository.create(
            application={
                "application_id": self._new_id("app"),
                "user_id": actor.id,
                "service_id": service_id,
                "status": ApplicationStatus.SUBMITTED.value,
                "description": str(description or "").strip(),
                "documents": _normalize_documents(documents),
                "staff_remarks": None,
                "submitted_at": now,
                "updated_at": now,
            }
        )
        self.stats_aggregator.invalidate()
        logger.info(
            "application_submitted application_id=%s user_id=%s service_id=%s",
            created["application_id"],
            actor.id,
            service_id,
        )
        return created

    def _load_application(self, application_id: str) -> dict[str, Any]:
        application = self.applications_repository.get(application_id=application_id)
        if application is None:
            raise NotFound("application", application_id)
        return application

    def _require_any_role(self, actor: Actor) -> Role:
        role = self.authorization.role_for(actor)
        if role is None:
            logger.warning("authorization_denied actor=%s reason=%s", actor.id, DenyReason.NO_ROLE_ASSIGNED.value)
            raise PermissionDenied(DenyReason.NO_ROLE_ASSIGNED.value, action=Action.VIEW_OWN_APPLICATION.value)
        return role

    def get_application(self, *, actor: Actor, application_id: str) -> dict[str, Any]:
        self._require_any_role(actor)
        application = self._load_application(application_id)
        self.authorization.require_view(actor, application)
        return application

    def list_applications_for_owner(self, *, actor: Actor) -> list[dict[str, Any]]:
        # The owner is always the caller; a requested owner id is never trusted.
        self._require_any_role(actor)
        return self.applications_repository.list(user_id=actor.id)

    def list_all_applications(
        self,
        *,
        actor: Actor,
        status: str | None = None,
        service_id: str | None = None,
        user_id: str | None = None,
    ) -> list[dict[str, Any]]:
        self.authorization.require(actor, Action.LIST_ALL_APPLICATIONS)
        status_filter = coerce_status(status, field="status").value if status else None
        return self.applications_repository.list(
            user_id=user_id or None,
            status=status_filter,
            service_id=service_id or None,
        )

    def list_recent_applications(self, *, actor: Actor, limit: int = 5) -> list[dict[str, Any]]:
        if limit < 1 or limit > self.recent_limit_max:
            raise ValidationError("limit", f"limit must be between 1 and {self.recent_limit_max}")
        role = self._require_any_role(actor)
        owner = None if role in STAFF_ROLES else actor.id
        rows = self.applications_repository.list(user_id=owner, limit=limit)

        names: dict[str, str] = {}
        titles: dict[str, str] = {}
        out: list[dict[str, Any]] = []
        for row in rows:
            user_id = str(row["user_id"])
            if user_id not in names:
                account = self.accounts_repository.get(account_id=user_id)
                names[user_id] = str(account.get("name") or account.get("email")) if account else "Unknown User"
            service_id = str(row["service_id"])
            if service_id not in titles:
                service = self.services_repository.get(service_id=service_id)
                titles[service_id] = str(service["title"]) if service else "Unknown Service"
            out.append({**row, "applicant_name": names[user_id], "service_title": titles[service_id]})
        return out

    def transition_application(
        self,
        *,
        actor: Actor,
        application_id: str,
        expected_status: ApplicationStatus | str | None,
        new_status: ApplicationStatus | str | None,
        remarks: str | None = None,
    ) -> dict[str, Any]:
        updated = self.transition_engine.transition(
            application_id=application_id,
            expected_status=expected_status,
            new_status=new_status,
            actor=actor,
            remarks=remarks,
        )
        self.stats_aggregator.invalidate()
        return updated

    def list_status_history(self, *, actor: Actor, application_id: str) -> list[dict[str, Any]]:
        self._require_any_role(actor)
        application = self._load_application(application_id)
        self.authorization.require_view(actor, application)
        return self.status_events_repository.list_for(application_id=application_id)

    def verify_audit_replay(self, *, actor: Actor, application_id: str) -> dict[str, Any]:
        self.authorization.require(actor, Action.VIEW_ANY_APPLICATION)
        application = self._load_application(application_id)
        events = self.status_events_repository.list_for(application_id=application_id)
        current = parse_status(application["status"])
        try:
            replayed: str | None = replay_status(events).value
        except ValueError as exc:
            logger.warning("audit_replay_broken application_id=%s detail=%s", application_id, exc)
            replayed = None
        consistent = replayed == current.value
        if not consistent:
            logger.warning(
                "audit_replay_mismatch application_id=%s current=%s replayed=%s",
                application_id,
                current.value,
                replayed,
            )
        return {
            "application_id": application_id,
            "current_status": current.value,
            "replayed_status": replayed,
            "event_count": len(events),
            "consistent": consistent,
        }

    def aggregate_stats(self, *, actor: Actor, owner_id: str | None = None) -> dict[str, Any]:
        role = self._require_any_role(actor)
        if role == Role.CITIZEN:
            scope = StatsScope.owned_by(actor.id)
        elif owner_id:
            scope = StatsScope.owned_by(owner_id)
        else:
            scope = StatsScope.global_()
        return self.stats_aggregator.aggregate(scope)

    def admin_overview(self, *, actor: Actor) -> dict[str, Any]:
        self.authorization.require(actor, Action.VIEW_ADMIN_OVERVIEW)
        stats = self.stats_aggregator.aggregate(StatsScope.global_())
        return {
            "total_applications": stats["total"],
            "by_status": stats["by_status"],
            "total_accounts": self.accounts_repository.count(),
            "total_services": self.services_repository.count(),
            "staff_members": self.accounts_repository.count(roles=[role.value for role in STAFF_ROLES]),
        }
