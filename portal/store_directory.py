from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from portal.authorization import Action
from portal.domain import Actor, Role
from portal.errors import NotFound, ValidationError

logger = logging.getLogger(__name__)

_SERVICE_TEXT_FIELDS = ("title", "description", "requirements", "processing_time")


def _normalize_fee(value: Any) -> str:
    try:
        fee = Decimal(str(value if value not in (None, "") else "0").strip())
    except InvalidOperation:
        raise ValidationError("fee", "fee must be a decimal number") from None
    if not fee.is_finite() or fee < 0:
        raise ValidationError("fee", "fee must be a non-negative decimal number")
    return format(fee, "f")


def _coerce_role(value: Any) -> Role:
    try:
        return Role(str(value or "").strip())
    except ValueError:
        raise ValidationError("role", f"unknown role: {value}") from None


class StoreDirectoryMixin:
    """Accounts and the service catalog."""

    # Accounts

    def register_account(self, *, actor: Actor, name: str, phone: str | None = None) -> dict[str, Any]:
        display_name = (name or "").strip() or actor.display_name.strip()
        if not display_name:
            raise ValidationError("name", "name is required")
        with self._lock:
            if self.accounts_repository.get(account_id=actor.id) is not None:
                raise ValidationError("account_id", "account already registered")
            now = self._utcnow_iso()
            account = self.accounts_repository.upsert(
                account={
                    "account_id": actor.id,
                    "name": display_name,
                    "email": actor.email,
                    "phone": (phone or "").strip() or None,
                    "role": Role.CITIZEN.value,
                    "created_at": now,
                    "updated_at": now,
                }
            )
        logger.info("account_registered account_id=%s", actor.id)
        return account

    def get_account(self, *, actor: Actor, account_id: str) -> dict[str, Any]:
        if account_id != actor.id:
            self.authorization.require(actor, Action.MANAGE_ACCOUNT_ROLES)
        account = self.accounts_repository.get(account_id=account_id)
        if account is None:
            raise NotFound("account", account_id)
        return account

    def update_profile(
        self,
        *,
        actor: Actor,
        name: str | None = None,
        phone: str | None = None,
    ) -> dict[str, Any]:
        with self._lock:
            account = self.accounts_repository.get(account_id=actor.id)
            if account is None:
                raise NotFound("account", actor.id)
            if name is not None:
                if not name.strip():
                    raise ValidationError("name", "name must not be empty")
                account["name"] = name.strip()
            if phone is not None:
                account["phone"] = phone.strip() or None
            account["updated_at"] = self._utcnow_iso()
            return self.accounts_repository.upsert(account=account)

    def list_accounts(self, *, actor: Actor, role: str | None = None) -> list[dict[str, Any]]:
        self.authorization.require(actor, Action.MANAGE_ACCOUNT_ROLES)
        role_filter = _coerce_role(role).value if role else None
        return self.accounts_repository.list(role=role_filter)

    def assign_role(self, *, actor: Actor, account_id: str, role: Role | str) -> dict[str, Any]:
        self.authorization.require(actor, Action.MANAGE_ACCOUNT_ROLES)
        new_role = _coerce_role(role)
        with self._lock:
            account = self.accounts_repository.get(account_id=account_id)
            if account is None:
                raise NotFound("account", account_id)
            previous = account.get("role")
            account["role"] = new_role.value
            account["updated_at"] = self._utcnow_iso()
            updated = self.accounts_repository.upsert(account=account)
        logger.info(
            "account_role_assigned account_id=%s from=%s to=%s by=%s",
            account_id,
            previous,
            new_role.value,
            actor.id,
        )
        return updated

    # Service catalog

    def list_services(self, *, actor: Actor) -> list[dict[str, Any]]:
        return self.services_repository.list()

    def get_service(self, *, actor: Actor, service_id: str) -> dict[str, Any]:
        service = self.services_repository.get(service_id=service_id)
        if service is None:
            raise NotFound("service", service_id)
        return service

    def create_service(self, *, actor: Actor, payload: dict[str, Any]) -> dict[str, Any]:
        self.authorization.require(actor, Action.MANAGE_SERVICES)
        title = str(payload.get("title") or "").strip()
        if not title:
            raise ValidationError("title", "title is required")
        now = self._utcnow_iso()
        service = {
            "service_id": self._new_id("svc"),
            "title": title,
            "description": str(payload.get("description") or "").strip(),
            "requirements": str(payload.get("requirements") or "").strip(),
            "processing_time": str(payload.get("processing_time") or "").strip(),
            "fee": _normalize_fee(payload.get("fee")),
            "created_by": actor.id,
            "created_at": now,
            "updated_at": now,
        }
        created = self.services_repository.upsert(service=service)
        logger.info("service_created service_id=%s by=%s", created["service_id"], actor.id)
        return created

    def update_service(self, *, actor: Actor, service_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.authorization.require(actor, Action.MANAGE_SERVICES)
        with self._lock:
            service = self.services_repository.get(service_id=service_id)
            if service is None:
                raise NotFound("service", service_id)
            for field in _SERVICE_TEXT_FIELDS:
                if field in payload and payload[field] is not None:
                    service[field] = str(payload[field]).strip()
            if not service["title"]:
                raise ValidationError("title", "title must not be empty")
            if "fee" in payload and payload["fee"] is not None:
                service["fee"] = _normalize_fee(payload["fee"])
            service["updated_at"] = self._utcnow_iso()
            return self.services_repository.upsert(service=service)

    def delete_service(self, *, actor: Actor, service_id: str) -> dict[str, Any]:
        self.authorization.require(actor, Action.MANAGE_SERVICES)
        if not self.services_repository.delete(service_id=service_id):
            raise NotFound("service", service_id)
        logger.info("service_deleted service_id=%s by=%s", service_id, actor.id)
        return {"service_id": service_id, "deleted": True}
