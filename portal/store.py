from __future__ import annotations

import json
import os
import threading
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from portal.authorization import AuthorizationService, RoleDirectory
from portal.errors import ApiError
from portal.repositories.accounts import InMemoryAccountsRepository
from portal.repositories.applications import InMemoryApplicationsRepository
from portal.repositories.services import InMemoryServicesRepository
from portal.repositories.status_events import InMemoryStatusEventsRepository
from portal.stats import StatsAggregator
from portal.store_applications import StoreApplicationsMixin
from portal.store_directory import StoreDirectoryMixin
from portal.transitions import StatusTransitionEngine, format_timestamp


@dataclass
class IdempotencyRecord:
    fingerprint: str
    data: dict[str, Any]


class InMemoryStore(StoreDirectoryMixin, StoreApplicationsMixin):
    RECENT_LIMIT_MAX = 50
    STATS_CACHE_DEFAULT = True
    STATS_CACHE_TTL_S = 5

    def __init__(self) -> None:
        self.stats_cache_enabled = self._env_bool("PORTAL_STATS_CACHE_ENABLED", default=self.STATS_CACHE_DEFAULT)
        self.stats_cache_ttl_s = self._env_int(
            "PORTAL_STATS_CACHE_TTL_S",
            default=self.STATS_CACHE_TTL_S,
            minimum=1,
        )
        self.recent_limit_max = self._env_int(
            "PORTAL_RECENT_LIMIT_MAX",
            default=self.RECENT_LIMIT_MAX,
            minimum=1,
        )
        self._lock = threading.RLock()
        self.idempotency_records: dict[tuple[str, str], IdempotencyRecord] = {}
        self.accounts: dict[str, dict[str, Any]] = {}
        self.services: dict[str, dict[str, Any]] = {}
        self.applications: dict[str, dict[str, Any]] = {}
        self.status_events: list[dict[str, Any]] = []
        self._bind_repositories()

    @staticmethod
    def _env_int(name: str, *, default: int, minimum: int = 0) -> int:
        raw = os.environ.get(name, "").strip()
        if not raw:
            return default
        try:
            value = int(raw)
        except ValueError:
            return default
        return max(minimum, value)

    @staticmethod
    def _env_bool(name: str, *, default: bool) -> bool:
        raw = os.environ.get(name, "").strip().lower()
        if not raw:
            return default
        return raw in {"1", "true", "yes", "on"}

    def _bind_repositories(self) -> None:
        self.accounts_repository = InMemoryAccountsRepository(self.accounts)
        self.services_repository = InMemoryServicesRepository(self.services)
        self.status_events_repository = InMemoryStatusEventsRepository(self.status_events)
        self.applications_repository = InMemoryApplicationsRepository(
            self.applications,
            events_repository=self.status_events_repository,
            lock=self._lock,
        )
        self._bind_components()

    def _bind_components(self) -> None:
        self.role_directory = RoleDirectory(self.accounts_repository)
        self.authorization = AuthorizationService(self.role_directory)
        self.transition_engine = StatusTransitionEngine(
            applications_repository=self.applications_repository,
            authorization=self.authorization,
            clock=self._utcnow,
        )
        self.stats_aggregator = StatsAggregator(
            self.applications_repository,
            cache_enabled=self.stats_cache_enabled,
            ttl_s=self.stats_cache_ttl_s,
        )

    def reset(self) -> None:
        with self._lock:
            self.idempotency_records.clear()
            self.accounts.clear()
            self.services.clear()
            self.applications.clear()
            self.status_events.clear()
        self.stats_aggregator.invalidate()

    @staticmethod
    def _fingerprint(payload: dict[str, Any]) -> str:
        return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True)

    @staticmethod
    def _utcnow() -> datetime:
        return datetime.now(UTC)

    def _utcnow_iso(self) -> str:
        return format_timestamp(self._utcnow())

    @staticmethod
    def _new_id(prefix: str) -> str:
        return f"{prefix}_{uuid.uuid4().hex[:12]}"

    def run_idempotent(
        self,
        *,
        endpoint: str,
        actor_id: str,
        idempotency_key: str,
        payload: dict[str, Any],
        execute: Callable[[], dict[str, Any]],
    ) -> dict[str, Any]:
        key = (f"{actor_id}:{endpoint}", idempotency_key)
        current_fingerprint = self._fingerprint(payload)
        with self._lock:
            if key in self.idempotency_records:
                record = self.idempotency_records[key]
                if record.fingerprint != current_fingerprint:
                    raise ApiError(
                        code="IDEMPOTENCY_CONFLICT",
                        message="same key with different payload",
                        error_class="validation",
                        retryable=False,
                        http_status=409,
                    )
                return record.data

            data = execute()
            self.idempotency_records[key] = IdempotencyRecord(
                fingerprint=current_fingerprint,
                data=data,
            )
            return data


def durable_store_required(environ: Mapping[str, str] | None = None) -> bool:
    env = os.environ if environ is None else environ
    return env.get("PORTAL_REQUIRE_DURABLE_STORE", "false").strip().lower() in {"1", "true", "yes", "on"}


def create_store_from_env(environ: Mapping[str, str] | None = None) -> InMemoryStore:
    from portal.store_backends import PostgresBackedStore, SqliteBackedStore

    env = os.environ if environ is None else environ
    backend = env.get("PORTAL_STORE_BACKEND", "memory").strip().lower() or "memory"
    if durable_store_required(env) and backend == "memory":
        raise RuntimeError("PORTAL_STORE_BACKEND must be sqlite or postgres when PORTAL_REQUIRE_DURABLE_STORE=true")
    if backend == "sqlite":
        db_path = env.get("PORTAL_STORE_SQLITE_PATH", ".local/portal-store.sqlite3")
        return SqliteBackedStore(db_path)
    if backend == "postgres":
        dsn = env.get("POSTGRES_DSN", "").strip()
        if not dsn:
            raise ValueError("POSTGRES_DSN must be set when PORTAL_STORE_BACKEND=postgres")
        raw_timeout = env.get("PORTAL_POSTGRES_CONNECT_TIMEOUT_S", "5").strip()
        connect_timeout_s = int(raw_timeout) if raw_timeout.isdigit() else 5
        return PostgresBackedStore(dsn=dsn, connect_timeout_s=connect_timeout_s)
    if backend != "memory":
        raise ValueError(f"unsupported PORTAL_STORE_BACKEND: {backend}")
    return InMemoryStore()


store = create_store_from_env()
