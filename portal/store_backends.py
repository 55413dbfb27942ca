from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any

from portal.db.postgres import PostgresTxRunner
from portal.db.schema import TABLES, schema_statements
from portal.domain import Actor, ApplicationStatus, Role
from portal.errors import StorageError
from portal.record_schemas import ensure_loaded_record
from portal.repositories.accounts import PostgresAccountsRepository
from portal.repositories.applications import PostgresApplicationsRepository
from portal.repositories.services import PostgresServicesRepository
from portal.repositories.status_events import PostgresStatusEventsRepository
from portal.store import IdempotencyRecord, InMemoryStore

logger = logging.getLogger(__name__)


class SqliteBackedStore(InMemoryStore):
    """Persistent store backend that snapshots state to SQLite after every write.

    A write whose snapshot cannot be saved is rolled back in memory, so the
    process never serves state that is not on disk.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: str) -> None:
        super().__init__()
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._persist_depth = 0
        self._initialize_database()
        self._load_state()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._db_path))

    def _initialize_database(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS store_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  payload TEXT NOT NULL
                )
                """
            )
            conn.commit()

    def _state_snapshot(self) -> dict[str, Any]:
        idempotency_records = []
        for (scope, key), record in self.idempotency_records.items():
            idempotency_records.append(
                {
                    "scope": scope,
                    "key": key,
                    "fingerprint": record.fingerprint,
                    "data": record.data,
                }
            )
        snapshot = {
            "schema_version": self.SCHEMA_VERSION,
            "idempotency_records": idempotency_records,
            "accounts": self.accounts,
            "services": self.services,
            "applications": self.applications,
            "status_events": self.status_events,
        }
        # Detached copy; later in-place edits must not leak into it.
        return json.loads(json.dumps(snapshot, ensure_ascii=True))

    def _restore_state(self, payload: dict[str, Any]) -> None:
        records: dict[tuple[str, str], IdempotencyRecord] = {}
        for row in payload.get("idempotency_records", []):
            if not isinstance(row, dict):
                continue
            scope = row.get("scope")
            key = row.get("key")
            fingerprint = row.get("fingerprint")
            data = row.get("data")
            if not isinstance(scope, str) or not isinstance(key, str) or not isinstance(fingerprint, str):
                continue
            if not isinstance(data, dict):
                continue
            records[(scope, key)] = IdempotencyRecord(fingerprint=fingerprint, data=data)

        def _table(name: str, kind: str, id_field: str) -> dict[str, dict[str, Any]]:
            raw = payload.get(name)
            if not isinstance(raw, dict):
                return {}
            return {
                str(item[id_field]): item
                for item in (ensure_loaded_record(kind, row) for row in raw.values() if isinstance(row, dict))
            }

        accounts = _table("accounts", "account", "account_id")
        services = _table("services", "service", "service_id")
        applications = _table("applications", "application", "application_id")
        raw_events = payload.get("status_events")
        events = [
            ensure_loaded_record("status_change_event", row)
            for row in (raw_events if isinstance(raw_events, list) else [])
            if isinstance(row, dict)
        ]

        # Containers are refilled in place; repositories hold references to them.
        with self._lock:
            self.idempotency_records.clear()
            self.idempotency_records.update(records)
            self.accounts.clear()
            self.accounts.update(accounts)
            self.services.clear()
            self.services.update(services)
            self.applications.clear()
            self.applications.update(applications)
            self.status_events[:] = events
        self.stats_aggregator.invalidate()

    def _save_state(self) -> None:
        blob = json.dumps(self._state_snapshot(), sort_keys=True, ensure_ascii=True, separators=(",", ":"))
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                    INSERT INTO store_state(id, payload)
                    VALUES (1, ?)
                    ON CONFLICT(id) DO UPDATE SET payload = excluded.payload
                    """,
                (blob,),
            )
            conn.commit()

    def _load_state(self) -> None:
        with self._lock, self._connect() as conn:
            row = conn.execute("SELECT payload FROM store_state WHERE id = 1").fetchone()
        if row is None:
            return
        payload_raw = row[0]
        if not isinstance(payload_raw, str):
            return
        try:
            payload = json.loads(payload_raw)
        except json.JSONDecodeError:
            logger.warning("sqlite_snapshot_unreadable path=%s", self._db_path)
            return
        if not isinstance(payload, dict):
            return
        self._restore_state(payload)

    def _persisted(self, op: Callable[..., Any], /, **kwargs: Any) -> Any:
        with self._lock:
            if self._persist_depth:
                return op(**kwargs)
            before = self._state_snapshot()
            self._persist_depth += 1
            try:
                result = op(**kwargs)
            finally:
                self._persist_depth -= 1
            try:
                self._save_state()
            except sqlite3.Error as exc:
                self._restore_state(before)
                logger.error("sqlite_snapshot_failed path=%s error=%s", self._db_path, type(exc).__name__)
                raise StorageError("sqlite snapshot write failed") from exc
            return result

    def reset(self) -> None:
        super().reset()
        self._save_state()

    def run_idempotent(
        self,
        *,
        endpoint: str,
        actor_id: str,
        idempotency_key: str,
        payload: dict[str, Any],
        execute: Callable[[], dict[str, Any]],
    ) -> dict[str, Any]:
        return self._persisted(
            super().run_idempotent,
            endpoint=endpoint,
            actor_id=actor_id,
            idempotency_key=idempotency_key,
            payload=payload,
            execute=execute,
        )

    def register_account(self, *, actor: Actor, name: str, phone: str | None = None) -> dict[str, Any]:
        return self._persisted(super().register_account, actor=actor, name=name, phone=phone)

    def update_profile(self, *, actor: Actor, name: str | None = None, phone: str | None = None) -> dict[str, Any]:
        return self._persisted(super().update_profile, actor=actor, name=name, phone=phone)

    def assign_role(self, *, actor: Actor, account_id: str, role: Role | str) -> dict[str, Any]:
        return self._persisted(super().assign_role, actor=actor, account_id=account_id, role=role)

    def create_service(self, *, actor: Actor, payload: dict[str, Any]) -> dict[str, Any]:
        return self._persisted(super().create_service, actor=actor, payload=payload)

    def update_service(self, *, actor: Actor, service_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self._persisted(super().update_service, actor=actor, service_id=service_id, payload=payload)

    def delete_service(self, *, actor: Actor, service_id: str) -> dict[str, Any]:
        return self._persisted(super().delete_service, actor=actor, service_id=service_id)

    def submit_application(
        self,
        *,
        actor: Actor,
        service_id: str,
        description: str,
        documents: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        return self._persisted(
            super().submit_application,
            actor=actor,
            service_id=service_id,
            description=description,
            documents=documents,
        )

    def transition_application(
        self,
        *,
        actor: Actor,
        application_id: str,
        expected_status: ApplicationStatus | str | None,
        new_status: ApplicationStatus | str | None,
        remarks: str | None = None,
    ) -> dict[str, Any]:
        return self._persisted(
            super().transition_application,
            actor=actor,
            application_id=application_id,
            expected_status=expected_status,
            new_status=new_status,
            remarks=remarks,
        )


class PostgresBackedStore(InMemoryStore):
    """Store backend whose records live in PostgreSQL tables.

    Transitions run as one transaction (row lock, compare-and-swap update,
    event insert). Idempotency records stay in process memory. Other workers
    write to the same tables, so the stats cache is off unless
    PORTAL_STATS_CACHE_ENABLED turns it on.
    """

    STATS_CACHE_DEFAULT = False

    def __init__(
        self,
        *,
        dsn: str,
        connect_timeout_s: int = 5,
    ) -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must be provided for postgres store backend")
        self._tx_runner = PostgresTxRunner(dsn, connect_timeout_s=connect_timeout_s)
        super().__init__()
        self._initialize_database()

    def _bind_repositories(self) -> None:
        self.accounts_repository = PostgresAccountsRepository(tx_runner=self._tx_runner, table_name="accounts")
        self.services_repository = PostgresServicesRepository(tx_runner=self._tx_runner, table_name="services")
        self.status_events_repository = PostgresStatusEventsRepository(
            tx_runner=self._tx_runner,
            table_name="status_change_events",
        )
        self.applications_repository = PostgresApplicationsRepository(
            tx_runner=self._tx_runner,
            events_repository=self.status_events_repository,
            table_name="applications",
        )
        self._bind_components()

    def _initialize_database(self) -> None:
        def _op(conn: Any) -> None:
            with conn.cursor() as cur:
                for statement in schema_statements():
                    cur.execute(statement)

        self._tx_runner.run_in_tx(fn=_op)
        logger.info("postgres_schema_ready tables=%s", ",".join(TABLES))

    def reset(self) -> None:
        sql = f"TRUNCATE TABLE {', '.join(TABLES)}"

        def _op(conn: Any) -> None:
            with conn.cursor() as cur:
                cur.execute(sql)

        self._tx_runner.run_in_tx(fn=_op)
        super().reset()
