from __future__ import annotations

import json
import threading
from collections.abc import Callable
from typing import Any

from portal.db.postgres import PostgresTxRunner
from portal.db.schema import validate_identifier
from portal.errors import Conflict, NotFound, ValidationError
from portal.record_schemas import ensure_loaded_record, ensure_valid_record
from portal.repositories.status_events import InMemoryStatusEventsRepository, PostgresStatusEventsRepository

# fn(stored_application) -> (updated_application, status_change_event)
TransitionFn = Callable[[dict[str, Any]], tuple[dict[str, Any], dict[str, Any]]]


def _matches(
    row: dict[str, Any],
    *,
    user_id: str | None,
    status: str | None,
    service_id: str | None,
) -> bool:
    if user_id is not None and row.get("user_id") != user_id:
        return False
    if status is not None and row.get("status") != status:
        return False
    if service_id is not None and row.get("service_id") != service_id:
        return False
    return True


class InMemoryApplicationsRepository:
    def __init__(
        self,
        applications: dict[str, dict[str, Any]],
        *,
        events_repository: InMemoryStatusEventsRepository,
        lock: threading.RLock | None = None,
    ) -> None:
        self._applications = applications
        self._events = events_repository
        self._lock = lock or threading.RLock()

    def create(self, *, application: dict[str, Any]) -> dict[str, Any]:
        item = ensure_valid_record("application", dict(application))
        with self._lock:
            if str(item["application_id"]) in self._applications:
                raise ValidationError("application_id", "application already exists")
            self._applications[str(item["application_id"])] = item
        return dict(item)

    def get(self, *, application_id: str) -> dict[str, Any] | None:
        row = self._applications.get(application_id)
        if row is None:
            return None
        return dict(row)

    def list(
        self,
        *,
        user_id: str | None = None,
        status: str | None = None,
        service_id: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                dict(x)
                for x in self._applications.values()
                if _matches(x, user_id=user_id, status=status, service_id=service_id)
            ]
        rows.sort(key=lambda x: str(x.get("submitted_at") or ""), reverse=True)
        if limit is not None:
            rows = rows[: max(0, int(limit))]
        return rows

    def count_by_status(self, *, user_id: str | None = None) -> dict[str, int]:
        counts: dict[str, int] = {}
        with self._lock:
            for row in self._applications.values():
                if user_id is not None and row.get("user_id") != user_id:
                    continue
                status = str(row.get("status"))
                counts[status] = counts.get(status, 0) + 1
        return counts

    def apply_transition(self, *, application_id: str, fn: TransitionFn) -> dict[str, Any]:
        with self._lock:
            row = self._applications.get(application_id)
            if row is None:
                raise NotFound("application", application_id)
            updated, event = fn(dict(row))
            updated = ensure_valid_record("application", dict(updated))
            event = ensure_valid_record("status_change_event", dict(event))
            if self._events.exists(event_id=str(event["event_id"])):
                raise ValidationError("event_id", "status change event already recorded")
            self._applications[application_id] = updated
            self._events.append(event=event)
            return dict(updated)


class PostgresApplicationsRepository:
    def __init__(
        self,
        *,
        tx_runner: PostgresTxRunner,
        events_repository: PostgresStatusEventsRepository,
        table_name: str = "applications",
    ) -> None:
        self._tx_runner = tx_runner
        self._events = events_repository
        self._table_name = validate_identifier(table_name)

    def create(self, *, application: dict[str, Any]) -> dict[str, Any]:
        item = ensure_valid_record("application", dict(application))
        sql = f"""
            INSERT INTO {self._table_name} (
                application_id, user_id, service_id, status, submitted_at, updated_at, payload
            ) VALUES (%s, %s, %s, %s, %s, %s, %s::jsonb)
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(
                    sql,
                    (
                        item["application_id"],
                        item["user_id"],
                        item["service_id"],
                        item["status"],
                        item["submitted_at"],
                        item["updated_at"],
                        json.dumps(item, ensure_ascii=True, sort_keys=True),
                    ),
                )
            return item

        return self._tx_runner.run_in_tx(fn=_op)

    def get(self, *, application_id: str) -> dict[str, Any] | None:
        sql = f"SELECT payload FROM {self._table_name} WHERE application_id = %s LIMIT 1"

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (application_id,))
                row = cur.fetchone()
            if row is None or not isinstance(row[0], dict):
                return None
            return ensure_loaded_record("application", row[0])

        return self._tx_runner.run_in_tx(fn=_op)

    def list(
        self,
        *,
        user_id: str | None = None,
        status: str | None = None,
        service_id: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        for column, value in (("user_id", user_id), ("status", status), ("service_id", service_id)):
            if value is not None:
                clauses.append(f"{column} = %s")
                params.append(value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = f"SELECT payload FROM {self._table_name} {where} ORDER BY submitted_at DESC"
        if limit is not None:
            sql += " LIMIT %s"
            params.append(max(0, int(limit)))

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(params))
                rows = cur.fetchall() or []
            return [ensure_loaded_record("application", row[0]) for row in rows if isinstance(row[0], dict)]

        return self._tx_runner.run_in_tx(fn=_op)

    def count_by_status(self, *, user_id: str | None = None) -> dict[str, int]:
        if user_id is None:
            sql = f"SELECT status, count(*) FROM {self._table_name} GROUP BY status"
            params: tuple[Any, ...] = ()
        else:
            sql = f"SELECT status, count(*) FROM {self._table_name} WHERE user_id = %s GROUP BY status"
            params = (user_id,)

        def _op(conn: Any) -> dict[str, int]:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall() or []
            return {str(row[0]): int(row[1]) for row in rows}

        return self._tx_runner.run_in_tx(fn=_op)

    def apply_transition(self, *, application_id: str, fn: TransitionFn) -> dict[str, Any]:
        select_sql = f"SELECT payload FROM {self._table_name} WHERE application_id = %s FOR UPDATE"
        update_sql = f"""
            UPDATE {self._table_name}
            SET status = %s, updated_at = %s, payload = %s::jsonb
            WHERE application_id = %s AND status = %s
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(select_sql, (application_id,))
                row = cur.fetchone()
            if row is None or not isinstance(row[0], dict):
                raise NotFound("application", application_id)
            stored = ensure_loaded_record("application", row[0])
            updated, event = fn(dict(stored))
            updated = ensure_valid_record("application", dict(updated))
            with conn.cursor() as cur:
                cur.execute(
                    update_sql,
                    (
                        updated["status"],
                        updated["updated_at"],
                        json.dumps(updated, ensure_ascii=True, sort_keys=True),
                        application_id,
                        stored["status"],
                    ),
                )
                if cur.rowcount != 1:
                    raise Conflict(stored["status"], "unknown")
            self._events.append_in_conn(conn, event=event)
            return updated

        return self._tx_runner.run_in_tx(fn=_op)
