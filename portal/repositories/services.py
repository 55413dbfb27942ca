from __future__ import annotations

import json
from typing import Any

from portal.db.postgres import PostgresTxRunner
from portal.db.schema import validate_identifier
from portal.record_schemas import ensure_loaded_record, ensure_valid_record


class InMemoryServicesRepository:
    def __init__(self, services: dict[str, dict[str, Any]]) -> None:
        self._services = services

    def upsert(self, *, service: dict[str, Any]) -> dict[str, Any]:
        item = ensure_valid_record("service", dict(service))
        self._services[str(item["service_id"])] = item
        return dict(item)

    def get(self, *, service_id: str) -> dict[str, Any] | None:
        row = self._services.get(service_id)
        if row is None:
            return None
        return dict(row)

    def list(self) -> list[dict[str, Any]]:
        rows = [dict(x) for x in self._services.values()]
        rows.sort(key=lambda x: str(x.get("title") or "").lower())
        return rows

    def delete(self, *, service_id: str) -> bool:
        if service_id not in self._services:
            return False
        del self._services[service_id]
        return True

    def count(self) -> int:
        return len(self._services)


class PostgresServicesRepository:
    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "services") -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)

    def upsert(self, *, service: dict[str, Any]) -> dict[str, Any]:
        item = ensure_valid_record("service", dict(service))
        sql = f"""
            INSERT INTO {self._table_name} (service_id, created_at, payload)
            VALUES (%s, %s, %s::jsonb)
            ON CONFLICT(service_id) DO UPDATE
            SET payload = EXCLUDED.payload
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(
                    sql,
                    (
                        item["service_id"],
                        item["created_at"],
                        json.dumps(item, ensure_ascii=True, sort_keys=True),
                    ),
                )
            return item

        return self._tx_runner.run_in_tx(fn=_op)

    def get(self, *, service_id: str) -> dict[str, Any] | None:
        sql = f"SELECT payload FROM {self._table_name} WHERE service_id = %s LIMIT 1"

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (service_id,))
                row = cur.fetchone()
            if row is None or not isinstance(row[0], dict):
                return None
            return ensure_loaded_record("service", row[0])

        return self._tx_runner.run_in_tx(fn=_op)

    def list(self) -> list[dict[str, Any]]:
        sql = f"SELECT payload FROM {self._table_name} ORDER BY lower(payload->>'title') ASC"

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql)
                rows = cur.fetchall() or []
            return [ensure_loaded_record("service", row[0]) for row in rows if isinstance(row[0], dict)]

        return self._tx_runner.run_in_tx(fn=_op)

    def delete(self, *, service_id: str) -> bool:
        sql = f"DELETE FROM {self._table_name} WHERE service_id = %s"

        def _op(conn: Any) -> bool:
            with conn.cursor() as cur:
                cur.execute(sql, (service_id,))
                return cur.rowcount > 0

        return self._tx_runner.run_in_tx(fn=_op)

    def count(self) -> int:
        sql = f"SELECT count(*) FROM {self._table_name}"

        def _op(conn: Any) -> int:
            with conn.cursor() as cur:
                cur.execute(sql)
                row = cur.fetchone()
            return int(row[0]) if row else 0

        return self._tx_runner.run_in_tx(fn=_op)
