from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from portal.db.postgres import PostgresTxRunner
from portal.db.schema import validate_identifier
from portal.record_schemas import ensure_loaded_record, ensure_valid_record


class InMemoryAccountsRepository:
    def __init__(self, accounts: dict[str, dict[str, Any]]) -> None:
        self._accounts = accounts

    def upsert(self, *, account: dict[str, Any]) -> dict[str, Any]:
        item = ensure_valid_record("account", dict(account))
        self._accounts[str(item["account_id"])] = item
        return dict(item)

    def get(self, *, account_id: str) -> dict[str, Any] | None:
        row = self._accounts.get(account_id)
        if row is None:
            return None
        return dict(row)

    def list(self, *, role: str | None = None) -> list[dict[str, Any]]:
        rows = [dict(x) for x in self._accounts.values() if role is None or x.get("role") == role]
        rows.sort(key=lambda x: str(x.get("created_at") or ""))
        return rows

    def count(self, *, roles: Iterable[str] | None = None) -> int:
        if roles is None:
            return len(self._accounts)
        wanted = set(roles)
        return sum(1 for x in self._accounts.values() if x.get("role") in wanted)


class PostgresAccountsRepository:
    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "accounts") -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)

    def upsert(self, *, account: dict[str, Any]) -> dict[str, Any]:
        item = ensure_valid_record("account", dict(account))
        sql = f"""
            INSERT INTO {self._table_name} (account_id, role, created_at, payload)
            VALUES (%s, %s, %s, %s::jsonb)
            ON CONFLICT(account_id) DO UPDATE
            SET role = EXCLUDED.role,
                payload = EXCLUDED.payload
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(
                    sql,
                    (
                        item["account_id"],
                        item.get("role") or None,
                        item["created_at"],
                        json.dumps(item, ensure_ascii=True, sort_keys=True),
                    ),
                )
            return item

        return self._tx_runner.run_in_tx(fn=_op)

    def get(self, *, account_id: str) -> dict[str, Any] | None:
        sql = f"SELECT payload FROM {self._table_name} WHERE account_id = %s LIMIT 1"

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (account_id,))
                row = cur.fetchone()
            if row is None or not isinstance(row[0], dict):
                return None
            return ensure_loaded_record("account", row[0])

        return self._tx_runner.run_in_tx(fn=_op)

    def list(self, *, role: str | None = None) -> list[dict[str, Any]]:
        if role is None:
            sql = f"SELECT payload FROM {self._table_name} ORDER BY created_at ASC"
            params: tuple[Any, ...] = ()
        else:
            sql = f"SELECT payload FROM {self._table_name} WHERE role = %s ORDER BY created_at ASC"
            params = (role,)

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall() or []
            return [ensure_loaded_record("account", row[0]) for row in rows if isinstance(row[0], dict)]

        return self._tx_runner.run_in_tx(fn=_op)

    def count(self, *, roles: Iterable[str] | None = None) -> int:
        if roles is None:
            sql = f"SELECT count(*) FROM {self._table_name}"
            params: tuple[Any, ...] = ()
        else:
            sql = f"SELECT count(*) FROM {self._table_name} WHERE role = ANY(%s)"
            params = (list(roles),)

        def _op(conn: Any) -> int:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
            return int(row[0]) if row else 0

        return self._tx_runner.run_in_tx(fn=_op)
