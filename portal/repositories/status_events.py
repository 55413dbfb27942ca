from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from portal.db.postgres import PostgresTxRunner
from portal.db.schema import validate_identifier
from portal.errors import ValidationError
from portal.record_schemas import ensure_loaded_record, ensure_valid_record


def timestamp_key(value: Any) -> datetime:
    return datetime.fromisoformat(str(value))


class InMemoryStatusEventsRepository:
    """Append-only audit log of application status changes."""

    def __init__(self, status_events: list[dict[str, Any]]) -> None:
        self._status_events = status_events

    def append(self, *, event: dict[str, Any]) -> dict[str, Any]:
        item = ensure_valid_record("status_change_event", dict(event))
        if self.exists(event_id=str(item["event_id"])):
            raise ValidationError("event_id", "status change event already recorded")
        self._status_events.append(item)
        return dict(item)

    def exists(self, *, event_id: str) -> bool:
        return any(x.get("event_id") == event_id for x in self._status_events)

    def list_for(self, *, application_id: str) -> list[dict[str, Any]]:
        rows = [dict(x) for x in self._status_events if x.get("application_id") == application_id]
        rows.sort(key=lambda x: timestamp_key(x["timestamp"]))
        return rows


class PostgresStatusEventsRepository:
    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "status_change_events") -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)

    @property
    def table_name(self) -> str:
        return self._table_name

    def append_in_conn(self, conn: Any, *, event: dict[str, Any]) -> dict[str, Any]:
        item = ensure_valid_record("status_change_event", dict(event))
        sql = f"""
            INSERT INTO {self._table_name} (event_id, application_id, occurred_at, payload)
            VALUES (%s, %s, %s, %s::jsonb)
        """
        with conn.cursor() as cur:
            cur.execute(
                sql,
                (
                    item["event_id"],
                    item["application_id"],
                    item["timestamp"],
                    json.dumps(item, ensure_ascii=True, sort_keys=True),
                ),
            )
        return item

    def append(self, *, event: dict[str, Any]) -> dict[str, Any]:
        return self._tx_runner.run_in_tx(fn=lambda conn: self.append_in_conn(conn, event=event))

    def list_for(self, *, application_id: str) -> list[dict[str, Any]]:
        sql = f"""
            SELECT payload
            FROM {self._table_name}
            WHERE application_id = %s
            ORDER BY occurred_at ASC, seq ASC
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (application_id,))
                rows = cur.fetchall() or []
            return [
                ensure_loaded_record("status_change_event", row[0]) for row in rows if isinstance(row[0], dict)
            ]

        return self._tx_runner.run_in_tx(fn=_op)
