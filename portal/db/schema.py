from __future__ import annotations

import re

TABLES: tuple[str, ...] = ("accounts", "services", "applications", "status_change_events")


def validate_identifier(name: str) -> str:
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name):
        raise ValueError(f"invalid SQL identifier: {name}")
    return name


def schema_statements(
    *,
    accounts_table: str = "accounts",
    services_table: str = "services",
    applications_table: str = "applications",
    events_table: str = "status_change_events",
) -> list[str]:
    accounts = validate_identifier(accounts_table)
    services = validate_identifier(services_table)
    applications = validate_identifier(applications_table)
    events = validate_identifier(events_table)
    return [
        f"""
        CREATE TABLE IF NOT EXISTS {accounts} (
          account_id TEXT PRIMARY KEY,
          role TEXT,
          created_at TEXT NOT NULL,
          payload JSONB NOT NULL
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {services} (
          service_id TEXT PRIMARY KEY,
          created_at TEXT NOT NULL,
          payload JSONB NOT NULL
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {applications} (
          application_id TEXT PRIMARY KEY,
          user_id TEXT NOT NULL,
          service_id TEXT NOT NULL,
          status TEXT NOT NULL
            CHECK (status IN ('submitted', 'in_review', 'approved', 'rejected')),
          submitted_at TEXT NOT NULL,
          updated_at TEXT NOT NULL,
          payload JSONB NOT NULL
        )
        """,
        f"CREATE INDEX IF NOT EXISTS {applications}_user_idx ON {applications} (user_id)",
        f"CREATE INDEX IF NOT EXISTS {applications}_status_idx ON {applications} (status)",
        f"""
        CREATE TABLE IF NOT EXISTS {events} (
          event_id TEXT PRIMARY KEY,
          application_id TEXT NOT NULL,
          seq BIGSERIAL,
          occurred_at TEXT NOT NULL,
          payload JSONB NOT NULL
        )
        """,
        f"CREATE INDEX IF NOT EXISTS {events}_application_idx ON {events} (application_id, occurred_at, seq)",
        f"""
        CREATE OR REPLACE FUNCTION {events}_append_only() RETURNS trigger AS $$
        BEGIN
          RAISE EXCEPTION 'status change events are append-only';
        END;
        $$ LANGUAGE plpgsql
        """,
        f"DROP TRIGGER IF EXISTS {events}_no_update ON {events}",
        f"""
        CREATE TRIGGER {events}_no_update
        BEFORE UPDATE OR DELETE ON {events}
        FOR EACH ROW EXECUTE FUNCTION {events}_append_only()
        """,
    ]
