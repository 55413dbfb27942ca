from __future__ import annotations

from collections.abc import Callable
from typing import Any

from portal.errors import StorageError


def _import_psycopg() -> Any:
    try:
        import psycopg  # type: ignore
    except ImportError as exc:
        raise RuntimeError("psycopg is required for PostgreSQL backends; install psycopg[binary]") from exc
    return psycopg


class PostgresTxRunner:
    """Run callback logic in one PostgreSQL transaction; connectivity failures become StorageError."""

    def __init__(self, dsn: str, *, connect_timeout_s: int = 5) -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must not be empty")
        self._dsn = dsn.strip()
        self._connect_timeout_s = max(1, int(connect_timeout_s))

    def connect(self) -> Any:
        psycopg = _import_psycopg()
        try:
            return psycopg.connect(self._dsn, connect_timeout=self._connect_timeout_s)
        except psycopg.OperationalError as exc:
            raise StorageError(f"postgres connect failed: {type(exc).__name__}") from exc

    def run_in_tx(self, *, fn: Callable[[Any], Any]) -> Any:
        psycopg = _import_psycopg()
        try:
            with self.connect() as conn:
                result = fn(conn)
                conn.commit()
                return result
        except psycopg.OperationalError as exc:
            raise StorageError(f"postgres operation failed: {type(exc).__name__}") from exc
