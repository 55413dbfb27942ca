from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from portal.domain import ApplicationStatus


class StatusCounter(Protocol):
    def count_by_status(self, *, user_id: str | None = None) -> dict[str, int]: ...


@dataclass(frozen=True)
class StatsScope:
    owner_id: str | None = None

    @classmethod
    def global_(cls) -> "StatsScope":
        return cls()

    @classmethod
    def owned_by(cls, user_id: str) -> "StatsScope":
        return cls(owner_id=user_id)

    @property
    def key(self) -> str:
        return "global" if self.owner_id is None else f"owner:{self.owner_id}"

    def describe(self) -> dict[str, Any]:
        if self.owner_id is None:
            return {"kind": "global"}
        return {"kind": "owner", "owner_id": self.owner_id}


class StatsAggregator:
    """Counts applications per status for a scope.

    Results may be cached per scope; every application write must call
    ``invalidate``. Writes made by other processes cannot invalidate this
    cache, so cached entries also expire after ``ttl_s`` seconds. Counts are a
    dashboard metric and are never used for authorization decisions.
    """

    def __init__(
        self,
        applications_repository: StatusCounter,
        *,
        cache_enabled: bool = True,
        ttl_s: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._applications = applications_repository
        self._cache_enabled = cache_enabled
        self._ttl_s = ttl_s
        self._clock = clock
        self._cache: dict[str, tuple[float, dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self._generation = 0

    def aggregate(self, scope: StatsScope) -> dict[str, Any]:
        if self._cache_enabled:
            with self._lock:
                entry = self._cache.get(scope.key)
                generation = self._generation
            if entry is not None and entry[0] > self._clock():
                return _copy_stats(entry[1])

        counts = self._applications.count_by_status(user_id=scope.owner_id)
        by_status = {status.value: int(counts.get(status.value, 0)) for status in ApplicationStatus}
        result = {
            "scope": scope.describe(),
            "total": sum(by_status.values()),
            "by_status": by_status,
        }
        if self._cache_enabled:
            with self._lock:
                # A write since the count started makes this result stale.
                if generation == self._generation:
                    self._cache[scope.key] = (self._clock() + self._ttl_s, _copy_stats(result))
        return result

    def invalidate(self) -> None:
        with self._lock:
            self._generation += 1
            self._cache.clear()


def _copy_stats(stats: dict[str, Any]) -> dict[str, Any]:
    return {
        "scope": dict(stats["scope"]),
        "total": stats["total"],
        "by_status": dict(stats["by_status"]),
    }
