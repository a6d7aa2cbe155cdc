"""Status counters for a console.

Authoritative totals always come from the remote stats endpoint: a console
usually holds a single page, so counting locally would under-report. Only
the visible-page breakdown is derived from cached records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional

from coursedesk.obs import metrics

from .errors import RemoteError
from .kinds import EntityKind
from .lifecycle import Generation
from .records import Record
from .service import RemoteService, call_remote

logger = logging.getLogger(__name__)


def compute_stats(records: Iterable[Record], kind: EntityKind) -> dict[str, int]:
    counts = {status: 0 for status in kind.statuses}
    total = 0
    for record in records:
        total += 1
        if record.status in counts:
            counts[record.status] += 1
    counts["total"] = total
    return counts


def _numeric(values: Mapping[str, Any]) -> dict[str, float]:
    result: dict[str, float] = {}
    for key, value in values.items():
        if isinstance(value, bool) or value is None:
            continue
        try:
            result[key] = float(value)
        except (TypeError, ValueError):
            continue
    return result


@dataclass(frozen=True, slots=True)
class StatsSnapshot:
    remote: dict[str, float] = field(default_factory=dict)
    page: dict[str, int] = field(default_factory=dict)
    fetched_at: Optional[datetime] = None

    def get(self, key: str, default: float = 0) -> float:
        return self.remote.get(key, default)


@dataclass
class StatsAggregator:
    kind: EntityKind
    remote: RemoteService
    generation: Generation = field(default_factory=Generation)
    clock: Optional[Callable[[], datetime]] = None
    snapshot: StatsSnapshot = field(default_factory=StatsSnapshot)

    async def refresh(self) -> StatsSnapshot:
        token = self.generation.value
        try:
            values = await call_remote("get_stats", self.remote.get_stats(self.kind))
        except RemoteError as exc:
            logger.warning("stats refresh failed", extra={"kind": self.kind.name, "error": exc.detail})
            return self.snapshot
        if not self.generation.is_current(token):
            metrics.record_stale("get_stats")
            return self.snapshot
        fetched_at = self.clock() if self.clock is not None else None
        self.snapshot = replace(self.snapshot, remote=_numeric(values), fetched_at=fetched_at)
        return self.snapshot

    def observe_page(self, records: Iterable[Record]) -> StatsSnapshot:
        self.snapshot = replace(self.snapshot, page=compute_stats(records, self.kind))
        return self.snapshot


__all__ = ["StatsAggregator", "StatsSnapshot", "compute_stats"]
