"""Interface to the remote admin API that owns the records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Protocol, Sequence, TypeVar

from coursedesk.obs import metrics

from .errors import RemoteError
from .kinds import EntityKind
from .records import Record
from .view import ViewParameters

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from .importer import ImportRow

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RecordPage:
    records: list[Record]
    total_pages: int = 1
    total: int | None = None
    page: int | None = None


@dataclass(frozen=True, slots=True)
class BulkReply:
    message: str
    modified: int = 0


@dataclass(frozen=True, slots=True)
class ImportSummary:
    """Server verdict for a batch create, surfaced to the operator as-is."""

    message: str
    created: int = 0
    failed: int = 0
    errors: tuple[dict[str, Any], ...] = field(default_factory=tuple)


class RemoteService(Protocol):
    async def list_records(self, kind: EntityKind, params: ViewParameters) -> RecordPage:
        ...

    async def update_status(self, kind: EntityKind, record_id: str, status: str) -> None:
        ...

    async def bulk_action(self, kind: EntityKind, record_ids: Sequence[str], action: str) -> BulkReply:
        ...

    async def batch_create(self, kind: EntityKind, rows: Sequence["ImportRow"]) -> ImportSummary:
        ...

    async def get_stats(self, kind: EntityKind) -> dict[str, float]:
        ...

    async def delete_record(self, kind: EntityKind, record_id: str) -> None:
        ...

    async def create_record(self, kind: EntityKind, row: "ImportRow") -> Record | None:
        ...

    async def get_analytics(self, period: str) -> dict[str, Any]:
        ...

    async def list_activities(self, limit: int) -> list[dict[str, Any]]:
        ...


async def call_remote(operation: str, awaitable: Awaitable[T]) -> T:
    """Await a remote call, folding every failure into :class:`RemoteError`."""
    try:
        return await awaitable
    except RemoteError:
        metrics.REMOTE_CALL_FAILURES.labels(operation=operation).inc()
        raise
    except Exception as exc:  # noqa: BLE001 - timeouts, transport and server errors are one class here
        metrics.REMOTE_CALL_FAILURES.labels(operation=operation).inc()
        logger.warning("remote call failed", extra={"operation": operation, "error": repr(exc)})
        raise RemoteError(operation, str(exc) or type(exc).__name__) from exc


__all__ = ["BulkReply", "ImportSummary", "RecordPage", "RemoteService", "call_remote"]
