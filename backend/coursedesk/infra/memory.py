"""In-process admin API for development and tests."""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Callable, Iterable, Mapping, Sequence, Union

from coursedesk.domain.errors import RemoteError, ValidationError
from coursedesk.domain.importer import ImportRow
from coursedesk.domain.kinds import KINDS, EntityKind
from coursedesk.domain.records import Record
from coursedesk.domain.service import BulkReply, ImportSummary, RecordPage, RemoteService
from coursedesk.domain.stats import compute_stats
from coursedesk.domain.transitions import utcnow
from coursedesk.domain.view import ViewParameters, derive

logger = logging.getLogger(__name__)

Seed = Union[Record, Mapping[str, Any]]


class InMemoryRemoteService(RemoteService):
    """Keeps one table per entity kind and answers like the REST API would.

    Records handed out are copies, so a console mutating its cache never
    changes server state. ``fail_next`` and ``latency`` make failure and
    interleaving reproducible.
    """

    def __init__(
        self,
        *,
        latency: float = 0.0,
        analytics: Mapping[str, Any] | None = None,
        activities: Iterable[Mapping[str, Any]] = (),
        clock: Callable[[], Any] = utcnow,
    ) -> None:
        self.latency = latency
        self.analytics: dict[str, Any] = dict(analytics or {})
        self.activities: list[dict[str, Any]] = [dict(item) for item in activities]
        self.clock = clock
        self.calls: list[tuple[str, str]] = []
        self._tables: dict[str, dict[str, Record]] = {name: {} for name in KINDS}
        self._failures: dict[str, list[int | None]] = {}
        self._sequence = itertools.count(1)

    # test helpers

    def seed(self, kind: EntityKind, items: Iterable[Seed]) -> list[Record]:
        table = self._tables.setdefault(kind.name, {})
        stored: list[Record] = []
        for item in items:
            record = item.model_copy(deep=True) if isinstance(item, Record) else kind.parse_record(item)
            if record is None:
                continue
            table[record.id] = record
            stored.append(record)
        return stored

    def records(self, kind: EntityKind) -> list[Record]:
        return [record.model_copy(deep=True) for record in self._tables.get(kind.name, {}).values()]

    def get(self, kind: EntityKind, record_id: str) -> Record | None:
        record = self._tables.get(kind.name, {}).get(record_id)
        return record.model_copy(deep=True) if record is not None else None

    def fail_next(self, operation: str, times: int = 1, *, status_code: int | None = 500) -> None:
        self._failures.setdefault(operation, []).extend([status_code] * times)

    def calls_to(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    async def _enter(self, operation: str, target: str = "") -> None:
        self.calls.append((operation, target))
        if self.latency:
            await asyncio.sleep(self.latency)
        pending = self._failures.get(operation)
        if pending:
            status_code = pending.pop(0)
            logger.debug("injected failure", extra={"operation": operation, "status_code": status_code})
            raise RemoteError(operation, "injected failure", status_code=status_code)

    def _table(self, kind: EntityKind) -> dict[str, Record]:
        return self._tables.setdefault(kind.name, {})

    def _require(self, operation: str, kind: EntityKind, record_id: str) -> Record:
        record = self._table(kind).get(record_id)
        if record is None:
            raise RemoteError(operation, f"{kind.noun.capitalize()} not found", status_code=404)
        return record

    # RemoteService

    async def list_records(self, kind: EntityKind, params: ViewParameters) -> RecordPage:
        await self._enter("list_records", kind.name)
        try:
            derived = derive(list(self._table(kind).values()), params, kind)
        except ValidationError as exc:
            raise RemoteError("list_records", exc.detail, status_code=400) from exc
        return RecordPage(
            records=[record.model_copy(deep=True) for record in derived.slice],
            total_pages=derived.total_pages,
            total=derived.total_matching,
            page=params.page,
        )

    async def update_status(self, kind: EntityKind, record_id: str, status: str) -> None:
        await self._enter("update_status", record_id)
        if not kind.has_status(status):
            raise RemoteError("update_status", f"Invalid status '{status}'", status_code=400)
        self._require("update_status", kind, record_id).status = status

    async def bulk_action(self, kind: EntityKind, record_ids: Sequence[str], action: str) -> BulkReply:
        await self._enter("bulk_action", action)
        if not record_ids:
            raise RemoteError("bulk_action", f"No {kind.name} selected", status_code=400)
        spec = kind.bulk_actions.get(action)
        if spec is None:
            raise RemoteError("bulk_action", "Invalid action", status_code=400)
        table = self._table(kind)
        present = [record_id for record_id in record_ids if record_id in table]
        if spec.destructive:
            for record_id in present:
                del table[record_id]
            return BulkReply("Bulk deletion successful", modified=len(present))
        if spec.target_status is not None:
            for record_id in present:
                table[record_id].status = spec.target_status
            return BulkReply("Bulk status update successful", modified=len(present))
        if action == "send_email":
            return BulkReply(f"Email queued for {len(record_ids)} {kind.name}")
        return BulkReply("Action processed")

    async def batch_create(self, kind: EntityKind, rows: Sequence[ImportRow]) -> ImportSummary:
        await self._enter("batch_create", kind.name)
        if not kind.supports_import:
            raise RemoteError("batch_create", f"{kind.name} cannot be bulk created", status_code=404)
        if not rows:
            raise RemoteError("batch_create", f"No {kind.noun} data provided", status_code=400)
        table = self._table(kind)
        emails = {str(record.email).casefold() for record in table.values() if record.email}
        created = 0
        errors: list[dict[str, Any]] = []
        for row in rows:
            if not row.name or not row.email or not row.password:
                errors.append({"email": row.email, "error": "Missing required fields"})
                continue
            if row.email.casefold() in emails:
                errors.append({"email": row.email, "error": "Email already exists"})
                continue
            self._insert(kind, row)
            emails.add(row.email.casefold())
            created += 1
        failed = len(errors)
        return ImportSummary(
            message=f"Import processed: {created} created, {failed} failed",
            created=created,
            failed=failed,
            errors=tuple(errors),
        )

    def _insert(self, kind: EntityKind, row: ImportRow) -> Record:
        record_id = f"{kind.noun}-{next(self._sequence)}"
        extras = {"phone": row.phone} if row.phone else {}
        record = Record(
            id=record_id,
            status=kind.initial_status,
            name=row.name,
            email=row.email,
            created_at=self.clock(),
            **extras,
        )
        self._table(kind)[record_id] = record
        return record

    async def create_record(self, kind: EntityKind, row: ImportRow) -> Record:
        await self._enter("create_record", kind.name)
        if not kind.supports_import:
            raise RemoteError("create_record", f"{kind.name} cannot be created here", status_code=404)
        if not row.name or not row.email or not row.password:
            raise RemoteError("create_record", "Name, email and password are required", status_code=400)
        taken = {str(record.email).casefold() for record in self._table(kind).values() if record.email}
        if row.email.casefold() in taken:
            raise RemoteError("create_record", "Email already exists", status_code=400)
        return self._insert(kind, row).model_copy(deep=True)

    async def get_stats(self, kind: EntityKind) -> dict[str, float]:
        await self._enter("get_stats", kind.name)
        return {key: float(value) for key, value in compute_stats(self._table(kind).values(), kind).items()}

    async def delete_record(self, kind: EntityKind, record_id: str) -> None:
        await self._enter("delete_record", record_id)
        self._require("delete_record", kind, record_id)
        del self._table(kind)[record_id]

    async def get_analytics(self, period: str) -> dict[str, Any]:
        await self._enter("get_analytics", period)
        return dict(self.analytics)

    async def list_activities(self, limit: int) -> list[dict[str, Any]]:
        await self._enter("list_activities", str(limit))
        return [dict(item) for item in self.activities[:limit]]


__all__ = ["InMemoryRemoteService"]
