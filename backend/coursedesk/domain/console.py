"""One admin console: a collection of records of a single entity kind.

The console composes independent state slices (view parameters, record
cache, selection, undo, stats, pagination meta) and wires the transition
engine and the bulk orchestrator to them. It never renders anything; a UI
or CLI drives it and reads :meth:`CollectionConsole.view`.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Iterable, Literal, Mapping, Optional, Sequence
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from coursedesk.obs import metrics
from coursedesk.obs.logging import bind_context, reset_context
from coursedesk.settings import Settings, settings as default_settings

from .bulk import BulkActionOrchestrator, BulkResult
from .errors import RemoteError, StaleResponseError, ValidationError
from .exporting import export_filename, render_csv
from .importer import ImportReport, ImportRow, run_import
from .kinds import BulkActionSpec, EntityKind
from .lifecycle import Generation, InFlightRegistry
from .prompts import Confirmer, LoggingNoticeSink, Notice, NoticeSink, StaticConfirmer
from .records import Record, RecordStore
from .selection import Selection
from .service import ImportSummary, RecordPage, RemoteService, call_remote
from .stats import StatsAggregator, StatsSnapshot
from .transitions import Clock, StatusTransitionEngine, TransitionOutcome, describe, utcnow
from .undo import RecordsDeleted, TransitionStarted
from .view import ViewParameters, clamp_page, derive, page_window

logger = logging.getLogger(__name__)

ConsoleMode = Literal["server", "client"]


@dataclass(frozen=True, slots=True)
class ConsoleView:
    records: list[Record]
    page: int
    page_size: int
    total_pages: int
    total_matching: int
    source: ConsoleMode
    pages: list[int] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ExportFile:
    filename: str
    content: str
    count: int


@dataclass(slots=True)
class _PageMeta:
    total_pages: int = 1
    total: Optional[int] = None


def _log_context(method):
    """Bind ``console_id``/``entity_kind`` to log lines emitted while ``method`` runs."""

    @functools.wraps(method)
    async def wrapper(self: "CollectionConsole", *args: Any, **kwargs: Any) -> Any:
        tokens = bind_context(console_id=self.console_id, entity_kind=self.kind.name)
        try:
            return await method(self, *args, **kwargs)
        finally:
            reset_context(tokens)

    return wrapper


class CollectionConsole:
    def __init__(
        self,
        kind: EntityKind,
        remote: RemoteService,
        *,
        confirmer: Optional[Confirmer] = None,
        notices: Optional[NoticeSink] = None,
        mode: ConsoleMode = "server",
        settings: Optional[Settings] = None,
        clock: Clock = utcnow,
        console_id: Optional[str] = None,
    ) -> None:
        if mode not in ("server", "client"):
            raise ValidationError("console.unknown_mode", f"Unknown console mode '{mode}'")
        self.console_id = console_id or f"{kind.name}-{uuid4().hex[:8]}"
        self.kind = kind
        self.remote = remote
        self.mode: ConsoleMode = mode
        self.settings = settings or default_settings
        self.clock = clock
        self.confirmer = confirmer or StaticConfirmer()
        self.notices = notices or LoggingNoticeSink()

        self.params = ViewParameters(page_size=self.settings.clamp_page_size(self.settings.default_page_size))
        self.store = RecordStore()
        self.selection = Selection()
        self.generation = Generation()
        self.inflight = InFlightRegistry()
        self._list_requests = Generation()
        self._meta = _PageMeta()

        self.stats = StatsAggregator(kind, remote, self.generation, clock)
        self.engine = StatusTransitionEngine(
            kind=kind,
            remote=remote,
            store=self.store,
            confirmer=self.confirmer,
            notices=self.notices,
            inflight=self.inflight,
            generation=self.generation,
            undo_window=timedelta(seconds=self.settings.undo_window_seconds),
            clock=clock,
            after_change=self._after_change,
        )
        self.bulk = BulkActionOrchestrator(
            kind=kind,
            remote=remote,
            confirmer=self.confirmer,
            notices=self.notices,
            inflight=self.inflight,
            generation=self.generation,
            after_apply=self._after_bulk,
            reload=self._reload_after_bulk,
        )

    # lifecycle

    @property
    def mounted(self) -> bool:
        return not self.generation.closed

    @_log_context
    async def mount(self) -> ConsoleView:
        if self.generation.closed:
            self.generation.reopen()
            self._list_requests.reopen()
        view = await self.reload()
        await self.refresh_stats()
        return view

    def unmount(self) -> None:
        """Discard every response still in flight for this console."""
        self.generation.close()
        self._list_requests.close()
        self.engine.pending = None
        logger.debug("console unmounted", extra={"kind": self.kind.name})

    # loading

    @_log_context
    async def reload(self) -> ConsoleView:
        """Fetch records for the current parameters.

        Only the newest request may apply; a response that loses the race
        is dropped. Failures keep the previous cache and surface a notice.
        """
        token = self._list_requests.advance()
        mounted_at = self.generation.value
        try:
            if self.mode == "server":
                await self._load_page(token, mounted_at)
            else:
                await self._load_all(token, mounted_at)
        except StaleResponseError:
            return self.view()
        except RemoteError as exc:
            logger.warning("record fetch failed", extra={"kind": self.kind.name, "error": exc.detail})
            self.notices.publish(Notice("error", f"Failed to fetch {self.kind.noun}s"))
        return self.view()

    def _ensure_current(self, token: int, mounted_at: int) -> None:
        self.generation.ensure_current(mounted_at, "list_records")
        self._list_requests.ensure_current(token, "list_records")

    async def _fetch(self, params: ViewParameters) -> RecordPage:
        return await call_remote("list_records", self.remote.list_records(self.kind, params))

    async def _load_page(self, token: int, mounted_at: int) -> None:
        page = await self._fetch(self.params)
        self._ensure_current(token, mounted_at)
        total_pages = max(1, page.total_pages)
        if self.params.page > total_pages:
            # past the end after a narrowing change: clamp and refetch once
            self.params = self.params.with_changes(page=clamp_page(self.params.page, total_pages))
            page = await self._fetch(self.params)
            self._ensure_current(token, mounted_at)
            total_pages = max(1, page.total_pages)
        self.store.replace(page.records)
        self._meta = _PageMeta(total_pages=total_pages, total=page.total)
        self.stats.observe_page(page.records)

    async def _load_all(self, token: int, mounted_at: int) -> None:
        batch = ViewParameters(page=1, page_size=self.settings.max_page_size)
        records: list[Record] = []
        while True:
            page = await self._fetch(batch)
            self._ensure_current(token, mounted_at)
            records.extend(page.records)
            if not page.records or batch.page >= page.total_pages:
                break
            batch = batch.with_changes(page=batch.page + 1)
        self.store.replace(records)
        self._meta = _PageMeta(total_pages=1, total=len(records))
        self.params = self.params.with_changes(page=clamp_page(self.params.page, self._derive().total_pages))
        self.stats.observe_page(self.view().records)

    async def refresh_stats(self) -> StatsSnapshot:
        return await self.stats.refresh()

    # view parameters

    def _derive(self):
        return derive(self.store.records(), self.params, self.kind)

    def _check_params(self, params: ViewParameters) -> None:
        self.kind.sort_spec(params.sort_key)
        if params.status_active:
            self.kind.require_status(params.status_filter)
        if params.category_active:
            if self.kind.category_field is None:
                raise ValidationError("view.category_unsupported", f"{self.kind.name} cannot be filtered by category")
            if self.kind.categories and params.category_filter not in self.kind.categories:
                raise ValidationError(
                    "view.unknown_category", f"'{params.category_filter}' is not a {self.kind.noun} category"
                )

    @_log_context
    async def update_params(self, **changes: Any) -> ConsoleView:
        if "page_size" in changes:
            page_size = self.settings.clamp_page_size(int(changes["page_size"]))
            choices = self.settings.page_size_choices
            if choices and page_size not in choices:
                raise ValidationError(
                    "view.page_size_unsupported",
                    f"Page size must be one of {', '.join(str(choice) for choice in choices)}",
                )
            changes["page_size"] = page_size
        updated = self.params.with_changes(**changes)
        self._check_params(updated)
        narrowed = self.params.narrows(updated)
        self.params = updated
        if self.mode == "server":
            return await self.reload()
        if narrowed or "page" in changes:
            self.params = self.params.with_changes(page=clamp_page(self.params.page, self._derive().total_pages))
        return self.view()

    async def go_to_page(self, page: int) -> ConsoleView:
        return await self.update_params(page=max(1, page))

    def view(self) -> ConsoleView:
        if self.mode == "client":
            derived = self._derive()
            return ConsoleView(
                records=derived.slice,
                page=derived.page,
                page_size=derived.page_size,
                total_pages=derived.total_pages,
                total_matching=derived.total_matching,
                source="client",
                pages=page_window(derived.total_pages, derived.page),
            )
        total_pages = max(1, self._meta.total_pages)
        records = self.store.records()
        return ConsoleView(
            records=records,
            page=self.params.page,
            page_size=self.params.page_size,
            total_pages=total_pages,
            total_matching=self._meta.total if self._meta.total is not None else len(records),
            source="server",
            pages=page_window(total_pages, self.params.page),
        )

    # selection

    def toggle(self, record_id: str) -> bool:
        return self.selection.toggle(record_id)

    def select_page(self) -> None:
        self.selection.select_page(record.id for record in self.view().records)

    def choose_action(self, action: Optional[str]) -> None:
        if action:
            self.kind.bulk_spec(action)
        self.selection.choose_action(action)

    def clear_selection(self) -> None:
        self.selection.clear()

    # mutations

    @_log_context
    async def change_status(self, record_id: str, target: str, *, label: str | None = None) -> TransitionOutcome:
        return await self.engine.transition(record_id, target, label=label)

    @_log_context
    async def undo(self, token: str | None = None) -> TransitionOutcome:
        return await self.engine.undo(token)

    def undo_remaining(self) -> float:
        pending = self.engine.live_undo()
        return pending.remaining_seconds(self.clock()) if pending else 0.0

    @_log_context
    async def bulk_apply(self, action: str | None = None) -> BulkResult:
        return await self.bulk.bulk_apply(self.selection, action)

    @_log_context
    async def delete_record(self, record_id: str) -> bool:
        record = self.store.require(record_id)
        with self.inflight.hold([record_id], owner=f"delete:{record_id}"):
            prompt = (
                f"Are you sure you want to permanently delete {describe(self.kind, record)}? "
                "This action cannot be undone."
            )
            if not await self.confirmer.confirm(prompt):
                return False
            token = self.generation.value
            try:
                await call_remote("delete_record", self.remote.delete_record(self.kind, record_id))
            except RemoteError as exc:
                if not self.generation.is_current(token):
                    metrics.record_stale("delete_record")
                    return False
                logger.warning(
                    "delete failed", extra={"kind": self.kind.name, "record_id": record_id, "error": exc.detail}
                )
                self.notices.publish(Notice("error", f"Failed to delete {self.kind.noun}"))
                raise
            if not self.generation.is_current(token):
                metrics.record_stale("delete_record")
                return False
        self._forget([record_id])
        self.notices.publish(Notice("success", f"{self.kind.noun.capitalize()} deleted successfully"))
        logger.info("record deleted", extra={"kind": self.kind.name, "record_id": record_id})
        await self.refresh_stats()
        return True

    @_log_context
    async def import_csv(self, text: str) -> Optional[tuple[ImportReport, ImportSummary]]:
        """Parse and submit a CSV file; ``None`` when the console went away meanwhile."""
        token = self.generation.value
        try:
            report, summary = await run_import(self.remote, self.kind, text)
        except ValidationError as exc:
            self.notices.publish(Notice("error", exc.detail))
            raise
        except RemoteError as exc:
            if not self.generation.is_current(token):
                metrics.record_stale("batch_create")
                return None
            message = exc.detail if exc.status_code is not None else f"Failed to import {self.kind.noun}s"
            self.notices.publish(Notice("error", message))
            raise
        if not self.generation.is_current(token):
            metrics.record_stale("batch_create")
            return None
        self.notices.publish(Notice("success", summary.message))
        await self.reload()
        await self.refresh_stats()
        return report, summary

    @_log_context
    async def create_record(self, fields: Mapping[str, Any]) -> Optional[Record]:
        """Create one record from the add form; ``None`` when the response went stale."""
        if not self.kind.supports_import:
            raise ValidationError("create.unsupported_kind", f"{self.kind.name} cannot be created from the console")
        try:
            row = ImportRow.model_validate({key: value for key, value in fields.items() if value not in (None, "")})
        except PydanticValidationError as exc:
            self.notices.publish(Notice("error", "Name and email are required"))
            raise ValidationError("create.invalid", str(exc)) from exc
        token = self.generation.value
        try:
            record = await call_remote("create_record", self.remote.create_record(self.kind, row))
        except RemoteError as exc:
            if not self.generation.is_current(token):
                metrics.record_stale("create_record")
                return None
            logger.warning("create failed", extra={"kind": self.kind.name, "error": exc.detail})
            message = exc.detail if exc.status_code is not None else f"Failed to create {self.kind.noun}"
            self.notices.publish(Notice("error", message))
            raise
        if not self.generation.is_current(token):
            metrics.record_stale("create_record")
            return None
        self.notices.publish(Notice("success", f"{self.kind.noun.capitalize()} created successfully"))
        logger.info("record created", extra={"kind": self.kind.name, "record_id": record.id if record else None})
        await self.reload()
        await self.refresh_stats()
        return record

    def export_selection(self, today: date | None = None) -> ExportFile:
        records = [record for record in map(self.store.get, self.selection) if record is not None]
        if not records:
            raise ValidationError("export.selection_empty", f"Select at least one loaded {self.kind.noun} to export")
        today = today or self.clock().date()
        return ExportFile(export_filename(self.kind, today), render_csv(self.kind, records), len(records))

    # hooks

    def _forget(self, record_ids: Iterable[str]) -> None:
        removed = self.store.remove(record_ids)
        self.selection.forget_deleted(removed)
        self.engine.dispatch(RecordsDeleted(frozenset(removed)))

    async def _after_change(self) -> None:
        await self.refresh_stats()

    def _after_bulk(self, record_ids: Sequence[str], spec: BulkActionSpec) -> None:
        # the reload that follows replaces the cache; only undo state needs invalidating here
        if spec.destructive:
            self.selection.forget_deleted(record_ids)
            self.engine.dispatch(RecordsDeleted(frozenset(record_ids)))
        elif spec.target_status is not None:
            for record_id in record_ids:
                self.engine.dispatch(TransitionStarted(record_id))

    async def _reload_after_bulk(self) -> None:
        await self.reload()
        await self.refresh_stats()


__all__ = ["CollectionConsole", "ConsoleMode", "ConsoleView", "ExportFile"]
