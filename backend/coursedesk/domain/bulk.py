"""Bulk actions over a selection, sent as one batched remote call.

The batch is all-or-nothing from the console's point of view: the remote
call either succeeds for the whole selection or the selection and records
stay exactly as they were. No per-record partial success is reported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Literal, Optional, Sequence

from coursedesk.obs import metrics

from .errors import RemoteError, TransitionInFlightError, ValidationError
from .kinds import BulkActionSpec, EntityKind
from .lifecycle import Generation, InFlightRegistry
from .prompts import Confirmer, Notice, NoticeSink, humanize, past_tense
from .selection import Selection
from .service import RemoteService, call_remote

logger = logging.getLogger(__name__)

BulkStatus = Literal["applied", "declined", "stale"]


@dataclass(frozen=True, slots=True)
class BulkResult:
    status: BulkStatus
    action: str
    record_ids: tuple[str, ...]
    message: Optional[str] = None
    modified: int = 0


@dataclass
class BulkActionOrchestrator:
    kind: EntityKind
    remote: RemoteService
    confirmer: Confirmer
    notices: NoticeSink
    inflight: InFlightRegistry = field(default_factory=InFlightRegistry)
    generation: Generation = field(default_factory=Generation)
    after_apply: Optional[Callable[[Sequence[str], BulkActionSpec], None]] = None
    reload: Optional[Callable[[], Awaitable[None]]] = None

    async def bulk_apply(self, selection: Selection, action: str | None = None) -> BulkResult:
        action = action if action is not None else selection.action
        if not action or not selection:
            code = "bulk.action_required" if not action else "bulk.selection_empty"
            raise ValidationError(code, f"Please select an action and at least one {self.kind.noun}")
        spec = self.kind.bulk_spec(action)
        ids = selection.snapshot()
        busy = self.inflight.busy(ids)
        if busy:
            metrics.record_bulk(self.kind.name, action, "rejected")
            raise TransitionInFlightError(busy, f"Wait for pending changes on {len(busy)} {self.kind.noun}(s)")

        with self.inflight.hold(ids, owner=f"bulk:{action}"):
            prompt = f"Are you sure you want to {humanize(action)} {len(ids)} {self.kind.noun}(s)?"
            if not await self.confirmer.confirm(prompt):
                metrics.record_bulk(self.kind.name, action, "declined")
                return BulkResult("declined", action, tuple(ids))
            token = self.generation.value
            try:
                reply = await call_remote("bulk_action", self.remote.bulk_action(self.kind, ids, action))
            except RemoteError as exc:
                if not self.generation.is_current(token):
                    return self._stale(action, ids)
                metrics.record_bulk(self.kind.name, action, "failed", size=len(ids))
                logger.warning(
                    "bulk action failed",
                    extra={"kind": self.kind.name, "action": action, "count": len(ids), "error": exc.detail},
                )
                self.notices.publish(Notice("error", "Failed to perform bulk action"))
                raise
            if not self.generation.is_current(token):
                return self._stale(action, ids)

        selection.clear()
        if self.after_apply is not None:
            self.after_apply(ids, spec)
        if spec.target_status is not None or spec.destructive:
            message = f"Successfully {past_tense(action)} {len(ids)} {self.kind.noun}(s)"
        else:
            message = reply.message or f"Successfully {past_tense(action)} {len(ids)} {self.kind.noun}(s)"
        self.notices.publish(Notice("success", message))
        metrics.record_bulk(self.kind.name, action, "applied", size=len(ids))
        logger.info(
            "bulk action applied",
            extra={"kind": self.kind.name, "action": action, "count": len(ids), "modified": reply.modified},
        )
        if self.reload is not None:
            await self.reload()
        return BulkResult("applied", action, tuple(ids), reply.message, reply.modified)

    def _stale(self, action: str, ids: Sequence[str]) -> BulkResult:
        metrics.record_stale("bulk_action")
        metrics.record_bulk(self.kind.name, action, "stale")
        return BulkResult("stale", action, tuple(ids))


__all__ = ["BulkActionOrchestrator", "BulkResult"]
