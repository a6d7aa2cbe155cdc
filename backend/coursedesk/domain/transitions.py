"""Guarded status state machine with optimistic apply and one-shot undo."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Literal, Optional
from uuid import uuid4

from coursedesk.obs import metrics

from .errors import RemoteError, TransitionInFlightError, ValidationError
from .kinds import EntityKind
from .lifecycle import Generation, InFlightRegistry
from .prompts import Confirmer, Notice, NoticeSink, humanize, past_tense
from .records import Record, RecordStore
from .service import RemoteService, call_remote
from .undo import (
    PendingUndo,
    TransitionStarted,
    UndoArmed,
    UndoConsumed,
    UndoEvent,
    UndoExpired,
    reduce_undo,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
TransitionStatus = Literal["applied", "declined", "unchanged", "stale", "undone", "expired"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class TransitionOutcome:
    status: TransitionStatus
    record_id: Optional[str]
    previous: Optional[str] = None
    current: Optional[str] = None
    undo_token: Optional[str] = None


def describe(kind: EntityKind, record: Record) -> str:
    return f'{kind.noun} "{record.name or record.id}"'


@dataclass
class StatusTransitionEngine:
    """Applies operator status changes to the records of one console.

    Only one change may be in flight per record id; a second request for the
    same id is rejected with ``TransitionInFlightError`` rather than raced.
    """

    kind: EntityKind
    remote: RemoteService
    store: RecordStore
    confirmer: Confirmer
    notices: NoticeSink
    inflight: InFlightRegistry = field(default_factory=InFlightRegistry)
    generation: Generation = field(default_factory=Generation)
    undo_window: timedelta = timedelta(seconds=5)
    clock: Clock = utcnow
    after_change: Optional[Callable[[], Awaitable[None]]] = None
    pending: Optional[PendingUndo] = None

    def dispatch(self, event: UndoEvent) -> Optional[PendingUndo]:
        self.pending = reduce_undo(self.pending, event)
        return self.pending

    def live_undo(self) -> Optional[PendingUndo]:
        return self.dispatch(UndoExpired(self.clock()))

    async def transition(self, record_id: str, target: str, *, label: str | None = None) -> TransitionOutcome:
        record = self.store.require(record_id)
        self.kind.require_status(target)
        verb = label or self.kind.label_for(target)
        if record.status == target:
            metrics.record_transition(self.kind.name, verb, "unchanged")
            return TransitionOutcome("unchanged", record_id, record.status, record.status)
        if not self.kind.can_transition(record.status, target):
            allowed = ", ".join(self.kind.outbound(record.status)) or "nothing"
            raise ValidationError(
                "transition.not_allowed",
                f"Cannot {humanize(verb)} a {record.status} {self.kind.noun} (allowed: {allowed})",
            )
        with self.inflight.hold([record_id], owner=f"transition:{record_id}"):
            prompt = f"Are you sure you want to {humanize(verb)} {describe(self.kind, record)}?"
            if not await self.confirmer.confirm(prompt):
                metrics.record_transition(self.kind.name, verb, "declined")
                return TransitionOutcome("declined", record_id, record.status, record.status)
            current = self.store.require(record_id)
            if current.status == target:
                metrics.record_transition(self.kind.name, verb, "unchanged")
                return TransitionOutcome("unchanged", record_id, target, target)
            return await self._apply(
                record_id,
                target,
                verb,
                arm_undo=True,
                failure_message=f"Failed to update {self.kind.noun} status",
            )

    async def undo(self, token: str | None = None) -> TransitionOutcome:
        """Revert the last applied transition while its window is open.

        Undo skips the confirmation gate and the edge table: it is a
        compensating write back to the recorded previous status.
        """
        pending = self.pending
        if pending is None or (token is not None and token != pending.token):
            return TransitionOutcome("expired", pending.record_id if pending else None)
        now = self.clock()
        if not pending.is_live(now):
            self.dispatch(UndoExpired(now))
            metrics.UNDO_EXPIRED_TOTAL.labels(kind=self.kind.name).inc()
            logger.info("undo window closed", extra={"record_id": pending.record_id})
            return TransitionOutcome("expired", pending.record_id)
        busy = self.inflight.busy([pending.record_id])
        if busy:
            # the undo stays armed; the caller may retry once the other change settles
            raise TransitionInFlightError(busy)
        self.dispatch(UndoConsumed(pending.token))
        if pending.record_id not in self.store:
            return TransitionOutcome("expired", pending.record_id)
        with self.inflight.hold([pending.record_id], owner=f"undo:{pending.record_id}"):
            return await self._apply(
                pending.record_id,
                pending.previous_status,
                "undo",
                arm_undo=False,
                failure_message="Failed to undo action",
            )

    async def _apply(
        self,
        record_id: str,
        target: str,
        verb: str,
        *,
        arm_undo: bool,
        failure_message: str,
    ) -> TransitionOutcome:
        token = self.generation.value
        previous = self.store.set_status(record_id, target)
        self.dispatch(TransitionStarted(record_id))
        try:
            await call_remote("update_status", self.remote.update_status(self.kind, record_id, target))
        except RemoteError as exc:
            if not self.generation.is_current(token):
                return self._stale(record_id, verb, previous, target)
            if record_id in self.store:
                self.store.set_status(record_id, previous)
            metrics.record_transition(self.kind.name, verb, "rolled_back")
            logger.warning(
                "status change rolled back",
                extra={"kind": self.kind.name, "record_id": record_id, "target": target, "error": exc.detail},
            )
            self.notices.publish(Notice("error", failure_message))
            raise
        if not self.generation.is_current(token):
            return self._stale(record_id, verb, previous, target)

        undo_token: str | None = None
        if arm_undo:
            pending = PendingUndo(
                token=uuid4().hex,
                record_id=record_id,
                previous_status=previous,
                applied_status=target,
                label=verb,
                expires_at=self.clock() + self.undo_window,
            )
            self.dispatch(UndoArmed(pending))
            undo_token = pending.token
            self.notices.publish(
                Notice(
                    "success",
                    f"{self.kind.noun.capitalize()} {past_tense(verb)} successfully",
                    undo_token=pending.token,
                    expires_at=pending.expires_at,
                )
            )
            metrics.record_transition(self.kind.name, verb, "applied")
        else:
            self.notices.publish(Notice("success", "Action undone"))
            metrics.record_transition(self.kind.name, verb, "undone")
        logger.info(
            "status changed",
            extra={"kind": self.kind.name, "record_id": record_id, "from": previous, "to": target, "label": verb},
        )
        if self.after_change is not None:
            await self.after_change()
        return TransitionOutcome(
            "applied" if arm_undo else "undone",
            record_id,
            previous,
            target,
            undo_token=undo_token,
        )

    def _stale(self, record_id: str, verb: str, previous: str, target: str) -> TransitionOutcome:
        metrics.record_stale("update_status")
        metrics.record_transition(self.kind.name, verb, "stale")
        logger.debug("discarding stale status response", extra={"record_id": record_id})
        return TransitionOutcome("stale", record_id, previous, target)


__all__ = ["StatusTransitionEngine", "TransitionOutcome", "describe", "utcnow"]
