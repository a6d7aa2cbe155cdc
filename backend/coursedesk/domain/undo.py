"""PendingUndo records and the reducer that owns them.

A console holds at most one PendingUndo. Every change to it goes through
:func:`reduce_undo`, so undo callbacks never capture mutable state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union


@dataclass(frozen=True, slots=True)
class PendingUndo:
    token: str
    record_id: str
    previous_status: str
    applied_status: str
    label: str
    expires_at: datetime

    def is_live(self, now: datetime) -> bool:
        return now < self.expires_at

    def remaining_seconds(self, now: datetime) -> float:
        return max(0.0, (self.expires_at - now).total_seconds())


@dataclass(frozen=True, slots=True)
class UndoArmed:
    pending: PendingUndo


@dataclass(frozen=True, slots=True)
class TransitionStarted:
    record_id: str


@dataclass(frozen=True, slots=True)
class UndoConsumed:
    token: str


@dataclass(frozen=True, slots=True)
class UndoExpired:
    now: datetime


@dataclass(frozen=True, slots=True)
class RecordsDeleted:
    record_ids: frozenset[str]


UndoEvent = Union[UndoArmed, TransitionStarted, UndoConsumed, UndoExpired, RecordsDeleted]


def reduce_undo(state: Optional[PendingUndo], event: UndoEvent) -> Optional[PendingUndo]:
    if isinstance(event, UndoArmed):
        return event.pending
    if state is None:
        return None
    if isinstance(event, TransitionStarted):
        return None if state.record_id == event.record_id else state
    if isinstance(event, UndoConsumed):
        return None if state.token == event.token else state
    if isinstance(event, UndoExpired):
        return state if state.is_live(event.now) else None
    if isinstance(event, RecordsDeleted):
        return None if state.record_id in event.record_ids else state
    raise TypeError(f"unsupported undo event: {event!r}")


__all__ = [
    "PendingUndo",
    "RecordsDeleted",
    "TransitionStarted",
    "UndoArmed",
    "UndoConsumed",
    "UndoEvent",
    "UndoExpired",
    "reduce_undo",
]
