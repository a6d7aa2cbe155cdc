"""Guards that keep overlapping remote calls from corrupting console state.

Everything runs on one event loop, so a check followed by a claim with no
``await`` in between is atomic.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from coursedesk.obs import metrics

from .errors import StaleResponseError, TransitionInFlightError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Generation:
    """Monotonic token; responses issued under an older value are stale."""

    value: int = 0
    closed: bool = False

    def advance(self) -> int:
        self.value += 1
        return self.value

    def close(self) -> None:
        self.closed = True
        self.advance()

    def reopen(self) -> int:
        self.closed = False
        return self.advance()

    def is_current(self, token: int) -> bool:
        return not self.closed and token == self.value

    def ensure_current(self, token: int, operation: str) -> None:
        if not self.is_current(token):
            metrics.record_stale(operation)
            logger.debug("discarding stale response", extra={"operation": operation, "token": token})
            raise StaleResponseError(operation)


@dataclass(slots=True)
class InFlightRegistry:
    """Tracks which record ids have a mutation in flight, and who owns it."""

    _owners: dict[str, str] = field(default_factory=dict)

    def busy(self, record_ids: Iterable[str]) -> frozenset[str]:
        return frozenset(record_id for record_id in record_ids if record_id in self._owners)

    def owner(self, record_id: str) -> str | None:
        return self._owners.get(record_id)

    def claim(self, record_ids: Iterable[str], owner: str) -> list[str]:
        ids = list(dict.fromkeys(record_ids))
        conflicts = self.busy(ids)
        if conflicts:
            raise TransitionInFlightError(conflicts)
        for record_id in ids:
            self._owners[record_id] = owner
        return ids

    def release(self, record_ids: Iterable[str]) -> None:
        for record_id in record_ids:
            self._owners.pop(record_id, None)

    @contextmanager
    def hold(self, record_ids: Iterable[str], owner: str) -> Iterator[list[str]]:
        claimed = self.claim(record_ids, owner)
        try:
            yield claimed
        finally:
            self.release(claimed)

    def __len__(self) -> int:
        return len(self._owners)
