"""Selection state for one console: chosen record ids plus the pending bulk action."""

from __future__ import annotations

from typing import Iterable, Iterator, Optional


class Selection:
    """Ids survive filtering and paging; only deletion prunes them."""

    def __init__(self) -> None:
        self._ids: dict[str, None] = {}
        self.action: Optional[str] = None

    def add(self, record_id: str) -> None:
        self._ids[record_id] = None

    def discard(self, record_id: str) -> None:
        self._ids.pop(record_id, None)

    def toggle(self, record_id: str) -> bool:
        if record_id in self._ids:
            self.discard(record_id)
            return False
        self.add(record_id)
        return True

    def select_page(self, visible_ids: Iterable[str]) -> None:
        """Select-all checkbox: deselect the page when it is already fully selected."""
        visible = list(visible_ids)
        if visible and all(record_id in self._ids for record_id in visible):
            for record_id in visible:
                self.discard(record_id)
            return
        for record_id in visible:
            self.add(record_id)

    def choose_action(self, action: Optional[str]) -> None:
        self.action = action or None

    def forget_deleted(self, record_ids: Iterable[str]) -> list[str]:
        removed = [record_id for record_id in record_ids if record_id in self._ids]
        for record_id in removed:
            self.discard(record_id)
        return removed

    def clear(self) -> None:
        self._ids.clear()
        self.action = None

    def snapshot(self) -> list[str]:
        return list(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._ids))

    def __bool__(self) -> bool:
        return bool(self._ids)
