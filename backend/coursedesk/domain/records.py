"""Record model and the per-console record cache."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from .errors import ValidationError

EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def as_utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc) if value.tzinfo else value.replace(tzinfo=timezone.utc)


class Record(BaseModel):
    """A student, instructor or course as last seen from the remote API.

    Only the identity, status and timestamps are typed; display attributes
    (counts, monetary totals, instructor names) ride along as extras.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    status: str
    name: str = ""
    email: Optional[str] = None
    created_at: Optional[datetime] = None
    last_active_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("name", mode="before")
    @classmethod
    def _coerce_name(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("created_at", "last_active_at", mode="after")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None

    def value(self, field: str) -> Any:
        if field in type(self).model_fields:
            return getattr(self, field)
        return (self.model_extra or {}).get(field)

    def metric(self, field: str) -> float:
        raw = self.value(field)
        if raw is None or isinstance(raw, bool):
            return 0.0
        try:
            return float(raw)
        except (TypeError, ValueError):
            return 0.0

    def moment(self, field: str) -> datetime:
        raw = self.value(field)
        if isinstance(raw, datetime):
            return as_utc(raw)
        if isinstance(raw, str):
            try:
                return as_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))
            except ValueError:
                return EPOCH
        return EPOCH


class RecordStore:
    """Ordered in-memory cache of the records a console has loaded."""

    def __init__(self, records: Iterable[Record] = ()) -> None:
        self._records: dict[str, Record] = {}
        self.replace(records)

    def replace(self, records: Iterable[Record]) -> None:
        self._records = {record.id: record for record in records}

    def extend(self, records: Iterable[Record]) -> None:
        for record in records:
            self._records[record.id] = record

    def get(self, record_id: str) -> Record | None:
        return self._records.get(record_id)

    def require(self, record_id: str) -> Record:
        record = self._records.get(record_id)
        if record is None:
            raise ValidationError("record.not_found", f"Record {record_id} is not loaded")
        return record

    def set_status(self, record_id: str, status: str) -> str:
        record = self.require(record_id)
        previous = record.status
        record.status = status
        return previous

    def remove(self, record_ids: Iterable[str]) -> list[str]:
        removed: list[str] = []
        for record_id in record_ids:
            if self._records.pop(record_id, None) is not None:
                removed.append(record_id)
        return removed

    def ids(self) -> list[str]:
        return list(self._records)

    def records(self) -> list[Record]:
        return list(self._records.values())

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def __iter__(self) -> Iterator[Record]:
        return iter(list(self._records.values()))
