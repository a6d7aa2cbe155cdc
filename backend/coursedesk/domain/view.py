"""View parameters and the search -> filter -> sort -> paginate pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .kinds import EntityKind, SortSpec
from .records import Record, as_utc

_UNFILTERED = ("", "all")


class DateRange(BaseModel):
    """Inclusive bounds on ``created_at``; either side may be open."""

    model_config = ConfigDict(frozen=True)

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @field_validator("start", "end", mode="after")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None

    @model_validator(mode="after")
    def _ordered(self) -> "DateRange":
        if self.start and self.end and self.start > self.end:
            raise ValueError("date range start is after its end")
        return self

    def contains(self, moment: datetime | None) -> bool:
        if moment is None:
            return False
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment > self.end:
            return False
        return True


class ViewParameters(BaseModel):
    """User-controlled query knobs for one console."""

    model_config = ConfigDict(frozen=True)

    search_text: str = ""
    status_filter: str = "all"
    category_filter: Optional[str] = None
    sort_key: str = "newest"
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1)
    date_range: Optional[DateRange] = None

    def with_changes(self, **changes: Any) -> "ViewParameters":
        unknown = set(changes) - set(type(self).model_fields)
        if unknown:
            raise ValidationError("view.unknown_parameter", f"Unknown view parameter(s): {', '.join(sorted(unknown))}")
        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(changes)
        try:
            return ViewParameters.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError("view.invalid", str(exc)) from exc

    def narrows(self, other: "ViewParameters") -> bool:
        """True when moving from ``self`` to ``other`` could shrink the page count."""
        return (
            self.search_text != other.search_text
            or self.status_filter != other.status_filter
            or self.category_filter != other.category_filter
            or self.date_range != other.date_range
            or self.page_size != other.page_size
        )

    @property
    def status_active(self) -> bool:
        return self.status_filter not in _UNFILTERED

    @property
    def category_active(self) -> bool:
        return self.category_filter is not None and self.category_filter not in _UNFILTERED


@dataclass(frozen=True, slots=True)
class DerivedView:
    slice: list[Record] = field(default_factory=list)
    total_matching: int = 0
    total_pages: int = 1
    page: int = 1
    page_size: int = 20

    @property
    def is_past_end(self) -> bool:
        return self.page > self.total_pages


def search_records(records: Sequence[Record], text: str, fields: Sequence[str]) -> list[Record]:
    needle = text.strip().casefold()
    if not needle:
        return list(records)
    matched: list[Record] = []
    for record in records:
        for name in fields:
            value = record.value(name)
            if value is not None and needle in str(value).casefold():
                matched.append(record)
                break
    return matched


def filter_status(records: Sequence[Record], params: ViewParameters, kind: EntityKind) -> list[Record]:
    if not params.status_active:
        return list(records)
    wanted = kind.require_status(params.status_filter)
    return [record for record in records if record.status == wanted]


def filter_category(records: Sequence[Record], params: ViewParameters, kind: EntityKind) -> list[Record]:
    if not params.category_active:
        return list(records)
    if kind.category_field is None:
        raise ValidationError("view.category_unsupported", f"{kind.name} cannot be filtered by category")
    wanted = str(params.category_filter)
    return [record for record in records if record.value(kind.category_field) == wanted]


def filter_dates(records: Sequence[Record], date_range: DateRange | None) -> list[Record]:
    if date_range is None or (date_range.start is None and date_range.end is None):
        return list(records)
    return [record for record in records if date_range.contains(record.created_at)]


def _sort_key(spec: SortSpec):
    if spec.mode == "time":
        return lambda record: record.moment(spec.field)
    if spec.mode == "metric":
        return lambda record: record.metric(spec.field)
    return lambda record: str(record.value(spec.field) or "").casefold()


def sort_records(records: Sequence[Record], spec: SortSpec) -> list[Record]:
    # sorted() is stable for reverse=True as well: equal keys keep input order
    return sorted(records, key=_sort_key(spec), reverse=spec.descending)


def count_pages(total_matching: int, page_size: int) -> int:
    return max(1, math.ceil(total_matching / page_size))


def clamp_page(page: int, total_pages: int) -> int:
    return min(max(1, page), max(1, total_pages))


def paginate(records: Sequence[Record], page: int, page_size: int) -> DerivedView:
    total = len(records)
    start = (page - 1) * page_size
    return DerivedView(
        slice=list(records[start : start + page_size]),
        total_matching=total,
        total_pages=count_pages(total, page_size),
        page=page,
        page_size=page_size,
    )


def derive(records: Sequence[Record], params: ViewParameters, kind: EntityKind) -> DerivedView:
    """Pure derivation of the visible slice; never mutates ``records``."""
    spec = kind.sort_spec(params.sort_key)
    matching = search_records(records, params.search_text, kind.search_fields)
    matching = filter_status(matching, params, kind)
    matching = filter_category(matching, params, kind)
    matching = filter_dates(matching, params.date_range)
    return paginate(sort_records(matching, spec), params.page, params.page_size)


def page_window(total_pages: int, page: int, width: int = 5) -> list[int]:
    """Page numbers for a pager strip, centred on ``page`` where possible."""
    total_pages = max(1, total_pages)
    width = max(1, min(width, total_pages))
    page = clamp_page(page, total_pages)
    first = max(1, min(page - width // 2, total_pages - width + 1))
    return list(range(first, first + width))


def to_query(params: ViewParameters) -> dict[str, Any]:
    """Wire query for server-side pagination."""
    query: dict[str, Any] = {
        "page": params.page,
        "limit": params.page_size,
        "sort": params.sort_key,
    }
    if params.status_active:
        query["status"] = params.status_filter
    search = params.search_text.strip()
    if search:
        query["search"] = search
    if params.category_active:
        query["category"] = params.category_filter
    if params.date_range is not None:
        if params.date_range.start is not None:
            query["from"] = params.date_range.start.isoformat()
        if params.date_range.end is not None:
            query["to"] = params.date_range.end.isoformat()
    return query


__all__ = [
    "DateRange",
    "DerivedView",
    "ViewParameters",
    "clamp_page",
    "count_pages",
    "derive",
    "page_window",
    "paginate",
    "search_records",
    "sort_records",
    "to_query",
]
