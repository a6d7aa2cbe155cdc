"""CSV export of cached records."""

from __future__ import annotations

import csv
import io
from datetime import date, datetime
from typing import Any, Iterable

from .kinds import EntityKind
from .records import Record


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return ";".join(str(item) for item in value)
    return str(value)


def render_csv(kind: EntityKind, records: Iterable[Record]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([title for _, title in kind.export_columns])
    for record in records:
        writer.writerow([_cell(record.value(column)) for column, _ in kind.export_columns])
    return buffer.getvalue()


def export_filename(kind: EntityKind, today: date) -> str:
    return f"{kind.name}_export_{today.isoformat()}.csv"


__all__ = ["export_filename", "render_csv"]
