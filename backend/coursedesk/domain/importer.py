"""Tolerant CSV import that turns loosely formatted text into a batch-create request."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict

from coursedesk.obs import metrics

from .errors import ValidationError
from .kinds import EntityKind
from .service import ImportSummary, RemoteService, call_remote

logger = logging.getLogger(__name__)


class ImportRow(BaseModel):
    """One row of an import file; exists only between parsing and submission."""

    model_config = ConfigDict(frozen=True)

    name: str
    email: str
    password: Optional[str] = None
    phone: Optional[str] = None

    def as_payload(self) -> dict[str, str]:
        return self.model_dump(exclude_none=True)


@dataclass(frozen=True, slots=True)
class ImportReport:
    rows: list[ImportRow] = field(default_factory=list)
    discarded: int = 0
    header: tuple[str, ...] = ()


def parse_import_report(text: str) -> ImportReport:
    """Parse ``text`` and count the rows that were dropped on the way.

    Rows whose field count differs from the header, or whose name or email is
    blank after trimming, are discarded without aborting the batch. Email
    syntax is left to the server.
    """
    reader = csv.reader(io.StringIO(text))
    try:
        raw_header = next(reader)
    except StopIteration:
        return ImportReport()
    header = tuple(column.lstrip("\ufeff").strip().lower() for column in raw_header)

    rows: list[ImportRow] = []
    discarded = 0
    for fields in reader:
        if not fields:
            continue
        if len(fields) != len(header):
            discarded += 1
            continue
        mapped = {column: value.strip() for column, value in zip(header, fields)}
        name = mapped.get("name", "")
        email = mapped.get("email", "")
        if not name or not email:
            discarded += 1
            continue
        rows.append(
            ImportRow(
                name=name,
                email=email,
                password=mapped.get("password") or None,
                phone=mapped.get("phone") or None,
            )
        )
    return ImportReport(rows=rows, discarded=discarded, header=header)


def parse_import(text: str) -> list[ImportRow]:
    return parse_import_report(text).rows


def csv_template(kind: EntityKind) -> str:
    if kind.import_template is None:
        raise ValidationError("import.unsupported_kind", f"{kind.name} cannot be imported from CSV")
    return ",".join(kind.import_template) + "\n"


async def submit_import(remote: RemoteService, kind: EntityKind, rows: Sequence[ImportRow]) -> ImportSummary:
    if not kind.supports_import:
        raise ValidationError("import.unsupported_kind", f"{kind.name} cannot be imported from CSV")
    if not rows:
        raise ValidationError("import.no_valid_rows", "No valid data found in CSV")
    summary = await call_remote("batch_create", remote.batch_create(kind, list(rows)))
    logger.info(
        "import submitted",
        extra={"kind": kind.name, "rows": len(rows), "created": summary.created, "failed": summary.failed},
    )
    return summary


async def run_import(remote: RemoteService, kind: EntityKind, text: str) -> tuple[ImportReport, ImportSummary]:
    report = parse_import_report(text)
    metrics.record_import_rows(kind.name, accepted=len(report.rows), discarded=report.discarded)
    summary = await submit_import(remote, kind, report.rows)
    return report, summary


__all__ = [
    "ImportReport",
    "ImportRow",
    "csv_template",
    "parse_import",
    "parse_import_report",
    "run_import",
    "submit_import",
]
