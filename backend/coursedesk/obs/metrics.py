"""Central registry for Prometheus metrics used by the consoles."""

from __future__ import annotations

from prometheus_client import Counter, Histogram


TRANSITIONS_TOTAL = Counter(
	"coursedesk_transitions_total",
	"Status transitions requested, by outcome",
	["kind", "label", "outcome"],
)

UNDO_EXPIRED_TOTAL = Counter(
	"coursedesk_undo_expired_total",
	"Undo requests that arrived after the undo window closed",
	["kind"],
)

BULK_ACTIONS_TOTAL = Counter(
	"coursedesk_bulk_actions_total",
	"Bulk actions requested, by outcome",
	["kind", "action", "outcome"],
)

BULK_SELECTION_SIZE = Histogram(
	"coursedesk_bulk_selection_size",
	"Number of records targeted by a bulk action",
	["kind"],
	buckets=(1, 5, 10, 20, 50, 100, 250, 500),
)

IMPORT_ROWS_TOTAL = Counter(
	"coursedesk_import_rows_total",
	"CSV import rows accepted or discarded at parse time",
	["kind", "result"],
)

STALE_RESPONSES_TOTAL = Counter(
	"coursedesk_stale_responses_total",
	"Remote responses discarded because their console context was superseded",
	["operation"],
)

RECORDS_DROPPED_TOTAL = Counter(
	"coursedesk_records_dropped_total",
	"Wire records rejected at the client boundary",
	["kind", "reason"],
)

REMOTE_CALL_LATENCY = Histogram(
	"coursedesk_remote_call_duration_seconds",
	"Remote admin API call latency in seconds",
	["operation"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

REMOTE_CALL_FAILURES = Counter(
	"coursedesk_remote_call_failures_total",
	"Remote admin API calls that failed",
	["operation"],
)


def record_transition(kind: str, label: str, outcome: str) -> None:
	TRANSITIONS_TOTAL.labels(kind=kind, label=label, outcome=outcome).inc()


def record_bulk(kind: str, action: str, outcome: str, size: int | None = None) -> None:
	BULK_ACTIONS_TOTAL.labels(kind=kind, action=action, outcome=outcome).inc()
	if size is not None:
		BULK_SELECTION_SIZE.labels(kind=kind).observe(size)


def record_import_rows(kind: str, accepted: int, discarded: int) -> None:
	if accepted:
		IMPORT_ROWS_TOTAL.labels(kind=kind, result="accepted").inc(accepted)
	if discarded:
		IMPORT_ROWS_TOTAL.labels(kind=kind, result="discarded").inc(discarded)


def record_stale(operation: str) -> None:
	STALE_RESPONSES_TOTAL.labels(operation=operation).inc()
