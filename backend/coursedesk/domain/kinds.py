"""Entity-kind descriptors that parameterise the collection engine."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping

from pydantic import ValidationError as PydanticValidationError

from coursedesk.obs import metrics

from .errors import ValidationError
from .records import Record

logger = logging.getLogger(__name__)

SortMode = Literal["time", "text", "metric"]


@dataclass(frozen=True, slots=True)
class TransitionRule:
    """Operator edge into a target status."""

    label: str
    sources: frozenset[str]


@dataclass(frozen=True, slots=True)
class SortSpec:
    field: str
    mode: SortMode
    descending: bool = False


@dataclass(frozen=True, slots=True)
class BulkActionSpec:
    target_status: str | None = None
    destructive: bool = False


@dataclass(frozen=True, eq=False)
class EntityKind:
    """Everything the engine needs to know about one entity kind."""

    name: str
    noun: str
    statuses: tuple[str, ...]
    initial_status: str
    transitions: Mapping[str, TransitionRule]
    search_fields: tuple[str, ...]
    sort_keys: Mapping[str, SortSpec]
    bulk_actions: Mapping[str, BulkActionSpec]
    field_aliases: Mapping[str, str] = field(default_factory=dict)
    category_field: str | None = None
    categories: tuple[str, ...] = ()
    import_template: tuple[str, ...] | None = None
    export_columns: tuple[tuple[str, str], ...] = ()

    @property
    def supports_import(self) -> bool:
        return self.import_template is not None

    def has_status(self, status: str) -> bool:
        return status in self.statuses

    def require_status(self, status: str) -> str:
        if status not in self.statuses:
            raise ValidationError("status.unknown", f"'{status}' is not a valid {self.noun} status")
        return status

    def can_transition(self, source: str, target: str) -> bool:
        rule = self.transitions.get(target)
        return rule is not None and source in rule.sources

    def label_for(self, target: str) -> str:
        rule = self.transitions.get(target)
        return rule.label if rule else "update"

    def outbound(self, status: str) -> list[str]:
        return [target for target, rule in self.transitions.items() if status in rule.sources]

    def sort_spec(self, key: str) -> SortSpec:
        spec = self.sort_keys.get(key)
        if spec is None:
            raise ValidationError("view.unknown_sort", f"Unknown sort '{key}' for {self.name}")
        return spec

    def bulk_spec(self, action: str) -> BulkActionSpec:
        spec = self.bulk_actions.get(action)
        if spec is None:
            raise ValidationError("bulk.unknown_action", f"'{action}' is not available for {self.name}")
        return spec

    def parse_record(self, payload: Mapping[str, Any]) -> Record | None:
        """Build a record from a wire payload, or drop it when it breaks the status enum."""
        data = {key: value for key, value in payload.items() if not str(key).startswith("_")}
        if "id" not in data and "_id" in payload:
            data["id"] = payload["_id"]
        for wire_name, field_name in self.field_aliases.items():
            if wire_name in data:
                value = data.pop(wire_name)
                if data.get(field_name) is None:
                    data[field_name] = value
        status = data.get("status")
        if status not in self.statuses:
            reason = "missing_status" if status in (None, "") else "unknown_status"
            metrics.RECORDS_DROPPED_TOTAL.labels(kind=self.name, reason=reason).inc()
            logger.warning(
                "dropping record with invalid status",
                extra={"kind": self.name, "record_id": data.get("id"), "status": status},
            )
            return None
        try:
            return Record.model_validate(data)
        except PydanticValidationError:
            metrics.RECORDS_DROPPED_TOTAL.labels(kind=self.name, reason="malformed").inc()
            logger.warning("dropping malformed record", extra={"kind": self.name, "record_id": data.get("id")})
            return None

    def parse_records(self, payloads: list[Mapping[str, Any]]) -> list[Record]:
        records = (self.parse_record(payload) for payload in payloads)
        return [record for record in records if record is not None]


_BASE_SORTS: dict[str, SortSpec] = {
    "newest": SortSpec("created_at", "time", descending=True),
    "oldest": SortSpec("created_at", "time"),
    "name_asc": SortSpec("name", "text"),
    "name_desc": SortSpec("name", "text", descending=True),
}

_PEOPLE_EXPORT = (
    ("id", "ID"),
    ("name", "Name"),
    ("email", "Email"),
    ("status", "Status"),
    ("created_at", "Created At"),
)


STUDENTS = EntityKind(
    name="students",
    noun="student",
    statuses=("active", "inactive", "banned", "pending"),
    initial_status="active",
    transitions={
        "active": TransitionRule("activate", frozenset({"inactive", "banned", "pending"})),
        "inactive": TransitionRule("deactivate", frozenset({"active", "pending"})),
        "banned": TransitionRule("ban", frozenset({"active", "inactive", "pending"})),
        "pending": TransitionRule("mark_pending", frozenset({"inactive"})),
    },
    search_fields=("name", "email"),
    sort_keys={
        **_BASE_SORTS,
        "activity": SortSpec("last_active_at", "time", descending=True),
    },
    bulk_actions={
        "activate": BulkActionSpec("active"),
        "deactivate": BulkActionSpec("inactive"),
        "ban": BulkActionSpec("banned"),
        "delete": BulkActionSpec(destructive=True),
        "send_email": BulkActionSpec(),
        "export": BulkActionSpec(),
    },
    field_aliases={
        "last_active": "last_active_at",
        "last_login": "last_active_at",
        "enrolled_courses": "courses",
        "completed_courses": "completed",
    },
    import_template=("name", "email", "password", "phone"),
    export_columns=_PEOPLE_EXPORT,
)

INSTRUCTORS = EntityKind(
    name="instructors",
    noun="instructor",
    statuses=("pending", "active", "suspended", "rejected"),
    initial_status="pending",
    transitions={
        "active": TransitionRule("approve", frozenset({"pending", "rejected", "suspended"})),
        "suspended": TransitionRule("suspend", frozenset({"active"})),
        "rejected": TransitionRule("reject", frozenset({"pending", "active", "suspended"})),
        "pending": TransitionRule("reopen", frozenset({"rejected", "suspended"})),
    },
    search_fields=("name", "email"),
    sort_keys={
        **_BASE_SORTS,
        "rating": SortSpec("rating", "metric", descending=True),
        "courses": SortSpec("courses", "metric", descending=True),
        "students": SortSpec("students", "metric", descending=True),
        "revenue": SortSpec("revenue", "metric", descending=True),
    },
    bulk_actions={
        "approve": BulkActionSpec("active"),
        "reject": BulkActionSpec("rejected"),
        "suspend": BulkActionSpec("suspended"),
        "activate": BulkActionSpec("active"),
        "delete": BulkActionSpec(destructive=True),
        "send_email": BulkActionSpec(),
        "export": BulkActionSpec(),
    },
    field_aliases={
        "last_active": "last_active_at",
        "last_login": "last_active_at",
        "total_courses": "courses",
        "total_students": "students",
        "total_revenue": "revenue",
        "total_reviews": "reviews",
    },
    export_columns=_PEOPLE_EXPORT,
)

COURSES = EntityKind(
    name="courses",
    noun="course",
    statuses=("draft", "pending", "published", "rejected"),
    initial_status="pending",
    transitions={
        "published": TransitionRule("publish", frozenset({"draft", "pending", "rejected"})),
        "draft": TransitionRule("unpublish", frozenset({"published", "pending", "rejected"})),
        "pending": TransitionRule("submit", frozenset({"draft", "rejected"})),
        "rejected": TransitionRule("reject", frozenset({"pending", "published", "draft"})),
    },
    search_fields=("name", "instructor_name", "description", "category"),
    sort_keys={
        **_BASE_SORTS,
        "title_asc": _BASE_SORTS["name_asc"],
        "title_desc": _BASE_SORTS["name_desc"],
        "rating": SortSpec("rating", "metric", descending=True),
        "students": SortSpec("students", "metric", descending=True),
        "revenue": SortSpec("revenue", "metric", descending=True),
        "price_high": SortSpec("price", "metric", descending=True),
        "price_low": SortSpec("price", "metric"),
    },
    bulk_actions={
        "publish": BulkActionSpec("published"),
        "unpublish": BulkActionSpec("draft"),
        "approve": BulkActionSpec("published"),
        "reject": BulkActionSpec("rejected"),
        "delete": BulkActionSpec(destructive=True),
        "export": BulkActionSpec(),
    },
    field_aliases={
        "title": "name",
        "enrolled_students": "students",
        "total_revenue": "revenue",
    },
    category_field="category",
    categories=("programming", "design", "business", "marketing", "personal_development"),
    export_columns=(
        ("id", "Course ID"),
        ("name", "Title"),
        ("instructor_name", "Instructor"),
        ("category", "Category"),
        ("price", "Price"),
        ("status", "Status"),
        ("students", "Enrolled Students"),
        ("rating", "Rating"),
        ("created_at", "Created At"),
    ),
)

KINDS: dict[str, EntityKind] = {kind.name: kind for kind in (STUDENTS, INSTRUCTORS, COURSES)}


def get_kind(name: str) -> EntityKind:
    try:
        return KINDS[name]
    except KeyError as exc:
        raise ValidationError("kind.unknown", f"Unknown entity kind '{name}'") from exc


__all__ = [
    "BulkActionSpec",
    "COURSES",
    "EntityKind",
    "INSTRUCTORS",
    "KINDS",
    "STUDENTS",
    "SortSpec",
    "TransitionRule",
    "get_kind",
]
