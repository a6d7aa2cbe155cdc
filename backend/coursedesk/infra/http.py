"""Remote service backed by the admin REST API."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import httpx

from coursedesk.domain.errors import RemoteError, ValidationError
from coursedesk.domain.importer import ImportRow
from coursedesk.domain.kinds import EntityKind
from coursedesk.domain.records import Record
from coursedesk.domain.service import BulkReply, ImportSummary, RecordPage, RemoteService
from coursedesk.domain.view import ViewParameters, to_query
from coursedesk.obs import metrics
from coursedesk.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class KindRoutes:
    collection: str
    stats: str
    item: str
    bulk: str
    ids_field: str
    batch_create: str | None = None
    batch_field: str | None = None
    create: str | None = None


ROUTES: dict[str, KindRoutes] = {
    "students": KindRoutes(
        collection="/admin/users/students",
        stats="/admin/users/students/stats",
        item="/admin/users/{id}",
        bulk="/admin/users/bulk-action",
        ids_field="userIds",
        batch_create="/admin/users/students/bulk-create",
        batch_field="students",
        create="/admin/users/students",
    ),
    "instructors": KindRoutes(
        collection="/admin/instructors",
        stats="/admin/instructors/stats",
        item="/admin/instructors/{id}",
        bulk="/admin/instructors/bulk-action",
        ids_field="instructorIds",
    ),
    "courses": KindRoutes(
        collection="/admin/courses",
        stats="/admin/courses/stats",
        item="/admin/courses/{id}",
        bulk="/admin/courses/bulk-action",
        ids_field="courseIds",
    ),
}


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    headers = {"Accept": "application/json"}
    if settings.api_token:
        headers["Authorization"] = f"Bearer {settings.api_token}"
    return httpx.AsyncClient(
        base_url=settings.api_base_url,
        headers=headers,
        timeout=settings.api_timeout_seconds,
    )


def _int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class HttpRemoteService(RemoteService):
    """Speaks the ``{success, data, pagination, message}`` envelope."""

    http: httpx.AsyncClient

    def _routes(self, kind: EntityKind) -> KindRoutes:
        routes = ROUTES.get(kind.name)
        if routes is None:
            raise ValidationError("kind.unknown", f"No admin routes for '{kind.name}'")
        return routes

    async def _request(self, operation: str, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        started = time.perf_counter()
        try:
            response = await self.http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteError(operation, str(exc) or type(exc).__name__) from exc
        finally:
            metrics.REMOTE_CALL_LATENCY.labels(operation=operation).observe(time.perf_counter() - started)
        try:
            payload = response.json()
        except ValueError:
            payload = None
        message = payload.get("message") if isinstance(payload, Mapping) else None
        if response.is_error:
            raise RemoteError(
                operation,
                message or f"HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if not isinstance(payload, dict):
            raise RemoteError(operation, "response is not a JSON object", status_code=response.status_code)
        if payload.get("success") is False:
            raise RemoteError(operation, message or "request was not successful", status_code=response.status_code)
        logger.debug("remote call ok", extra={"operation": operation, "status_code": response.status_code})
        return payload

    async def list_records(self, kind: EntityKind, params: ViewParameters) -> RecordPage:
        routes = self._routes(kind)
        payload = await self._request("list_records", "GET", routes.collection, params=to_query(params))
        rows = payload.get("data")
        if rows is None:
            rows = payload.get(kind.name)
        if not isinstance(rows, list):
            raise RemoteError("list_records", "response has no record list")
        pagination = payload.get("pagination") or {}
        total = pagination.get("total")
        return RecordPage(
            records=kind.parse_records([row for row in rows if isinstance(row, Mapping)]),
            total_pages=max(1, _int(pagination.get("totalPages"), 1)),
            total=_int(total, 0) if total is not None else None,
            page=_int(pagination.get("page"), params.page),
        )

    async def update_status(self, kind: EntityKind, record_id: str, status: str) -> None:
        path = self._routes(kind).item.format(id=record_id) + "/status"
        await self._request("update_status", "PUT", path, json={"status": status})

    async def bulk_action(self, kind: EntityKind, record_ids: Sequence[str], action: str) -> BulkReply:
        routes = self._routes(kind)
        body = {routes.ids_field: list(record_ids), "action": action}
        payload = await self._request("bulk_action", "POST", routes.bulk, json=body)
        return BulkReply(message=str(payload.get("message") or ""), modified=_int(payload.get("modifiedCount"), 0))

    async def batch_create(self, kind: EntityKind, rows: Sequence[ImportRow]) -> ImportSummary:
        routes = self._routes(kind)
        if routes.batch_create is None or routes.batch_field is None:
            raise ValidationError("import.unsupported_kind", f"{kind.name} cannot be imported from CSV")
        body = {routes.batch_field: [row.as_payload() for row in rows]}
        payload = await self._request("batch_create", "POST", routes.batch_create, json=body)
        results = payload.get("results") or {}
        errors = results.get("errors") or []
        return ImportSummary(
            message=str(payload.get("message") or ""),
            created=_int(results.get("success"), 0),
            failed=_int(results.get("failed"), 0),
            errors=tuple(error for error in errors if isinstance(error, dict)),
        )

    async def get_stats(self, kind: EntityKind) -> dict[str, float]:
        payload = await self._request("get_stats", "GET", self._routes(kind).stats)
        data = payload.get("data")
        return dict(data) if isinstance(data, Mapping) else {}

    async def delete_record(self, kind: EntityKind, record_id: str) -> None:
        await self._request("delete_record", "DELETE", self._routes(kind).item.format(id=record_id))

    async def create_record(self, kind: EntityKind, row: ImportRow) -> Record | None:
        routes = self._routes(kind)
        if routes.create is None:
            raise ValidationError("create.unsupported_kind", f"{kind.name} cannot be created from the console")
        payload = await self._request("create_record", "POST", routes.create, json=row.as_payload())
        data = payload.get("data")
        return kind.parse_record(data) if isinstance(data, Mapping) else None

    async def get_analytics(self, period: str) -> dict[str, Any]:
        payload = await self._request("get_analytics", "GET", "/admin/analytics", params={"period": period})
        data = payload.get("data")
        return dict(data) if isinstance(data, Mapping) else {}

    async def list_activities(self, limit: int) -> list[dict[str, Any]]:
        payload = await self._request("list_activities", "GET", "/admin/activities", params={"limit": limit})
        activities = payload.get("activities", payload.get("data"))
        if not isinstance(activities, list):
            return []
        return [dict(item) for item in activities if isinstance(item, Mapping)]


__all__ = ["HttpRemoteService", "KindRoutes", "ROUTES", "build_http_client"]
