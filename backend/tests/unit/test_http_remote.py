"""Unit tests for the REST adapter, driven through httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest
from prometheus_client import REGISTRY

from conftest import student_payloads
from coursedesk.domain.errors import RemoteError, ValidationError
from coursedesk.domain.importer import ImportRow
from coursedesk.domain.kinds import COURSES, STUDENTS
from coursedesk.domain.view import ViewParameters
from coursedesk.infra.http import HttpRemoteService, build_http_client
from coursedesk.settings import settings


class Recorder:
    def __init__(self, responder) -> None:
        self.responder = responder
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> dict:
        return json.loads(self.last.content)


def _service(responder) -> tuple[HttpRemoteService, Recorder]:
    recorder = Recorder(responder)
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder), base_url="http://api.test/api")
    return HttpRemoteService(client), recorder


def _ok(**body):
    return lambda request: httpx.Response(200, json={"success": True, **body})


@pytest.mark.asyncio
async def test_list_records_sends_query_and_reads_pagination() -> None:
    rows = student_payloads(active=2, banned=1)
    service, recorder = _service(_ok(data=rows, pagination={"page": 2, "totalPages": 4, "total": 31}))
    params = ViewParameters(search_text=" ada ", status_filter="banned", page=2, page_size=10)

    page = await service.list_records(STUDENTS, params)

    assert recorder.last.url.path == "/api/admin/users/students"
    query = dict(recorder.last.url.params)
    assert query == {"page": "2", "limit": "10", "sort": "newest", "status": "banned", "search": "ada"}
    assert [record.id for record in page.records] == ["s01", "s02", "s03"]
    assert (page.page, page.total_pages, page.total) == (2, 4, 31)


@pytest.mark.asyncio
async def test_list_records_accepts_kind_keyed_payload() -> None:
    service, _ = _service(_ok(courses=[{"id": "c1", "title": "T", "status": "draft"}]))

    page = await service.list_records(COURSES, ViewParameters())

    assert [record.id for record in page.records] == ["c1"]
    assert page.total_pages == 1
    assert page.total is None


@pytest.mark.asyncio
async def test_missing_record_list_is_an_error() -> None:
    service, _ = _service(_ok(message="nothing here"))
    with pytest.raises(RemoteError) as exc:
        await service.list_records(STUDENTS, ViewParameters())
    assert exc.value.code == "remote.list_records_failed"


@pytest.mark.asyncio
async def test_update_status_puts_to_item_route() -> None:
    service, recorder = _service(_ok())

    await service.update_status(COURSES, "c9", "published")

    assert recorder.last.method == "PUT"
    assert recorder.last.url.path == "/api/admin/courses/c9/status"
    assert recorder.last_json() == {"status": "published"}


@pytest.mark.asyncio
async def test_bulk_action_uses_kind_specific_ids_field() -> None:
    service, recorder = _service(_ok(message="Bulk status update successful", modifiedCount=2))

    reply = await service.bulk_action(STUDENTS, ["s1", "s2"], "ban")

    assert recorder.last.url.path == "/api/admin/users/bulk-action"
    assert recorder.last_json() == {"userIds": ["s1", "s2"], "action": "ban"}
    assert (reply.message, reply.modified) == ("Bulk status update successful", 2)

    await service.bulk_action(COURSES, ["c1"], "publish")
    assert recorder.last_json() == {"courseIds": ["c1"], "action": "publish"}


@pytest.mark.asyncio
async def test_batch_create_reads_results_block() -> None:
    service, recorder = _service(
        _ok(
            message="Import processed: 1 created, 1 failed",
            results={"success": 1, "failed": 1, "errors": [{"email": "x@y", "error": "Email already exists"}, "junk"]},
        )
    )

    summary = await service.batch_create(STUDENTS, [ImportRow(name="Ada", email="ada@x.com", password="pw")])

    assert recorder.last.url.path == "/api/admin/users/students/bulk-create"
    assert recorder.last_json() == {"students": [{"name": "Ada", "email": "ada@x.com", "password": "pw"}]}
    assert (summary.created, summary.failed) == (1, 1)
    assert summary.errors == ({"email": "x@y", "error": "Email already exists"},)


@pytest.mark.asyncio
async def test_batch_create_unsupported_for_courses() -> None:
    service, recorder = _service(_ok())
    with pytest.raises(ValidationError):
        await service.batch_create(COURSES, [ImportRow(name="x", email="y")])
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_success_false_becomes_remote_error() -> None:
    service, _ = _service(lambda request: httpx.Response(200, json={"success": False, "message": "Invalid action"}))
    with pytest.raises(RemoteError) as exc:
        await service.bulk_action(STUDENTS, ["s1"], "teleport")
    assert exc.value.detail == "Invalid action"
    assert exc.value.status_code == 200


@pytest.mark.asyncio
async def test_http_error_keeps_status_and_message() -> None:
    service, _ = _service(lambda request: httpx.Response(404, json={"success": False, "message": "User not found"}))
    with pytest.raises(RemoteError) as exc:
        await service.delete_record(STUDENTS, "missing")
    assert exc.value.status_code == 404
    assert exc.value.detail == "User not found"


@pytest.mark.asyncio
async def test_http_error_without_body_uses_status_line() -> None:
    service, _ = _service(lambda request: httpx.Response(502, text="bad gateway"))
    with pytest.raises(RemoteError) as exc:
        await service.get_stats(STUDENTS)
    assert exc.value.detail == "HTTP 502"


@pytest.mark.asyncio
async def test_transport_failure_becomes_remote_error() -> None:
    def explode(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    service, _ = _service(explode)
    before = REGISTRY.get_sample_value("coursedesk_remote_call_duration_seconds_count", {"operation": "get_analytics"}) or 0

    with pytest.raises(RemoteError) as exc:
        await service.get_analytics("7d")

    assert exc.value.status_code is None
    assert "connection refused" in exc.value.detail
    after = REGISTRY.get_sample_value("coursedesk_remote_call_duration_seconds_count", {"operation": "get_analytics"})
    assert after == before + 1


@pytest.mark.asyncio
async def test_dashboard_endpoints() -> None:
    def responder(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/analytics"):
            return httpx.Response(200, json={"success": True, "data": {"system_analytics": {"health_score": 99}}})
        return httpx.Response(200, json={"success": True, "activities": [{"id": 1}, "noise", {"id": 2}]})

    service, recorder = _service(responder)

    analytics = await service.get_analytics("90d")
    assert recorder.last.url.params["period"] == "90d"
    assert analytics == {"system_analytics": {"health_score": 99}}

    activities = await service.list_activities(5)
    assert recorder.last.url.params["limit"] == "5"
    assert activities == [{"id": 1}, {"id": 2}]


@pytest.mark.asyncio
async def test_build_http_client_applies_settings() -> None:
    configured = settings.model_copy(
        update={"api_base_url": "https://admin.example.com/api", "api_token": "tok", "api_timeout_seconds": 3.0}
    )
    client = build_http_client(configured)
    try:
        assert str(client.base_url) == "https://admin.example.com/api/"
        assert client.headers["Authorization"] == "Bearer tok"
        assert client.headers["Accept"] == "application/json"
        assert client.timeout.connect == 3.0
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_build_http_client_without_token() -> None:
    client = build_http_client(settings.model_copy(update={"api_token": None}))
    try:
        assert "Authorization" not in client.headers
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_create_record_posts_form_to_collection() -> None:
    created = {"id": "u-9", "name": "Nia", "email": "nia@x.com", "status": "active", "password_hash": "x"}
    service, recorder = _service(_ok(message="Student created successfully", data=created))

    record = await service.create_record(STUDENTS, ImportRow(name="Nia", email="nia@x.com", password="pw"))

    assert recorder.last.method == "POST"
    assert recorder.last.url.path == "/api/admin/users/students"
    assert recorder.last_json() == {"name": "Nia", "email": "nia@x.com", "password": "pw"}
    assert (record.id, record.status) == ("u-9", "active")


@pytest.mark.asyncio
async def test_create_record_rejection_keeps_server_message() -> None:
    service, _ = _service(lambda request: httpx.Response(400, json={"success": False, "message": "Email already exists"}))
    with pytest.raises(RemoteError) as exc:
        await service.create_record(STUDENTS, ImportRow(name="Nia", email="nia@x.com", password="pw"))
    assert (exc.value.status_code, exc.value.detail) == (400, "Email already exists")


@pytest.mark.asyncio
async def test_create_record_unsupported_for_courses() -> None:
    service, recorder = _service(_ok())
    with pytest.raises(ValidationError):
        await service.create_record(COURSES, ImportRow(name="x", email="y"))
    assert recorder.requests == []
