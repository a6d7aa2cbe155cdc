import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from coursedesk.domain.kinds import COURSES, INSTRUCTORS, STUDENTS
from coursedesk.domain.prompts import NoticeLog, StaticConfirmer
from coursedesk.infra.memory import InMemoryRemoteService
from coursedesk.settings import settings

BASE_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
	"""Clock that only moves when a test advances it."""

	def __init__(self, now: datetime = BASE_TIME) -> None:
		self.now = now

	def __call__(self) -> datetime:
		return self.now

	def advance(self, seconds: float) -> datetime:
		self.now = self.now + timedelta(seconds=seconds)
		return self.now


def student_payloads(active: int = 12, banned: int = 13) -> list[dict]:
	"""Interleaved students, oldest first, starting with a banned one."""
	payloads = []
	statuses = ["banned", "active"] * max(active, banned)
	remaining = {"active": active, "banned": banned}
	index = 0
	for status in statuses:
		if remaining[status] == 0:
			continue
		remaining[status] -= 1
		index += 1
		payloads.append(
			{
				"id": f"s{index:02d}",
				"name": f"Student {index:02d}",
				"email": f"student{index:02d}@example.com",
				"status": status,
				"created_at": (BASE_TIME - timedelta(days=30) + timedelta(hours=index)).isoformat(),
			}
		)
	return payloads


def course_payloads() -> list[dict]:
	return [
		{
			"id": "c1",
			"title": "Python Foundations",
			"instructor_name": "Grace Hopper",
			"category": "programming",
			"status": "pending",
			"price": 49,
			"rating": 4.5,
			"enrolled_students": 120,
			"created_at": "2026-01-10T10:00:00Z",
		},
		{
			"id": "c2",
			"title": "Brand Strategy",
			"instructor_name": "Ada Lovelace",
			"category": "marketing",
			"status": "published",
			"price": 99,
			"rating": 4.5,
			"enrolled_students": 80,
			"created_at": "2026-01-12T10:00:00Z",
		},
		{
			"id": "c3",
			"title": "Interface Design",
			"instructor_name": "Grace Hopper",
			"category": "design",
			"status": "draft",
			"price": 0,
			"created_at": "2026-01-14T10:00:00Z",
		},
	]


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Pin the tunables tests rely on, whatever the environment says."""
	original = {
		"undo_window_seconds": settings.undo_window_seconds,
		"default_page_size": settings.default_page_size,
		"max_page_size": settings.max_page_size,
	}
	settings.undo_window_seconds = 5.0
	settings.default_page_size = 10
	settings.max_page_size = 100
	try:
		yield settings
	finally:
		for key, value in original.items():
			setattr(settings, key, value)


@pytest.fixture
def clock() -> FrozenClock:
	return FrozenClock()


@pytest.fixture
def notices() -> NoticeLog:
	return NoticeLog()


@pytest.fixture
def confirm_yes() -> StaticConfirmer:
	return StaticConfirmer(answer=True)


@pytest.fixture
def confirm_no() -> StaticConfirmer:
	return StaticConfirmer(answer=False)


@pytest_asyncio.fixture
async def remote(clock: FrozenClock) -> InMemoryRemoteService:
	service = InMemoryRemoteService(
		clock=clock,
		analytics={
			"today_analytics": {"new_users": 4, "revenue": 1250},
			"pending_approvals": {"count": 3},
			"system_analytics": {"health_score": 97},
		},
		activities=[{"type": "enrollment", "message": f"activity {n}"} for n in range(8)],
	)
	service.seed(STUDENTS, student_payloads())
	service.seed(INSTRUCTORS, [
		{"id": "i1", "name": "Grace Hopper", "email": "grace@example.com", "status": "pending", "total_courses": 2, "rating": 4.8},
		{"id": "i2", "name": "Ada Lovelace", "email": "ada@example.com", "status": "active", "total_courses": 5, "rating": 4.9},
	])
	service.seed(COURSES, course_payloads())
	return service
