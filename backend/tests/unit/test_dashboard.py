"""Unit tests for the operator dashboard overview."""

from __future__ import annotations

import asyncio

import pytest

from coursedesk.domain.dashboard import DashboardOverview, QuickStats, quick_stats_from
from coursedesk.domain.errors import ValidationError
from coursedesk.settings import settings


@pytest.mark.asyncio
async def test_load_derives_quick_stats_and_activities(remote, notices) -> None:
    overview = DashboardOverview(remote, notices)
    stats = await overview.load("7d")

    assert stats == QuickStats(today_users=4, pending_approvals=3, system_health=97, revenue_today=1250)
    assert overview.period == "7d"
    assert len(overview.activities) == overview.settings.activities_limit
    assert ("get_analytics", "7d") in remote.calls
    assert notices.notices == []


@pytest.mark.asyncio
async def test_unknown_period_is_rejected(remote, notices) -> None:
    overview = DashboardOverview(remote, notices)
    with pytest.raises(ValidationError) as exc:
        await overview.load("2w")
    assert exc.value.code == "dashboard.unknown_period"
    assert remote.calls == []


def test_quick_stats_defaults() -> None:
    assert quick_stats_from({}) == QuickStats(0, 0, 100, 0)
    assert quick_stats_from({"system_analytics": {"health_score": 0}}).system_health == 100
    assert quick_stats_from({"today_analytics": "oops"}).today_users == 0


@pytest.mark.asyncio
async def test_analytics_failure_publishes_notice(remote, notices) -> None:
    remote.fail_next("get_analytics", status_code=500)
    overview = DashboardOverview(remote, notices)

    stats = await overview.load()

    assert notices.messages("error") == ["Failed to load analytics"]
    assert stats.system_health == 100
    assert overview.activities


@pytest.mark.asyncio
async def test_unauthorised_analytics_failure_is_quiet(remote, notices) -> None:
    remote.fail_next("get_analytics", status_code=401)
    overview = DashboardOverview(remote, notices)

    await overview.load()

    assert notices.notices == []


@pytest.mark.asyncio
async def test_activity_failures_are_only_logged(remote, notices) -> None:
    remote.fail_next("list_activities")
    overview = DashboardOverview(remote, notices)

    stats = await overview.load()

    assert stats.pending_approvals == 3
    assert overview.activities == []
    assert notices.notices == []


@pytest.mark.asyncio
async def test_manual_refresh_confirms(remote, notices) -> None:
    overview = DashboardOverview(remote, notices)
    await overview.refresh()
    assert notices.last.message == "Dashboard refreshed"


@pytest.mark.asyncio
async def test_close_discards_late_responses(remote, notices) -> None:
    remote.latency = 0.01
    overview = DashboardOverview(remote, notices)
    task = asyncio.create_task(overview.load())
    await asyncio.sleep(0)
    overview.close()

    await task

    assert overview.analytics == {}
    assert overview.activities == []


@pytest.mark.asyncio
async def test_auto_refresh_runs_until_stopped(remote, notices) -> None:
    fast = settings.model_copy(update={"dashboard_refresh_seconds": 0.01})
    overview = DashboardOverview(remote, notices, settings=fast)
    stop = asyncio.Event()
    runner = asyncio.create_task(overview.run_auto_refresh(stop))

    await asyncio.sleep(0.05)
    stop.set()
    await asyncio.wait_for(runner, timeout=1)

    assert remote.calls_to("get_analytics") >= 2
    assert overview.quick_stats.today_users == 4
