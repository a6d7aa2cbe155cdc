"""Operator dashboard: platform analytics, quick stats and recent activity."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from coursedesk.obs import metrics
from coursedesk.settings import Settings, settings as default_settings

from .errors import RemoteError, ValidationError
from .lifecycle import Generation
from .prompts import Notice, NoticeSink
from .service import RemoteService, call_remote

logger = logging.getLogger(__name__)

PERIODS = ("7d", "30d", "90d", "1y")


@dataclass(frozen=True, slots=True)
class QuickStats:
    today_users: float = 0
    pending_approvals: float = 0
    system_health: float = 100
    revenue_today: float = 0


def _lookup(data: Mapping[str, Any], section: str, key: str) -> Any:
    block = data.get(section)
    if isinstance(block, Mapping):
        return block.get(key)
    return None


def _number(value: Any, default: float) -> float:
    # falsy values fall back, so a zero health score reads as the default
    if not value or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def quick_stats_from(analytics: Mapping[str, Any]) -> QuickStats:
    return QuickStats(
        today_users=_number(_lookup(analytics, "today_analytics", "new_users"), 0),
        pending_approvals=_number(_lookup(analytics, "pending_approvals", "count"), 0),
        system_health=_number(_lookup(analytics, "system_analytics", "health_score"), 100),
        revenue_today=_number(_lookup(analytics, "today_analytics", "revenue"), 0),
    )


@dataclass
class DashboardOverview:
    remote: RemoteService
    notices: NoticeSink
    settings: Settings = field(default_factory=lambda: default_settings)
    generation: Generation = field(default_factory=Generation)
    period: str = "30d"
    analytics: dict[str, Any] = field(default_factory=dict)
    activities: list[dict[str, Any]] = field(default_factory=list)

    @property
    def quick_stats(self) -> QuickStats:
        return quick_stats_from(self.analytics)

    async def load(self, period: Optional[str] = None) -> QuickStats:
        period = period or self.period
        if period not in PERIODS:
            raise ValidationError("dashboard.unknown_period", f"Period must be one of {', '.join(PERIODS)}")
        self.period = period
        token = self.generation.value
        await asyncio.gather(self._load_analytics(period, token), self._load_activities(token))
        return self.quick_stats

    async def _load_analytics(self, period: str, token: int) -> None:
        try:
            analytics = await call_remote("get_analytics", self.remote.get_analytics(period))
        except RemoteError as exc:
            if not self.generation.is_current(token):
                return
            logger.warning(
                "analytics load failed",
                extra={"period": period, "status_code": exc.status_code, "error": exc.detail},
            )
            if exc.status_code != 401:
                self.notices.publish(Notice("error", "Failed to load analytics"))
            return
        if not self.generation.is_current(token):
            metrics.record_stale("get_analytics")
            return
        self.analytics = dict(analytics)

    async def _load_activities(self, token: int) -> None:
        try:
            activities = await call_remote(
                "list_activities", self.remote.list_activities(self.settings.activities_limit)
            )
        except RemoteError as exc:
            logger.warning("activities load failed", extra={"error": exc.detail})
            return
        if not self.generation.is_current(token):
            metrics.record_stale("list_activities")
            return
        self.activities = list(activities)

    async def refresh(self) -> QuickStats:
        stats = await self.load()
        self.notices.publish(Notice("success", "Dashboard refreshed"))
        return stats

    async def run_auto_refresh(self, stop: asyncio.Event) -> None:
        """Reload every ``dashboard_refresh_seconds`` until ``stop`` is set."""
        interval = self.settings.dashboard_refresh_seconds
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                if self.generation.closed:
                    return
                await self.load()

    def close(self) -> None:
        self.generation.close()


__all__ = ["DashboardOverview", "PERIODS", "QuickStats", "quick_stats_from"]
