"""Tests for usage accounting and daily limits."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from litestar_agent_workflows.ai.usage import COST_LIMIT_REASON, REQUEST_LIMIT_REASON, UsageTracker
from litestar_agent_workflows.core.models import UsageRecord
from litestar_agent_workflows.store.memory import InMemoryStore


class WallClock:
    """Datetime clock that only moves when told to."""

    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def wall_clock() -> WallClock:
    """Create a controllable wall clock."""
    return WallClock()


@pytest.mark.unit
@pytest.mark.asyncio
class TestUsageLimits:
    """Tests for check_user_limits."""

    async def test_new_user_is_allowed(self, wall_clock: WallClock) -> None:
        """A user without usage is within limits."""
        tracker = UsageTracker(clock=wall_clock)

        check = tracker.check_user_limits("alice")

        assert check.allowed is True
        assert check.reason is None
        assert check.requests == 0

    async def test_request_limit_is_inclusive(self, wall_clock: WallClock) -> None:
        """Reaching the request ceiling blocks the next call."""
        tracker = UsageTracker(daily_request_limit=2, clock=wall_clock)
        await tracker.track_usage("alice", "gemini", tokens=10, cost=0.0)
        assert tracker.check_user_limits("alice").allowed is True

        await tracker.track_usage("alice", "gemini", tokens=10, cost=0.0)
        check = tracker.check_user_limits("alice")

        assert check.allowed is False
        assert check.reason == REQUEST_LIMIT_REASON
        assert check.current == 2
        assert check.limit == 2

    async def test_cost_limit(self, wall_clock: WallClock) -> None:
        """Reaching the cost ceiling blocks the next call."""
        tracker = UsageTracker(daily_cost_limit=1.0, clock=wall_clock)
        await tracker.track_usage("alice", "openai", tokens=1000, cost=0.6)
        await tracker.track_usage("alice", "openai", tokens=1000, cost=0.4)

        check = tracker.check_user_limits("alice")

        assert check.allowed is False
        assert check.reason == COST_LIMIT_REASON
        assert check.current == pytest.approx(1.0)

    async def test_limits_are_per_user(self, wall_clock: WallClock) -> None:
        """One user's usage does not count against another."""
        tracker = UsageTracker(daily_request_limit=1, clock=wall_clock)
        await tracker.track_usage("alice", "gemini", tokens=10, cost=0.0)

        assert tracker.check_user_limits("alice").allowed is False
        assert tracker.check_user_limits("bob").allowed is True

    async def test_window_rolls(self, wall_clock: WallClock) -> None:
        """Usage older than a day no longer counts."""
        tracker = UsageTracker(daily_request_limit=1, clock=wall_clock)
        await tracker.track_usage("alice", "gemini", tokens=10, cost=0.0)

        wall_clock.advance(timedelta(hours=25))

        assert tracker.check_user_limits("alice").allowed is True


@pytest.mark.unit
@pytest.mark.asyncio
class TestUsageStats:
    """Tests for usage statistics."""

    async def test_user_stats(self, wall_clock: WallClock) -> None:
        """User stats aggregate lifetime and daily usage per provider."""
        tracker = UsageTracker(daily_request_limit=100, daily_cost_limit=5.0, clock=wall_clock)
        await tracker.track_usage("alice", "gemini", tokens=100, cost=0.01, prompt_tokens=40, completion_tokens=60)
        wall_clock.advance(timedelta(days=2))
        await tracker.track_usage("alice", "openai", tokens=50, cost=0.02)

        stats = tracker.get_user_stats("alice")

        assert stats["user_id"] == "alice"
        assert stats["total"]["requests"] == 2
        assert stats["total"]["tokens"] == 150
        assert stats["total"]["prompt_tokens"] == 40
        assert set(stats["total"]["providers"]) == {"gemini", "openai"}
        assert stats["daily"]["requests"] == 1
        assert stats["daily"]["cost"] == pytest.approx(0.02)
        assert stats["limits"] == {"requests": 100, "cost": 5.0}

    async def test_unknown_user_stats(self, wall_clock: WallClock) -> None:
        """Stats of an unknown user are zero."""
        stats = UsageTracker(clock=wall_clock).get_user_stats("ghost")

        assert stats["total"]["requests"] == 0
        assert stats["daily"]["requests"] == 0

    async def test_global_stats(self, wall_clock: WallClock) -> None:
        """Global stats cover every user."""
        tracker = UsageTracker(clock=wall_clock)
        await tracker.track_usage("alice", "gemini", tokens=10, cost=0.1)
        await tracker.track_usage("bob", "gemini", tokens=20, cost=0.2)

        stats = tracker.get_global_stats()

        assert stats["requests"] == 2
        assert stats["tokens"] == 30
        assert stats["users"] == 2
        assert stats["providers"]["gemini"]["requests"] == 2


@pytest.mark.unit
@pytest.mark.asyncio
class TestUsagePersistence:
    """Tests for storing and restoring usage records."""

    async def test_records_are_persisted(self, wall_clock: WallClock) -> None:
        """Tracked usage is written to the store."""
        store = InMemoryStore()
        tracker = UsageTracker(store=store, clock=wall_clock)

        record = await tracker.track_usage("alice", "gemini", tokens=10, cost=0.1)

        assert await store.list_usage_records(user_id="alice") == [record]

    async def test_restore_loads_last_day(self, wall_clock: WallClock) -> None:
        """restore loads only the last day of records."""
        store = InMemoryStore()
        await store.save_usage_record(
            UsageRecord(user_id="alice", provider="gemini", tokens=1, cost=0.0, timestamp=wall_clock.now)
        )
        await store.save_usage_record(
            UsageRecord(
                user_id="alice",
                provider="gemini",
                tokens=1,
                cost=0.0,
                timestamp=wall_clock.now - timedelta(days=3),
            )
        )
        tracker = UsageTracker(daily_request_limit=1, store=store, clock=wall_clock)

        assert await tracker.restore() == 1
        assert tracker.check_user_limits("alice").allowed is False

    async def test_restore_without_store(self, wall_clock: WallClock) -> None:
        """Without a store there is nothing to restore."""
        assert await UsageTracker(clock=wall_clock).restore() == 0

    async def test_cleanup_drops_old_records(self, wall_clock: WallClock) -> None:
        """cleanup drops old records from memory and storage, keeping totals."""
        store = InMemoryStore()
        tracker = UsageTracker(store=store, clock=wall_clock)
        await tracker.track_usage("alice", "gemini", tokens=10, cost=0.1)
        wall_clock.advance(timedelta(days=2))
        await tracker.track_usage("alice", "gemini", tokens=10, cost=0.1)

        assert await tracker.cleanup() == 1
        assert len(await store.list_usage_records()) == 1
        assert tracker.get_user_stats("alice")["total"]["requests"] == 2
