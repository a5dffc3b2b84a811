"""Usage accounting and daily per-user limits.

Every successful AI call appends an immutable ``UsageRecord``. Limits are
evaluated over a rolling 24 hour window of those records, so they never need
a reset job.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from litestar_agent_workflows.core.models import UsageRecord, utcnow

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from litestar_agent_workflows.core.protocols import PersistenceStore

__all__ = [
    "COST_LIMIT_REASON",
    "REQUEST_LIMIT_REASON",
    "UsageLimitCheck",
    "UsageStats",
    "UsageTracker",
]

logger = logging.getLogger(__name__)

REQUEST_LIMIT_REASON = "Daily request limit exceeded"
COST_LIMIT_REASON = "Daily cost limit exceeded"

_WINDOW = timedelta(days=1)


@dataclass(frozen=True)
class UsageLimitCheck:
    """Result of ``UsageTracker.check_user_limits``.

    Attributes:
        allowed: Whether the user may make another call.
        reason: Stable reason when not allowed.
        current: Value of the exceeded measure.
        limit: The exceeded ceiling.
        requests: Requests made in the window.
        cost: Dollars spent in the window.
    """

    allowed: bool
    reason: str | None = None
    current: float | None = None
    limit: float | None = None
    requests: int = 0
    cost: float = 0.0


@dataclass
class UsageStats:
    """Aggregated usage of one user, one provider, or everyone."""

    requests: int = 0
    tokens: int = 0
    cost: float = 0.0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    first_request: datetime | None = None
    last_request: datetime | None = None
    providers: dict[str, UsageStats] = field(default_factory=dict)

    def add(self, record: UsageRecord, *, per_provider: bool = True) -> None:
        """Fold ``record`` into the aggregate."""
        self.requests += 1
        self.tokens += record.tokens
        self.cost += record.cost
        self.prompt_tokens += record.prompt_tokens or 0
        self.completion_tokens += record.completion_tokens or 0
        if self.first_request is None or record.timestamp < self.first_request:
            self.first_request = record.timestamp
        if self.last_request is None or record.timestamp > self.last_request:
            self.last_request = record.timestamp
        if per_provider:
            self.providers.setdefault(record.provider, UsageStats()).add(record, per_provider=False)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the aggregate to a dictionary."""
        data: dict[str, Any] = {
            "requests": self.requests,
            "tokens": self.tokens,
            "cost": round(self.cost, 6),
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "first_request": self.first_request.isoformat() if self.first_request else None,
            "last_request": self.last_request.isoformat() if self.last_request else None,
        }
        if self.providers:
            data["providers"] = {name: stats.to_dict() for name, stats in self.providers.items()}
        return data


class UsageTracker:
    """Tracks AI usage per user, per provider and globally.

    Example:
        >>> tracker = UsageTracker(daily_request_limit=1000, daily_cost_limit=10.0)
        >>> await tracker.track_usage("alice", "gemini", tokens=1200, cost=0.0012)
        >>> tracker.check_user_limits("alice").allowed
        True
    """

    def __init__(
        self,
        daily_request_limit: int = 1000,
        daily_cost_limit: float = 10.0,
        *,
        store: PersistenceStore | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the tracker.

        Args:
            daily_request_limit: Requests a user may make in a rolling day.
            daily_cost_limit: Dollars a user may spend in a rolling day.
            store: Optional durable storage for usage records.
            clock: Source of aware UTC datetimes, injectable for tests.
        """
        self.daily_request_limit = daily_request_limit
        self.daily_cost_limit = daily_cost_limit
        self.store = store
        self._clock = clock
        self._records: dict[str, list[UsageRecord]] = defaultdict(list)
        self._totals: dict[str, UsageStats] = defaultdict(UsageStats)
        self._global = UsageStats()

    async def restore(self) -> int:
        """Load the last day of records from the store.

        Returns:
            The number of records loaded.
        """
        if self.store is None:
            return 0
        records = await self.store.list_usage_records(since=self._clock() - _WINDOW)
        self._ingest(records)
        logger.info("Restored %d usage records", len(records))
        return len(records)

    async def track_usage(
        self,
        user_id: str,
        provider: str,
        tokens: int,
        cost: float,
        prompt_tokens: int | None = None,
        completion_tokens: int | None = None,
    ) -> UsageRecord:
        """Record one call and update the aggregates.

        Args:
            user_id: User that made the call.
            provider: Provider that served it.
            tokens: Total tokens used.
            cost: Estimated cost in dollars.
            prompt_tokens: Prompt tokens, when the provider reports them.
            completion_tokens: Completion tokens, when the provider reports them.

        Returns:
            The stored record.
        """
        record = UsageRecord(
            user_id=user_id,
            provider=provider,
            tokens=tokens,
            cost=cost,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            timestamp=self._clock(),
        )
        self._ingest([record])
        if self.store is not None:
            await self.store.save_usage_record(record)
        return record

    def _ingest(self, records: Iterable[UsageRecord]) -> None:
        for record in records:
            self._records[record.user_id].append(record)
            self._totals[record.user_id].add(record)
            self._global.add(record)

    def _window(self, user_id: str) -> list[UsageRecord]:
        cutoff = self._clock() - _WINDOW
        return [record for record in self._records.get(user_id, ()) if record.timestamp > cutoff]

    def check_user_limits(self, user_id: str) -> UsageLimitCheck:
        """Evaluate the daily ceilings of ``user_id``.

        Args:
            user_id: User to check.

        Returns:
            ``allowed=False`` with a stable reason once the user is at or over
            either ceiling, ``allowed=True`` otherwise.
        """
        window = self._window(user_id)
        requests = len(window)
        cost = sum(record.cost for record in window)
        if requests >= self.daily_request_limit:
            return UsageLimitCheck(
                allowed=False,
                reason=REQUEST_LIMIT_REASON,
                current=requests,
                limit=self.daily_request_limit,
                requests=requests,
                cost=cost,
            )
        if cost >= self.daily_cost_limit:
            return UsageLimitCheck(
                allowed=False,
                reason=COST_LIMIT_REASON,
                current=cost,
                limit=self.daily_cost_limit,
                requests=requests,
                cost=cost,
            )
        return UsageLimitCheck(allowed=True, requests=requests, cost=cost)

    def get_user_stats(self, user_id: str) -> dict[str, Any]:
        """Return lifetime and rolling daily usage of ``user_id``."""
        daily = UsageStats()
        for record in self._window(user_id):
            daily.add(record)
        return {
            "user_id": user_id,
            "total": self._totals[user_id].to_dict() if user_id in self._totals else UsageStats().to_dict(),
            "daily": daily.to_dict(),
            "limits": {"requests": self.daily_request_limit, "cost": self.daily_cost_limit},
        }

    def get_global_stats(self) -> dict[str, Any]:
        """Return usage across all users."""
        return {**self._global.to_dict(), "users": len(self._totals)}

    async def cleanup(self, older_than: timedelta = _WINDOW) -> int:
        """Drop in-memory records older than ``older_than``.

        Lifetime aggregates are kept. Persisted records are deleted too when a
        store is configured.

        Returns:
            The number of in-memory records dropped.
        """
        cutoff = self._clock() - older_than
        dropped = 0
        for user_id in list(self._records):
            kept = [record for record in self._records[user_id] if record.timestamp > cutoff]
            dropped += len(self._records[user_id]) - len(kept)
            if kept:
                self._records[user_id] = kept
            else:
                del self._records[user_id]
        if self.store is not None:
            await self.store.delete_usage_records_older_than(cutoff)
        return dropped
