"""Exponential backoff retry policy and provider error categorization."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, TypeVar

from litestar_agent_workflows.config import RetryConfig
from litestar_agent_workflows.core.types import ErrorCategory
from litestar_agent_workflows.exceptions import ProviderError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

__all__ = ["RetryPolicy", "categorize_error"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

_QUOTA_MARKERS = ("quota", "resource_exhausted", "insufficient_quota", "billing")
_TRANSIENT_MARKERS = (
    "rate limit",
    "rate_limit",
    "429",
    "500",
    "502",
    "503",
    "504",
    "unavailable",
    "overloaded",
    "timeout",
)
_FATAL_TYPES = (ValueError, TypeError, KeyError, AttributeError, NotImplementedError)


def categorize_error(error: BaseException) -> ErrorCategory:
    """Classify a provider failure.

    Explicit categories on ``ProviderError`` win. Otherwise quota markers in
    the message mean ``QUOTA_EXCEEDED``, connection problems and rate limits
    mean ``TRANSIENT`` and programming errors mean ``FATAL``. Anything else is
    treated as transient.

    Args:
        error: The exception raised by a provider call.

    Returns:
        The error category.
    """
    if isinstance(error, ProviderError) and error.category is not None:
        return error.category
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return ErrorCategory.TRANSIENT

    message = str(error).lower()
    if any(marker in message for marker in _QUOTA_MARKERS):
        return ErrorCategory.QUOTA_EXCEEDED
    if any(marker in message for marker in _TRANSIENT_MARKERS):
        return ErrorCategory.TRANSIENT
    if isinstance(error, _FATAL_TYPES):
        return ErrorCategory.FATAL
    return ErrorCategory.TRANSIENT


class RetryPolicy:
    """Retries transient failures with capped exponential backoff.

    Quota and fatal failures are re-raised at once so the caller can move on
    to the next provider.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the policy.

        Args:
            config: Backoff settings; defaults to ``RetryConfig()``.
            sleep: Awaitable sleep function, injectable for tests.
        """
        self.config = config or RetryConfig()
        self._sleep = sleep

    def get_delay(self, attempt: int) -> float:
        """Return the delay in seconds before retry ``attempt`` (zero based)."""
        delay = self.config.base_delay * (self.config.backoff_multiplier**attempt)
        return min(delay, self.config.max_delay)

    async def execute(self, fn: Callable[[], Awaitable[T]], *, name: str = "operation") -> T:
        """Run ``fn`` and retry it on transient failures.

        Args:
            fn: Zero argument coroutine factory.
            name: Label used in log messages.

        Returns:
            Whatever ``fn`` returns.

        Raises:
            Exception: The last failure once retries are exhausted, or the first
                non-transient failure.
        """
        attempt = 0
        while True:
            try:
                return await fn()
            except Exception as exc:
                category = categorize_error(exc)
                if category != ErrorCategory.TRANSIENT or attempt >= self.config.max_retries:
                    raise
                delay = self.get_delay(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                    name,
                    attempt + 1,
                    self.config.max_retries + 1,
                    delay,
                    exc,
                )
                attempt += 1
                await self._sleep(delay)
