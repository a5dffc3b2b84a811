"""Per-provider circuit breaker.

States:
    CLOSED: calls pass through; consecutive failures are counted.
    OPEN: calls fail fast with ``CircuitOpenError`` until ``next_attempt``.
    HALF_OPEN: exactly one trial call is let through. Success closes the
        circuit, failure opens it again with a fresh timer.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from litestar_agent_workflows.core.types import CircuitState
from litestar_agent_workflows.exceptions import CircuitOpenError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

__all__ = ["CircuitBreaker", "CircuitBreakerState"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CircuitBreakerState:
    """Snapshot of a breaker, as reported by ``CircuitBreaker.get_status``."""

    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    failure_threshold: int
    reset_timeout: float
    next_attempt: float | None

    def to_dict(self) -> dict[str, Any]:
        """Serialize the snapshot to a dictionary."""
        return {
            "name": self.name,
            "state": str(self.state),
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "failure_threshold": self.failure_threshold,
            "reset_timeout": self.reset_timeout,
            "next_attempt": self.next_attempt,
        }


class CircuitBreaker:
    """Failure isolation for one provider, shared by all callers.

    State updates are serialized with an ``asyncio.Lock``; the protected call
    itself runs outside the lock so that concurrent callers are not serialized.

    Example:
        >>> breaker = CircuitBreaker("gemini", failure_threshold=5, reset_timeout=60)
        >>> content = await breaker.call(lambda: client.invoke(prompt, {}))
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the breaker.

        Args:
            name: Name of the protected provider.
            failure_threshold: Consecutive failures that open the circuit.
            reset_timeout: Seconds the circuit stays open before a trial.
            clock: Monotonic time source, injectable for tests.
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._next_attempt: float | None = None
        self._trial_in_flight = False
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        """Current state, without applying the OPEN to HALF_OPEN timer."""
        return self._state

    @property
    def failure_count(self) -> int:
        """Consecutive failures since the last success."""
        return self._failure_count

    @property
    def success_count(self) -> int:
        """Successful calls since creation or the last reset."""
        return self._success_count

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` through the breaker.

        Args:
            fn: Zero argument coroutine factory performing the protected call.

        Returns:
            Whatever ``fn`` returns.

        Raises:
            CircuitOpenError: If the circuit is open, or a half-open trial is
                already in flight.
        """
        await self._before_call()
        try:
            result = await fn()
        except Exception:
            await self._on_failure()
            raise
        except BaseException:
            # cancelled, e.g. by a step timeout; an abandoned trial reopens the circuit
            self._on_abort()
            raise
        await self._on_success()
        return result

    async def _before_call(self) -> None:
        async with self._lock:
            now = self._clock()
            if self._state == CircuitState.OPEN:
                if self._next_attempt is not None and now < self._next_attempt:
                    raise CircuitOpenError(self.name, self._next_attempt - now)
                self._state = CircuitState.HALF_OPEN
                self._trial_in_flight = False
                logger.info("Circuit breaker '%s' is half-open", self.name)
            if self._state == CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitOpenError(self.name, 0.0)
                self._trial_in_flight = True

    async def _on_success(self) -> None:
        async with self._lock:
            if self._state != CircuitState.CLOSED:
                logger.info("Circuit breaker '%s' closed", self.name)
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._success_count += 1
            self._next_attempt = None
            self._trial_in_flight = False

    async def _on_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            self._trial_in_flight = False
            if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self._next_attempt = self._clock() + self.reset_timeout
                logger.warning(
                    "Circuit breaker '%s' opened after %d failures; retry in %.1fs",
                    self.name,
                    self._failure_count,
                    self.reset_timeout,
                )

    def _on_abort(self) -> None:
        if self._state != CircuitState.HALF_OPEN:
            return
        self._state = CircuitState.OPEN
        self._next_attempt = self._clock() + self.reset_timeout
        self._trial_in_flight = False
        logger.warning("Circuit breaker '%s' reopened after an abandoned trial", self.name)

    def get_status(self) -> CircuitBreakerState:
        """Return a snapshot of the breaker."""
        return CircuitBreakerState(
            name=self.name,
            state=self._state,
            failure_count=self._failure_count,
            success_count=self._success_count,
            failure_threshold=self.failure_threshold,
            reset_timeout=self.reset_timeout,
            next_attempt=self._next_attempt,
        )

    def reset(self) -> None:
        """Force the breaker back to CLOSED with cleared counters."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._next_attempt = None
        self._trial_in_flight = False
