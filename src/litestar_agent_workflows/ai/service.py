"""Resilient multi-provider AI invocation layer.

One ``AIInvocationLayer`` instance owns all resilience state: a circuit
breaker per provider, the retry policy, the per-user request queue and the
usage tracker. Nothing is shared through module globals, so independent
instances (one per application, one per test) never interfere.

Call path::

    call() -> usage limits -> RequestQueue (per user)
           -> for provider in priority order:
                  CircuitBreaker(provider) -> RetryPolicy -> ProviderClient.invoke
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from litestar_agent_workflows.ai.circuit_breaker import CircuitBreaker
from litestar_agent_workflows.ai.providers import ProviderResponse, TokenUsage, normalize_response
from litestar_agent_workflows.ai.queue import RequestQueue
from litestar_agent_workflows.ai.retry import RetryPolicy, categorize_error
from litestar_agent_workflows.ai.usage import UsageTracker
from litestar_agent_workflows.config import InvocationConfig, ProviderConfig, ProviderPricing
from litestar_agent_workflows.core.models import utcnow
from litestar_agent_workflows.core.types import ErrorCategory
from litestar_agent_workflows.exceptions import (
    AllProvidersFailedError,
    CircuitOpenError,
    NotInitializedError,
    ProviderError,
    RateLimitError,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Mapping
    from datetime import datetime

    from litestar_agent_workflows.core.protocols import PersistenceStore, ProviderClient

__all__ = [
    "ANONYMOUS_USER",
    "AIInvocationLayer",
    "InvocationResult",
    "ProviderHealth",
    "calculate_max_tokens",
    "complexity_factor",
]

logger = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"

_COMPLEXITY_FACTORS = {"simple": 1, "moderate": 2, "medium": 2, "complex": 4}


def complexity_factor(complexity: int | str | None) -> int:
    """Map a complexity level to its token budget multiplier.

    ``simple`` is 1, ``complex`` is 4, any other label is 2. Integers are
    used as is, with a floor of 1.
    """
    if isinstance(complexity, int) and not isinstance(complexity, bool):
        return max(complexity, 1)
    if isinstance(complexity, str):
        return _COMPLEXITY_FACTORS.get(complexity.lower(), 2)
    return 2


def calculate_max_tokens(complexity: int | str | None, *, ceiling: int = 8000, per_unit: int = 2000) -> int:
    """Return the token budget for a call of the given complexity.

    Example:
        >>> calculate_max_tokens("complex")
        8000
        >>> calculate_max_tokens("simple")
        2000
    """
    return min(ceiling, per_unit * complexity_factor(complexity))


@dataclass(frozen=True)
class InvocationResult:
    """Result of a successful ``AIInvocationLayer.call``.

    Attributes:
        content: Text answer of the provider.
        provider: Name of the provider that answered.
        usage: Token counts of the call.
        cost: Estimated cost in dollars.
        attempts: Providers tried, including the one that answered.
    """

    content: str
    provider: str
    usage: TokenUsage
    cost: float
    attempts: int = 1


@dataclass
class ProviderHealth:
    """Running health statistics of one provider."""

    calls: int = 0
    successes: int = 0
    failures: int = 0
    short_circuited: int = 0
    quota_exhausted: bool = False
    last_error: str | None = None
    last_error_category: ErrorCategory | None = None
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None
    total_latency: float = 0.0

    @property
    def average_latency(self) -> float:
        """Mean latency of successful calls, in seconds."""
        return self.total_latency / self.successes if self.successes else 0.0

    def to_dict(self) -> dict[str, Any]:
        """Serialize the statistics to a dictionary."""
        return {
            "calls": self.calls,
            "successes": self.successes,
            "failures": self.failures,
            "short_circuited": self.short_circuited,
            "quota_exhausted": self.quota_exhausted,
            "last_error": self.last_error,
            "last_error_category": str(self.last_error_category) if self.last_error_category else None,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "last_failure_at": self.last_failure_at.isoformat() if self.last_failure_at else None,
            "average_latency": round(self.average_latency, 4),
        }


@dataclass
class _ProviderSlot:
    client: ProviderClient
    breaker: CircuitBreaker
    pricing: ProviderPricing
    health: ProviderHealth = field(default_factory=ProviderHealth)


class AIInvocationLayer:
    """Dispatches prompts to AI providers with fallback and failure isolation.

    Example:
        >>> layer = AIInvocationLayer(InvocationConfig(providers=[ProviderConfig("gemini")]))
        >>> layer.register_provider("gemini", CallableProvider(call_gemini))
        >>> await layer.initialize()
        >>> result = await layer.call("Write a PRD", agent="pm", complexity="complex", user_id="alice")
        >>> await layer.close()
    """

    def __init__(
        self,
        config: InvocationConfig | None = None,
        *,
        store: PersistenceStore | None = None,
        usage_tracker: UsageTracker | None = None,
        request_queue: RequestQueue | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the layer.

        Args:
            config: Invocation settings; defaults to ``InvocationConfig()``.
            store: Optional durable storage for usage records.
            usage_tracker: Pre-built tracker, overriding the one built from ``config``.
            request_queue: Pre-built queue, overriding the one built from ``config``.
            clock: Monotonic time source for breakers and the queue.
            sleep: Awaitable sleep function for backoff and throttling.
        """
        self.config = config or InvocationConfig()
        self._clock = clock
        self.retry_policy = RetryPolicy(self.config.retry, sleep=sleep)
        self.request_queue = request_queue or RequestQueue(self.config.min_request_interval, clock=clock, sleep=sleep)
        self.usage_tracker = usage_tracker or UsageTracker(
            self.config.daily_request_limit,
            self.config.daily_cost_limit,
            store=store,
        )
        self._providers: dict[str, _ProviderSlot] = {}
        self._priority: list[str] = []
        self._initialized = False

    @property
    def providers(self) -> list[str]:
        """Registered provider names, in priority order."""
        return list(self._priority)

    @property
    def initialized(self) -> bool:
        """Whether ``initialize`` ran and ``close`` has not."""
        return self._initialized

    def register_provider(
        self,
        name: str,
        client: ProviderClient,
        *,
        failure_threshold: int | None = None,
        reset_timeout: float | None = None,
        pricing: ProviderPricing | None = None,
    ) -> None:
        """Register a provider client.

        Settings not passed explicitly come from the matching
        ``ProviderConfig``. Providers listed in the config keep their config
        order; others are appended in registration order.

        Args:
            name: Provider name.
            client: Object implementing ``ProviderClient``.
            failure_threshold: Failures that open the provider's circuit.
            reset_timeout: Seconds the provider's circuit stays open.
            pricing: Token prices of the provider.
        """
        settings: ProviderConfig = self.config.provider(name)
        breaker = CircuitBreaker(
            name,
            failure_threshold=failure_threshold if failure_threshold is not None else settings.failure_threshold,
            reset_timeout=reset_timeout if reset_timeout is not None else settings.reset_timeout,
            clock=self._clock,
        )
        self._providers[name] = _ProviderSlot(client=client, breaker=breaker, pricing=pricing or settings.pricing)
        if name not in self._priority:
            self._priority.append(name)
        configured = [provider.name for provider in self.config.providers]
        self._priority.sort(key=lambda item: configured.index(item) if item in configured else len(configured))
        logger.info("Registered AI provider '%s'", name)

    def set_provider_priority(self, names: Iterable[str]) -> None:
        """Reorder providers. Registered providers not listed keep their relative order at the end.

        Raises:
            ValueError: If a listed provider is not registered.
        """
        ordered = list(dict.fromkeys(names))
        unknown = [name for name in ordered if name not in self._providers]
        if unknown:
            msg = f"Unknown providers: {', '.join(unknown)}"
            raise ValueError(msg)
        self._priority = ordered + [name for name in self._priority if name not in ordered]

    def get_circuit_breaker(self, name: str) -> CircuitBreaker:
        """Return the circuit breaker of a registered provider.

        Raises:
            KeyError: If the provider is not registered.
        """
        return self._providers[name].breaker

    async def initialize(self) -> None:
        """Load recent usage from storage and mark the layer ready."""
        if self._initialized:
            return
        await self.usage_tracker.restore()
        self._initialized = True
        logger.info("AI invocation layer initialized with providers: %s", ", ".join(self._priority) or "none")

    async def close(self) -> None:
        """Release provider clients and drop all resilience state."""
        for name, slot in self._providers.items():
            closer = getattr(slot.client, "aclose", None) or getattr(slot.client, "close", None)
            if closer is None:
                continue
            try:
                result = closer()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Failed to close AI provider '%s'", name)
        self._providers.clear()
        self._priority.clear()
        self.request_queue.cleanup()
        self._initialized = False

    async def call(
        self,
        prompt: str,
        agent: str | None = None,
        complexity: int | str | None = 1,
        context: Mapping[str, Any] | None = None,
        user_id: str | None = None,
    ) -> InvocationResult:
        """Send ``prompt`` to the first provider able to answer it.

        Args:
            prompt: The prompt text.
            agent: Agent on whose behalf the call is made.
            complexity: Complexity level used for the token budget.
            context: Extra options forwarded to the provider.
            user_id: User the call is accounted to.

        Returns:
            The provider's answer with usage and cost.

        Raises:
            NotInitializedError: If no provider is registered.
            RateLimitError: If the user reached a daily ceiling.
            AllProvidersFailedError: If every provider failed.
        """
        if not self._providers:
            raise NotInitializedError()

        user_key = user_id or ANONYMOUS_USER
        limits = self.usage_tracker.check_user_limits(user_key)
        if not limits.allowed:
            raise RateLimitError(user_key, limits.reason or "limit exceeded", limits.current, limits.limit)

        options: dict[str, Any] = {
            "max_tokens": calculate_max_tokens(
                complexity,
                ceiling=self.config.max_tokens_ceiling,
                per_unit=self.config.tokens_per_complexity,
            ),
            "agent": agent,
            "context": dict(context or {}),
        }

        async def run() -> InvocationResult:
            response, provider, attempts = await self.execute_with_retry_and_fallback(prompt, options)
            cost = self._estimate_cost(provider, response.usage)
            await self.usage_tracker.track_usage(
                user_key,
                provider,
                tokens=response.usage.total_tokens,
                cost=cost,
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
            )
            return InvocationResult(
                content=response.content,
                provider=provider,
                usage=response.usage,
                cost=cost,
                attempts=attempts,
            )

        return await self.request_queue.enqueue(user_key, run)

    async def execute_with_retry_and_fallback(
        self,
        prompt: str,
        options: Mapping[str, Any],
    ) -> tuple[ProviderResponse, str, int]:
        """Try every provider in priority order.

        Each provider call passes through the provider's circuit breaker,
        which wraps the retry policy. Quota and fatal errors are not retried
        on the same provider.

        Returns:
            The response, the name of the provider that produced it, and the
            number of providers tried.

        Raises:
            AllProvidersFailedError: If every provider failed.
        """
        failures: dict[str, dict[str, Any]] = {}
        for attempt, name in enumerate(list(self._priority), start=1):
            slot = self._providers[name]
            started = time.perf_counter()
            try:
                response = await slot.breaker.call(
                    lambda name=name, slot=slot: self.retry_policy.execute(
                        lambda: self._invoke_provider(name, slot, prompt, options),
                        name=f"provider '{name}'",
                    )
                )
            except Exception as exc:
                category = categorize_error(exc)
                self._record_failure(slot.health, exc, category)
                failures[name] = {"category": str(category), "error": str(exc)}
                logger.warning("AI provider '%s' failed (%s): %s", name, category, exc)
                continue
            slot.health.successes += 1
            slot.health.quota_exhausted = False
            slot.health.last_success_at = utcnow()
            slot.health.total_latency += time.perf_counter() - started
            return response, name, attempt
        raise AllProvidersFailedError(failures)

    async def _invoke_provider(
        self,
        name: str,
        slot: _ProviderSlot,
        prompt: str,
        options: Mapping[str, Any],
    ) -> ProviderResponse:
        slot.health.calls += 1
        response = normalize_response(await slot.client.invoke(prompt, options))
        if not response.content.strip():
            msg = f"Empty response from provider '{name}'"
            raise ProviderError(msg, provider=name, category=ErrorCategory.TRANSIENT)
        return response

    @staticmethod
    def _record_failure(health: ProviderHealth, error: Exception, category: ErrorCategory) -> None:
        if isinstance(error, CircuitOpenError):
            health.short_circuited += 1
            return
        health.failures += 1
        health.last_error = str(error)
        health.last_error_category = category
        health.last_failure_at = utcnow()
        if category == ErrorCategory.QUOTA_EXCEEDED:
            health.quota_exhausted = True

    def _estimate_cost(self, provider: str, usage: TokenUsage) -> float:
        pricing = self._providers[provider].pricing
        if not usage.prompt_tokens and not usage.completion_tokens:
            return usage.total_tokens * pricing.prompt
        return pricing.estimate(usage.prompt_tokens, usage.completion_tokens)

    def get_health_stats(self) -> dict[str, Any]:
        """Return health and circuit breaker status of every provider."""
        return {
            name: {
                **self._providers[name].health.to_dict(),
                "priority": index,
                "circuit_breaker": self._providers[name].breaker.get_status().to_dict(),
            }
            for index, name in enumerate(self._priority)
        }

    def reset_circuit_breakers(self) -> None:
        """Close every provider's circuit and clear the quota flags."""
        for slot in self._providers.values():
            slot.breaker.reset()
            slot.health.quota_exhausted = False
        logger.info("All circuit breakers reset")
