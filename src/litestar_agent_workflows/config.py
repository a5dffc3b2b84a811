"""Configuration dataclasses for the engine and the AI invocation layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

__all__ = [
    "EngineConfig",
    "InvocationConfig",
    "ProviderConfig",
    "ProviderPricing",
    "RetryConfig",
]


@dataclass
class EngineConfig:
    """Configuration of the workflow engine.

    Attributes:
        default_step_timeout: Step timeout in seconds when a step sets none.
        min_step_timeout: Lower bound every step timeout is clamped to.
        max_step_timeout: Upper bound every step timeout is clamped to.
        timeout_retries: How many times a timed out step is retried.
        checkpoint_enabled: Default for new workflows.
        max_checkpoints: Size of the per-workflow in-memory checkpoint list.
        checkpoint_retention: Age after which the sweep deletes checkpoints.
        history_retention: Age after which finished workflows leave the history.
        history_limit: Default number of entries returned by the history query.
    """

    default_step_timeout: float = 120.0
    min_step_timeout: float = 10.0
    max_step_timeout: float = 300.0
    timeout_retries: int = 1
    checkpoint_enabled: bool = True
    max_checkpoints: int = 10
    checkpoint_retention: timedelta = field(default_factory=lambda: timedelta(days=7))
    history_retention: timedelta = field(default_factory=lambda: timedelta(hours=24))
    history_limit: int = 50

    def clamp_timeout(self, timeout: float | None) -> float:
        """Return ``timeout`` (or the default) clamped to the configured bounds."""
        value = self.default_step_timeout if timeout is None else timeout
        return max(self.min_step_timeout, min(value, self.max_step_timeout))


@dataclass
class RetryConfig:
    """Exponential backoff settings.

    The delay before retry ``n`` (zero based) is
    ``min(base_delay * backoff_multiplier ** n, max_delay)``.
    """

    max_retries: int = 2
    base_delay: float = 2.0
    max_delay: float = 30.0
    backoff_multiplier: float = 3.0


@dataclass(frozen=True)
class ProviderPricing:
    """Per token prices of a provider, in dollars."""

    prompt: float = 0.0
    completion: float = 0.0

    def estimate(self, prompt_tokens: int, completion_tokens: int) -> float:
        """Return the cost of a call with the given token counts."""
        return prompt_tokens * self.prompt + completion_tokens * self.completion


@dataclass
class ProviderConfig:
    """Per provider settings.

    Attributes:
        name: Provider name, matching the registered client.
        failure_threshold: Consecutive failures that open the circuit.
        reset_timeout: Seconds the circuit stays open.
        pricing: Token prices used for cost estimation.
    """

    name: str
    failure_threshold: int = 5
    reset_timeout: float = 60.0
    pricing: ProviderPricing = field(default_factory=ProviderPricing)


@dataclass
class InvocationConfig:
    """Configuration of the AI invocation layer.

    Attributes:
        min_request_interval: Minimum spacing in seconds between two calls of one user.
        daily_request_limit: Requests a user may make in a rolling day.
        daily_cost_limit: Dollars a user may spend in a rolling day.
        retry: Backoff settings applied on each provider.
        providers: Provider settings; list order is the priority order.
        max_tokens_ceiling: Upper bound of the computed token budget.
        tokens_per_complexity: Token budget per complexity unit.
    """

    min_request_interval: float = 2.0
    daily_request_limit: int = 1000
    daily_cost_limit: float = 10.0
    retry: RetryConfig = field(default_factory=RetryConfig)
    providers: list[ProviderConfig] = field(default_factory=list)
    max_tokens_ceiling: int = 8000
    tokens_per_complexity: int = 2000

    def provider(self, name: str) -> ProviderConfig:
        """Return the settings of ``name``, falling back to defaults."""
        for provider in self.providers:
            if provider.name == name:
                return provider
        return ProviderConfig(name=name)
