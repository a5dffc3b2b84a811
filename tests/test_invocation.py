"""Tests for the resilient AI invocation layer."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from litestar_agent_workflows.ai.providers import CallableProvider, ProviderResponse, TokenUsage, normalize_response
from litestar_agent_workflows.ai.service import AIInvocationLayer, calculate_max_tokens, complexity_factor
from litestar_agent_workflows.ai.usage import UsageTracker
from litestar_agent_workflows.config import InvocationConfig, ProviderConfig, ProviderPricing, RetryConfig
from litestar_agent_workflows.core.types import CircuitState
from litestar_agent_workflows.exceptions import (
    AllProvidersFailedError,
    NotInitializedError,
    ProviderError,
    RateLimitError,
)

if TYPE_CHECKING:
    from tests.conftest import FakeClock, ScriptedProvider, SleepRecorder


@pytest.fixture
def invocation_config() -> InvocationConfig:
    """Two providers, gemini first, with a low failure threshold."""
    return InvocationConfig(
        providers=[
            ProviderConfig("gemini", failure_threshold=2, reset_timeout=60.0),
            ProviderConfig("openai", failure_threshold=2, reset_timeout=60.0),
        ],
        retry=RetryConfig(max_retries=1, base_delay=1.0, backoff_multiplier=2.0, max_delay=5.0),
    )


@pytest.fixture
def layer(invocation_config: InvocationConfig, fake_clock: FakeClock, sleeper: SleepRecorder) -> AIInvocationLayer:
    """Create an invocation layer with fake time."""
    return AIInvocationLayer(invocation_config, clock=fake_clock, sleep=sleeper)


@pytest.mark.unit
class TestTokenBudget:
    """Tests for complexity based token budgets."""

    @pytest.mark.parametrize(
        ("complexity", "factor"),
        [("simple", 1), ("moderate", 2), ("medium", 2), ("complex", 4), ("unknown", 2), (None, 2), (3, 3), (0, 1)],
    )
    def test_complexity_factor(self, complexity: Any, factor: int) -> None:
        """Complexity labels map to multipliers."""
        assert complexity_factor(complexity) == factor

    def test_max_tokens_is_capped(self) -> None:
        """The budget never exceeds the ceiling."""
        assert calculate_max_tokens("simple") == 2000
        assert calculate_max_tokens("complex") == 8000
        assert calculate_max_tokens(10) == 8000
        assert calculate_max_tokens("moderate", ceiling=3000) == 3000


@pytest.mark.unit
@pytest.mark.asyncio
class TestProviders:
    """Tests for response normalization and the callable adapter."""

    def test_normalize_shapes(self) -> None:
        """Strings, mappings and responses are accepted."""
        assert normalize_response("hi").content == "hi"

        response = normalize_response({"text": "hi", "usage": {"input_tokens": 3, "output_tokens": 4}})
        assert response.content == "hi"
        assert response.usage == TokenUsage(3, 4, 7)

        original = ProviderResponse("hi")
        assert normalize_response(original) is original

    @pytest.mark.parametrize("raw", [None, 42, {"usage": {}}, {"content": 5}])
    def test_normalize_rejects_other_shapes(self, raw: Any) -> None:
        """Anything else is a type error."""
        with pytest.raises(TypeError):
            normalize_response(raw)

    async def test_callable_provider_sync_and_async(self) -> None:
        """CallableProvider wraps plain and coroutine functions."""

        def sync_fn(prompt: str, options: Any) -> str:
            return prompt.upper()

        async def async_fn(prompt: str, options: Any) -> dict[str, Any]:
            return {"content": prompt, "usage": {"total_tokens": 9}}

        assert (await CallableProvider(sync_fn).invoke("hi", {})).content == "HI"
        response = await CallableProvider(async_fn).invoke("hi", {})
        assert response.usage.total_tokens == 9


@pytest.mark.unit
@pytest.mark.asyncio
class TestProviderRegistration:
    """Tests for provider registration and priority."""

    async def test_config_order_wins(self, layer: AIInvocationLayer, provider_factory: type[ScriptedProvider]) -> None:
        """Configured providers keep the config order, others go last."""
        layer.register_provider("local", provider_factory())
        layer.register_provider("openai", provider_factory())
        layer.register_provider("gemini", provider_factory())

        assert layer.providers == ["gemini", "openai", "local"]

    async def test_set_priority(self, layer: AIInvocationLayer, provider_factory: type[ScriptedProvider]) -> None:
        """Priority can be changed at runtime."""
        layer.register_provider("gemini", provider_factory())
        layer.register_provider("openai", provider_factory())

        layer.set_provider_priority(["openai"])
        assert layer.providers == ["openai", "gemini"]

        with pytest.raises(ValueError, match="Unknown providers: claude"):
            layer.set_provider_priority(["claude"])

    async def test_breaker_settings_from_config(
        self, layer: AIInvocationLayer, provider_factory: type[ScriptedProvider]
    ) -> None:
        """Breakers use the configured settings unless overridden."""
        layer.register_provider("gemini", provider_factory())
        layer.register_provider("openai", provider_factory(), failure_threshold=7)

        assert layer.get_circuit_breaker("gemini").failure_threshold == 2
        assert layer.get_circuit_breaker("openai").failure_threshold == 7

    async def test_initialize_and_close(
        self, layer: AIInvocationLayer, provider_factory: type[ScriptedProvider]
    ) -> None:
        """close releases clients and forgets providers."""
        client = provider_factory()
        layer.register_provider("gemini", client)

        await layer.initialize()
        assert layer.initialized is True

        await layer.close()
        assert client.closed is True
        assert layer.providers == []
        assert layer.initialized is False


@pytest.mark.integration
@pytest.mark.asyncio
class TestCall:
    """Tests for AIInvocationLayer.call."""

    async def test_requires_a_provider(self, layer: AIInvocationLayer) -> None:
        """Calling without providers fails fast."""
        with pytest.raises(NotInitializedError):
            await layer.call("hello")

    async def test_successful_call(self, layer: AIInvocationLayer, provider_factory: type[ScriptedProvider]) -> None:
        """A successful call returns content, usage and cost and is tracked."""
        client = provider_factory("the answer")
        layer.register_provider("gemini", client, pricing=ProviderPricing(prompt=0.001, completion=0.002))

        result = await layer.call("question", agent="pm", complexity="complex", user_id="alice")

        assert result.content == "the answer"
        assert result.provider == "gemini"
        assert result.attempts == 1
        assert result.cost == pytest.approx(10 * 0.001 + 20 * 0.002)
        assert client.options[0]["max_tokens"] == 8000
        assert client.options[0]["agent"] == "pm"
        assert layer.usage_tracker.get_user_stats("alice")["total"]["requests"] == 1

    async def test_cost_without_token_split(
        self, layer: AIInvocationLayer, provider_factory: type[ScriptedProvider]
    ) -> None:
        """Without a prompt/completion split the total is priced at the prompt rate."""
        client = provider_factory(ProviderResponse("ok", TokenUsage(total_tokens=100)))
        layer.register_provider("gemini", client, pricing=ProviderPricing(prompt=0.01, completion=0.05))

        result = await layer.call("question")

        assert result.cost == pytest.approx(1.0)

    async def test_transient_failure_is_retried(
        self,
        layer: AIInvocationLayer,
        provider_factory: type[ScriptedProvider],
        sleeper: SleepRecorder,
    ) -> None:
        """A transient error is retried on the same provider."""
        client = provider_factory(ConnectionError("reset"), "recovered")
        layer.register_provider("gemini", client)

        result = await layer.call("question")

        assert result.content == "recovered"
        assert client.calls == 2
        assert sleeper.delays == [1.0]

    async def test_quota_error_falls_back(
        self, layer: AIInvocationLayer, provider_factory: type[ScriptedProvider]
    ) -> None:
        """A quota error moves on to the next provider without retrying."""
        gemini = provider_factory(Exception("RESOURCE_EXHAUSTED: quota exceeded"))
        openai = provider_factory("from openai")
        layer.register_provider("gemini", gemini)
        layer.register_provider("openai", openai)

        result = await layer.call("question")

        assert result.provider == "openai"
        assert result.attempts == 2
        assert gemini.calls == 1
        assert layer.get_health_stats()["gemini"]["quota_exhausted"] is True

    async def test_empty_answer_is_a_failure(
        self, layer: AIInvocationLayer, provider_factory: type[ScriptedProvider]
    ) -> None:
        """Blank content is treated as a transient provider failure."""
        gemini = provider_factory("   ", "  ")
        openai = provider_factory("from openai")
        layer.register_provider("gemini", gemini)
        layer.register_provider("openai", openai)

        result = await layer.call("question")

        assert result.provider == "openai"
        assert gemini.calls == 2

    async def test_open_circuit_skips_provider(
        self,
        layer: AIInvocationLayer,
        provider_factory: type[ScriptedProvider],
        fake_clock: FakeClock,
    ) -> None:
        """An open circuit sends calls straight to the fallback provider."""
        gemini = provider_factory(default=ValueError("bad request"))
        openai = provider_factory(default="from openai")
        layer.register_provider("gemini", gemini)
        layer.register_provider("openai", openai)

        for _ in range(2):
            await layer.call("question")
        assert layer.get_circuit_breaker("gemini").state == CircuitState.OPEN
        calls_before = gemini.calls

        fake_clock.advance(10)
        result = await layer.call("question")

        assert result.provider == "openai"
        assert gemini.calls == calls_before
        health = layer.get_health_stats()
        assert health["gemini"]["short_circuited"] == 1
        assert health["gemini"]["circuit_breaker"]["state"] == "open"
        assert health["openai"]["priority"] == 1

    async def test_circuit_recovers_after_timeout(
        self,
        layer: AIInvocationLayer,
        provider_factory: type[ScriptedProvider],
        fake_clock: FakeClock,
    ) -> None:
        """After the reset timeout the primary provider is tried again."""
        gemini = provider_factory(ValueError("bad"), ValueError("bad"), default="gemini is back")
        openai = provider_factory(default="from openai")
        layer.register_provider("gemini", gemini)
        layer.register_provider("openai", openai)
        for _ in range(2):
            await layer.call("question")

        fake_clock.advance(61)
        result = await layer.call("question")

        assert result.provider == "gemini"
        assert layer.get_circuit_breaker("gemini").state == CircuitState.CLOSED

    async def test_all_providers_failed(
        self, layer: AIInvocationLayer, provider_factory: type[ScriptedProvider]
    ) -> None:
        """When every provider fails the error lists each failure."""
        layer.register_provider("gemini", provider_factory(default=Exception("quota exceeded")))
        layer.register_provider("openai", provider_factory(default=TypeError("bad payload")))

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await layer.call("question", user_id="alice")

        failures = exc_info.value.failures
        assert failures["gemini"]["category"] == "quota_exceeded"
        assert failures["openai"]["category"] == "fatal"
        assert layer.usage_tracker.get_user_stats("alice")["total"]["requests"] == 0

    async def test_rate_limited_user(
        self,
        invocation_config: InvocationConfig,
        fake_clock: FakeClock,
        sleeper: SleepRecorder,
        provider_factory: type[ScriptedProvider],
    ) -> None:
        """A user over the daily limit is rejected before any provider call."""
        tracker = UsageTracker(daily_request_limit=1)
        layer = AIInvocationLayer(invocation_config, usage_tracker=tracker, clock=fake_clock, sleep=sleeper)
        client = provider_factory()
        layer.register_provider("gemini", client)

        await layer.call("first", user_id="alice")
        with pytest.raises(RateLimitError) as exc_info:
            await layer.call("second", user_id="alice")

        assert exc_info.value.reason == "Daily request limit exceeded"
        assert client.calls == 1
        assert (await layer.call("other user", user_id="bob")).content == "ok"

    async def test_calls_of_one_user_are_spaced(
        self,
        layer: AIInvocationLayer,
        provider_factory: type[ScriptedProvider],
        sleeper: SleepRecorder,
    ) -> None:
        """Consecutive calls of one user go through the request queue."""
        layer.register_provider("gemini", provider_factory())

        await layer.call("one", user_id="alice")
        await layer.call("two", user_id="alice")

        assert sleeper.delays == [2.0]

    async def test_reset_circuit_breakers(
        self, layer: AIInvocationLayer, provider_factory: type[ScriptedProvider]
    ) -> None:
        """Resetting closes every breaker and clears quota flags."""
        layer.register_provider("gemini", provider_factory(default=ProviderError("quota exceeded")))
        layer.register_provider("openai", provider_factory())
        for _ in range(2):
            await layer.call("question")

        layer.reset_circuit_breakers()

        stats = layer.get_health_stats()
        assert stats["gemini"]["circuit_breaker"]["state"] == "closed"
        assert stats["gemini"]["quota_exhausted"] is False
