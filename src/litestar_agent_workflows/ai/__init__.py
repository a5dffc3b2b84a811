"""Resilient AI invocation layer."""

from __future__ import annotations

from litestar_agent_workflows.ai.circuit_breaker import CircuitBreaker, CircuitBreakerState
from litestar_agent_workflows.ai.providers import CallableProvider, ProviderResponse, TokenUsage
from litestar_agent_workflows.ai.queue import RequestQueue
from litestar_agent_workflows.ai.retry import RetryPolicy, categorize_error
from litestar_agent_workflows.ai.service import AIInvocationLayer, InvocationResult, calculate_max_tokens
from litestar_agent_workflows.ai.usage import UsageLimitCheck, UsageTracker

__all__ = [
    "AIInvocationLayer",
    "CallableProvider",
    "CircuitBreaker",
    "CircuitBreakerState",
    "InvocationResult",
    "ProviderResponse",
    "RequestQueue",
    "RetryPolicy",
    "TokenUsage",
    "UsageLimitCheck",
    "UsageTracker",
    "calculate_max_tokens",
    "categorize_error",
]
