"""Litestar Agent Workflows - Multi-agent workflow orchestration for Litestar.

This package runs ordered sequences of AI agents as long-lived workflows and
invokes the underlying AI providers through a resilient invocation layer.

Key Features:
    - Pause, resume, cancel and rehydration of workflows
    - Checkpoints with manual and automatic rollback
    - Human-in-the-loop elicitation
    - Inter-agent messaging with typed events
    - Provider fallback with circuit breakers, retries and backoff
    - Per-user request spacing and daily usage limits

Example:
    >>> from litestar_agent_workflows import AIInvocationLayer, CallableProvider, WorkflowConfig, WorkflowStateMachine
    >>>
    >>> ai = AIInvocationLayer()
    >>> ai.register_provider("gemini", CallableProvider(call_gemini))
    >>> engine = WorkflowStateMachine(ai=ai)
    >>> workflow = await engine.start(WorkflowConfig(template_name="full_stack", user_prompt="A todo app"))
"""

from __future__ import annotations

from litestar_agent_workflows.__metadata__ import __project__, __version__
from litestar_agent_workflows.ai import AIInvocationLayer, CallableProvider, ProviderResponse
from litestar_agent_workflows.config import (
    EngineConfig,
    InvocationConfig,
    ProviderConfig,
    ProviderPricing,
    RetryConfig,
)
from litestar_agent_workflows.engine import WorkflowConfig, WorkflowStateMachine
from litestar_agent_workflows.exceptions import (
    AgentWorkflowsError,
    AllProvidersFailedError,
    CheckpointNotFoundError,
    CircuitOpenError,
    CriticalFailureError,
    InvalidStateError,
    NotFoundError,
    NotInitializedError,
    ProviderError,
    RateLimitError,
    RequestCancelledError,
    ValidationError,
    WorkflowNotFoundError,
)
from litestar_agent_workflows.plugin import AgentWorkflowPlugin, PluginConfig
from litestar_agent_workflows.store import InMemoryStore

__all__ = (
    "AIInvocationLayer",
    "AgentWorkflowPlugin",
    "AgentWorkflowsError",
    "AllProvidersFailedError",
    "CallableProvider",
    "CheckpointNotFoundError",
    "CircuitOpenError",
    "CriticalFailureError",
    "EngineConfig",
    "InMemoryStore",
    "InvalidStateError",
    "InvocationConfig",
    "NotFoundError",
    "NotInitializedError",
    "PluginConfig",
    "ProviderConfig",
    "ProviderError",
    "ProviderPricing",
    "ProviderResponse",
    "RateLimitError",
    "RequestCancelledError",
    "RetryConfig",
    "ValidationError",
    "WorkflowConfig",
    "WorkflowNotFoundError",
    "WorkflowStateMachine",
    "__project__",
    "__version__",
)
