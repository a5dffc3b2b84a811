"""Core domain types, models, events and collaborator protocols."""

from __future__ import annotations

from litestar_agent_workflows.core.events import EventBus
from litestar_agent_workflows.core.models import (
    AgentDefinition,
    AgentExecutionResult,
    Artifact,
    Checkpoint,
    CheckpointSummary,
    ElicitationRequest,
    Message,
    Step,
    UsageRecord,
    Workflow,
    WorkflowErrorRecord,
)
from litestar_agent_workflows.core.types import (
    AgentStatus,
    ChannelStatus,
    CircuitState,
    ErrorCategory,
    MessageType,
    WorkflowStatus,
)

__all__ = [
    "AgentDefinition",
    "AgentExecutionResult",
    "AgentStatus",
    "Artifact",
    "ChannelStatus",
    "Checkpoint",
    "CheckpointSummary",
    "CircuitState",
    "ElicitationRequest",
    "ErrorCategory",
    "EventBus",
    "Message",
    "MessageType",
    "Step",
    "UsageRecord",
    "Workflow",
    "WorkflowErrorRecord",
    "WorkflowStatus",
]
