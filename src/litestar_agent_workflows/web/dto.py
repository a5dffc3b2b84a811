"""Data Transfer Objects for the agent workflow web API.

This module defines DTOs for serializing and deserializing workflow data
in REST API requests and responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from litestar_agent_workflows.core.models import CheckpointSummary, Message, Workflow

__all__ = [
    "CheckpointDTO",
    "CreateCheckpointDTO",
    "ElicitationResponseDTO",
    "InjectStepsDTO",
    "MessageDTO",
    "StartWorkflowDTO",
    "WorkflowDTO",
    "WorkflowDetailDTO",
]


@dataclass
class StartWorkflowDTO:
    """DTO for starting a new workflow.

    Attributes:
        template_name: Name of a registered sequence template.
        sequence: Explicit steps (``agent_id``, ``role``, ``description``,
            optional ``timeout`` and ``creates``); wins over the template.
        name: Optional display name.
        user_prompt: The request handed to every agent.
        user_id: User the AI usage is accounted to.
        context: Initial workflow context.
        metadata: Extra information, e.g. ``{"complexity": "complex"}``.
        workflow_id: Optional explicit workflow id.
        checkpoint_enabled: Optional override of the engine default.
    """

    template_name: str | None = None
    sequence: list[dict[str, Any]] | None = None
    name: str | None = None
    user_prompt: str = ""
    user_id: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    workflow_id: str | None = None
    checkpoint_enabled: bool | None = None


@dataclass
class WorkflowDTO:
    """DTO for workflow summary.

    Attributes:
        id: Workflow ID.
        name: Workflow name.
        status: Current lifecycle status.
        current_step_index: Index of the step to execute next.
        total_steps: Number of steps in the sequence.
        progress: Completion percentage.
        current_agent_id: Agent of the current step (if any).
        created_at: When the workflow was created.
        completed_at: When the workflow finished (if finished).
        rolled_back_to: Checkpoint restored by the last rollback.
        error: Error message if the workflow failed.
    """

    id: str
    name: str
    status: str
    current_step_index: int
    total_steps: int
    progress: int
    current_agent_id: str | None
    created_at: datetime
    completed_at: datetime | None = None
    rolled_back_to: str | None = None
    error: str | None = None

    @classmethod
    def from_workflow(cls, workflow: Workflow) -> WorkflowDTO:
        return cls(
            id=workflow.id,
            name=workflow.name,
            status=str(workflow.status),
            current_step_index=workflow.current_step_index,
            total_steps=workflow.total_steps,
            progress=workflow.progress,
            current_agent_id=workflow.current_agent_id,
            created_at=workflow.created_at,
            completed_at=workflow.completed_at,
            rolled_back_to=workflow.rolled_back_to,
            error=workflow.error,
        )


@dataclass
class WorkflowDetailDTO:
    """DTO for detailed workflow information.

    Extends WorkflowDTO with the sequence, artifacts, errors and any
    pending elicitation.

    Attributes:
        id: Workflow ID.
        name: Workflow name.
        status: Current lifecycle status.
        current_step_index: Index of the step to execute next.
        total_steps: Number of steps in the sequence.
        progress: Completion percentage.
        current_agent_id: Agent of the current step (if any).
        user_id: User that started the workflow.
        sequence: Steps of the workflow.
        agent_statuses: Status of each agent.
        artifacts: Produced artifacts.
        errors: Recorded errors.
        context: Workflow context.
        metadata: Workflow metadata.
        elicitation_pending: Pending question, while paused for elicitation.
        created_at: When the workflow was created.
        completed_at: When the workflow finished (if finished).
        rolled_back_to: Checkpoint restored by the last rollback.
        error: Error message if the workflow failed.
    """

    id: str
    name: str
    status: str
    current_step_index: int
    total_steps: int
    progress: int
    current_agent_id: str | None
    user_id: str | None
    sequence: list[dict[str, Any]]
    agent_statuses: dict[str, str]
    artifacts: list[dict[str, Any]]
    errors: list[dict[str, Any]]
    context: dict[str, Any]
    metadata: dict[str, Any]
    elicitation_pending: dict[str, Any] | None
    created_at: datetime
    completed_at: datetime | None = None
    rolled_back_to: str | None = None
    error: str | None = None

    @classmethod
    def from_workflow(cls, workflow: Workflow) -> WorkflowDetailDTO:
        return cls(
            id=workflow.id,
            name=workflow.name,
            status=str(workflow.status),
            current_step_index=workflow.current_step_index,
            total_steps=workflow.total_steps,
            progress=workflow.progress,
            current_agent_id=workflow.current_agent_id,
            user_id=workflow.user_id,
            sequence=[step.to_dict() for step in workflow.sequence],
            agent_statuses={agent_id: str(status) for agent_id, status in workflow.agent_statuses.items()},
            artifacts=[artifact.to_dict() for artifact in workflow.artifacts],
            errors=[error.to_dict() for error in workflow.errors],
            context=workflow.context,
            metadata=workflow.metadata,
            elicitation_pending=workflow.elicitation_pending.to_dict() if workflow.elicitation_pending else None,
            created_at=workflow.created_at,
            completed_at=workflow.completed_at,
            rolled_back_to=workflow.rolled_back_to,
            error=workflow.error,
        )


@dataclass
class ElicitationResponseDTO:
    """DTO for answering a pending elicitation.

    Attributes:
        response: The user's answer.
        agent_id: Agent the answer is for; defaults to the asking agent.
    """

    response: Any
    agent_id: str | None = None


@dataclass
class InjectStepsDTO:
    """DTO for adding steps to a running workflow.

    Attributes:
        steps: Steps to insert.
        position: Insert position; defaults to right after the current step.
    """

    steps: list[dict[str, Any]]
    position: int | None = None


@dataclass
class CreateCheckpointDTO:
    """DTO for writing a manual checkpoint.

    Attributes:
        description: Human readable description.
    """

    description: str = ""


@dataclass
class MessageDTO:
    """DTO for one message of the communication log."""

    id: str
    sender: str
    recipient: str
    type: str
    content: Any
    timestamp: datetime
    metadata: dict[str, Any]

    @classmethod
    def from_message(cls, message: Message) -> MessageDTO:
        return cls(
            id=message.id,
            sender=message.sender,
            recipient=message.recipient,
            type=str(message.type),
            content=message.content,
            timestamp=message.timestamp,
            metadata=message.metadata,
        )


@dataclass
class CheckpointDTO:
    """DTO for checkpoint summary."""

    id: str
    workflow_id: str
    type: str
    description: str
    step: int
    created_at: datetime

    @classmethod
    def from_summary(cls, summary: CheckpointSummary) -> CheckpointDTO:
        return cls(
            id=summary.id,
            workflow_id=summary.workflow_id,
            type=summary.type,
            description=summary.description,
            step=summary.step,
            created_at=summary.created_at,
        )
