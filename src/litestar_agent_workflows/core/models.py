"""Data models for workflows, checkpoints, messages and usage accounting.

All models are plain dataclasses. Each one round-trips through ``to_dict`` and
``from_dict`` so that it can be persisted as JSON by any ``PersistenceStore``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from litestar_agent_workflows.core.types import AgentStatus, MessageType, WorkflowStatus

__all__ = [
    "AgentDefinition",
    "AgentExecutionResult",
    "Artifact",
    "Checkpoint",
    "CheckpointSummary",
    "ElicitationRequest",
    "Message",
    "Step",
    "UsageRecord",
    "Workflow",
    "WorkflowErrorRecord",
    "generate_id",
    "utcnow",
]


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def generate_id(prefix: str | None = None) -> str:
    """Generate a unique identifier, optionally prefixed.

    Args:
        prefix: Optional prefix joined to the random part with an underscore.

    Returns:
        The identifier.
    """
    value = uuid4().hex
    return f"{prefix}_{value}" if prefix else value


def _to_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class Step:
    """One agent's turn within a workflow sequence.

    Steps are immutable once the sequence has been validated.

    Attributes:
        agent_id: Identifier of the agent that executes the step.
        role: Role the agent plays in this step.
        description: What the step is expected to produce.
        timeout: Optional per-step timeout in seconds.
        order: Position of the step in the sequence.
        creates: Optional filename of the artifact the step produces.
    """

    agent_id: str
    role: str = ""
    description: str = ""
    timeout: float | None = None
    order: int = 0
    creates: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize the step to a dictionary."""
        return {
            "agent_id": self.agent_id,
            "role": self.role,
            "description": self.description,
            "timeout": self.timeout,
            "order": self.order,
            "creates": self.creates,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], order: int | None = None) -> Step:
        """Build a step from a dictionary.

        Both ``agent_id`` and the shorter ``agent`` key are accepted.

        Args:
            data: Step data.
            order: Position override, used when normalizing a template.

        Returns:
            The step.
        """
        return cls(
            agent_id=data.get("agent_id") or data.get("agent") or "",
            role=data.get("role") or "",
            description=data.get("description") or "",
            timeout=data.get("timeout"),
            order=order if order is not None else data.get("order", 0),
            creates=data.get("creates"),
        )


@dataclass
class Artifact:
    """A named content output produced by a step.

    Attributes:
        filename: Name of the produced document.
        content: The document body.
        agent_id: Agent that produced the artifact.
        step: Index of the producing step.
        metadata: Arbitrary extra information.
        created_at: When the artifact was produced.
    """

    filename: str
    content: str
    agent_id: str
    step: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the artifact to a dictionary."""
        return {
            "filename": self.filename,
            "content": self.content,
            "agent_id": self.agent_id,
            "step": self.step,
            "metadata": dict(self.metadata),
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Artifact:
        """Build an artifact from a dictionary."""
        return cls(
            filename=data["filename"],
            content=data.get("content", ""),
            agent_id=data.get("agent_id", ""),
            step=data.get("step"),
            metadata=dict(data.get("metadata") or {}),
            created_at=_to_datetime(data.get("created_at")) or utcnow(),
        )


@dataclass
class Message:
    """A message in a workflow's append-only log.

    Attributes:
        id: Unique message identifier.
        workflow_id: Workflow the message belongs to.
        sender: Agent id, ``"user"`` or ``"system"``.
        recipient: Agent id, ``"user"``, ``"system"`` or ``"all"``.
        type: Message type.
        content: Payload, usually a string or a dictionary.
        timestamp: When the message was sent.
        metadata: Arbitrary extra information.
    """

    workflow_id: str
    sender: str
    recipient: str
    type: MessageType
    content: Any = None
    id: str = field(default_factory=lambda: generate_id("msg"))
    timestamp: datetime = field(default_factory=utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the message to a dictionary."""
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "sender": self.sender,
            "recipient": self.recipient,
            "type": str(self.type),
            "content": self.content,
            "timestamp": _iso(self.timestamp),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        """Build a message from a dictionary."""
        return cls(
            id=data["id"],
            workflow_id=data["workflow_id"],
            sender=data["sender"],
            recipient=data["recipient"],
            type=MessageType(data["type"]),
            content=data.get("content"),
            timestamp=_to_datetime(data.get("timestamp")) or utcnow(),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class WorkflowErrorRecord:
    """An entry in a workflow's error list.

    Attributes:
        type: Error type, e.g. ``timeout``, ``execution_error`` or ``critical_failure``.
        message: Human readable description.
        agent_id: Agent whose step produced the error, if any.
        step: Step index at which the error occurred.
        details: Extra structured information.
        timestamp: When the error was recorded.
    """

    type: str
    message: str
    agent_id: str | None = None
    step: int | None = None
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error record to a dictionary."""
        return {
            "type": self.type,
            "message": self.message,
            "agent_id": self.agent_id,
            "step": self.step,
            "details": dict(self.details),
            "timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowErrorRecord:
        """Build an error record from a dictionary."""
        return cls(
            type=data["type"],
            message=data.get("message", ""),
            agent_id=data.get("agent_id"),
            step=data.get("step"),
            details=dict(data.get("details") or {}),
            timestamp=_to_datetime(data.get("timestamp")) or utcnow(),
        )


@dataclass
class ElicitationRequest:
    """A pending question from an agent to the user.

    Attributes:
        agent_id: Agent that asked.
        content: The question payload (section title, instruction, draft content).
        created_at: When the question was raised.
    """

    agent_id: str
    content: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the request to a dictionary."""
        return {"agent_id": self.agent_id, "content": dict(self.content), "created_at": _iso(self.created_at)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ElicitationRequest:
        """Build a request from a dictionary."""
        return cls(
            agent_id=data["agent_id"],
            content=dict(data.get("content") or {}),
            created_at=_to_datetime(data.get("created_at")) or utcnow(),
        )


@dataclass
class Workflow:
    """One end-to-end run of an ordered agent sequence.

    Workflows are mutated only by the state machine, the step executor, the
    checkpoint manager and the elicitation controller.

    Attributes:
        id: Unique workflow identifier.
        name: Human readable name.
        sequence: Ordered steps.
        status: Current lifecycle status.
        current_step_index: Index of the step to execute next.
        current_agent_id: Agent of the step being executed, if any.
        context: Workflow-level context shared with every agent.
        artifacts: Artifacts produced so far, in step order.
        messages: Messages appended by steps and elicitation answers.
        errors: Recorded errors.
        elicitation_pending: Pending question while paused for elicitation.
        checkpoint_enabled: Whether checkpoints are written.
        agent_statuses: Status of each agent within this workflow.
        user_id: User that started the workflow.
        user_prompt: The user's original request.
        template_name: Name of the sequence template, if one was used.
        metadata: Arbitrary extra information.
        rolled_back_to: Checkpoint restored by the last rollback.
        error: Message of the error that put the workflow in ``ERROR``.
    """

    id: str
    name: str
    sequence: list[Step]
    status: WorkflowStatus = WorkflowStatus.INITIALIZING
    current_step_index: int = 0
    current_agent_id: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    artifacts: list[Artifact] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    errors: list[WorkflowErrorRecord] = field(default_factory=list)
    elicitation_pending: ElicitationRequest | None = None
    checkpoint_enabled: bool = True
    agent_statuses: dict[str, AgentStatus] = field(default_factory=dict)
    user_id: str | None = None
    user_prompt: str = ""
    template_name: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    rolled_back_to: str | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def total_steps(self) -> int:
        """Number of steps in the sequence."""
        return len(self.sequence)

    @property
    def current_step(self) -> Step | None:
        """The step at ``current_step_index``, or ``None`` once exhausted."""
        if 0 <= self.current_step_index < len(self.sequence):
            return self.sequence[self.current_step_index]
        return None

    @property
    def progress(self) -> int:
        """Completion percentage based on the current step index."""
        if not self.sequence:
            return 0
        return round(min(self.current_step_index, len(self.sequence)) / len(self.sequence) * 100)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the workflow to a JSON compatible dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "sequence": [step.to_dict() for step in self.sequence],
            "status": str(self.status),
            "current_step_index": self.current_step_index,
            "current_agent_id": self.current_agent_id,
            "context": self.context,
            "artifacts": [artifact.to_dict() for artifact in self.artifacts],
            "messages": [message.to_dict() for message in self.messages],
            "errors": [error.to_dict() for error in self.errors],
            "elicitation_pending": self.elicitation_pending.to_dict() if self.elicitation_pending else None,
            "checkpoint_enabled": self.checkpoint_enabled,
            "agent_statuses": {agent_id: str(status) for agent_id, status in self.agent_statuses.items()},
            "user_id": self.user_id,
            "user_prompt": self.user_prompt,
            "template_name": self.template_name,
            "metadata": self.metadata,
            "rolled_back_to": self.rolled_back_to,
            "error": self.error,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
        }


@dataclass(frozen=True)
class CheckpointSummary:
    """Compact checkpoint metadata kept in the in-memory fast path."""

    id: str
    workflow_id: str
    type: str
    description: str
    step: int
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Serialize the summary to a dictionary."""
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "type": self.type,
            "description": self.description,
            "step": self.step,
            "created_at": _iso(self.created_at),
        }


@dataclass(frozen=True)
class Checkpoint:
    """Write-once snapshot of a workflow's mutable state.

    Attributes:
        id: Unique checkpoint identifier.
        workflow_id: Workflow the snapshot was taken from.
        type: Tag such as ``workflow_initialized`` or ``before_agent_pm``.
        description: Human readable description.
        step: ``current_step_index`` at snapshot time.
        current_agent_id: Agent at snapshot time.
        status: Workflow status at snapshot time.
        state: Deep copy of artifacts, messages, errors, context and metadata.
        user_id: User that owns the workflow.
        created_at: When the snapshot was taken.
    """

    id: str
    workflow_id: str
    type: str
    description: str
    step: int
    current_agent_id: str | None
    status: WorkflowStatus
    state: dict[str, Any]
    user_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    def summary(self) -> CheckpointSummary:
        """Return the compact fast-path record for this checkpoint."""
        return CheckpointSummary(
            id=self.id,
            workflow_id=self.workflow_id,
            type=self.type,
            description=self.description,
            step=self.step,
            created_at=self.created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize the checkpoint to a dictionary."""
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "type": self.type,
            "description": self.description,
            "step": self.step,
            "current_agent_id": self.current_agent_id,
            "status": str(self.status),
            "state": self.state,
            "user_id": self.user_id,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Checkpoint:
        """Build a checkpoint from a dictionary."""
        return cls(
            id=data["id"],
            workflow_id=data["workflow_id"],
            type=data["type"],
            description=data.get("description", ""),
            step=data.get("step", 0),
            current_agent_id=data.get("current_agent_id"),
            status=WorkflowStatus(data.get("status", WorkflowStatus.RUNNING)),
            state=dict(data.get("state") or {}),
            user_id=data.get("user_id"),
            created_at=_to_datetime(data.get("created_at")) or utcnow(),
        )


@dataclass(frozen=True)
class UsageRecord:
    """Immutable record of one AI call's resource usage."""

    user_id: str
    provider: str
    tokens: int
    cost: float
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: generate_id("usage"))

    def to_dict(self) -> dict[str, Any]:
        """Serialize the record to a dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "provider": self.provider,
            "tokens": self.tokens,
            "cost": self.cost,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UsageRecord:
        """Build a record from a dictionary."""
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            provider=data["provider"],
            tokens=data.get("tokens", 0),
            cost=data.get("cost", 0.0),
            prompt_tokens=data.get("prompt_tokens"),
            completion_tokens=data.get("completion_tokens"),
            timestamp=_to_datetime(data.get("timestamp")) or utcnow(),
        )


@dataclass(frozen=True)
class AgentDefinition:
    """Persona of an agent, used to build its prompts.

    Attributes:
        id: Agent identifier referenced by steps.
        identity: Who the agent is.
        role: The agent's job title.
        description: Short description of the agent.
        principles: Rules the agent follows.
        capabilities: What the agent can produce.
    """

    id: str
    identity: str = ""
    role: str = ""
    description: str = ""
    principles: tuple[str, ...] = ()
    capabilities: tuple[str, ...] = ()


@dataclass
class AgentExecutionResult:
    """Outcome of executing one agent step.

    A result with ``success=False`` is the structured, non-fatal step failure:
    it is recorded on the workflow and the pipeline continues.

    Attributes:
        success: Whether the agent produced its output.
        output: Raw text the agent produced.
        artifacts: Artifacts produced by the step.
        elicitation: Question payload when the agent needs human input.
        timed_out: Whether the step gave up because of timeouts.
        attempts: Number of attempts made.
        error: Error description for failed results.
        provider: Provider that served the call, if any.
        usage: Token usage reported by the provider.
    """

    success: bool
    output: str | None = None
    artifacts: list[Artifact] = field(default_factory=list)
    elicitation: dict[str, Any] | None = None
    timed_out: bool = False
    attempts: int = 1
    error: str | None = None
    provider: str | None = None
    usage: dict[str, Any] = field(default_factory=dict)

    @property
    def elicitation_required(self) -> bool:
        """Whether the agent asked for human input."""
        return self.elicitation is not None
