"""Core protocols for litestar-agent-workflows.

This module defines the Protocol-based interfaces of every external
collaborator the engine talks to. Using Protocol allows duck typing while
maintaining type safety: any object with the right methods can be plugged in.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from datetime import datetime

    from litestar_agent_workflows.ai.providers import ProviderResponse
    from litestar_agent_workflows.core.models import (
        AgentDefinition,
        AgentExecutionResult,
        Checkpoint,
        Step,
        UsageRecord,
        Workflow,
    )

__all__ = [
    "AgentDefinitionProvider",
    "AgentRunner",
    "ArtifactSink",
    "NotificationPublisher",
    "PersistenceStore",
    "ProviderClient",
    "WorkflowSequenceProvider",
]


@runtime_checkable
class AgentDefinitionProvider(Protocol):
    """Resolves agent ids to their persona definitions."""

    def get(self, agent_id: str) -> AgentDefinition | None:
        """Return the definition for ``agent_id`` or ``None`` if unknown."""
        ...


@runtime_checkable
class WorkflowSequenceProvider(Protocol):
    """Resolves template names to ordered step lists.

    Example:
        >>> provider.get("backend_service")
        [{'agent_id': 'analyst', 'role': 'Analyst', 'description': '...'}, ...]
    """

    def get(self, template_name: str) -> Sequence[Mapping[str, Any]] | None:
        """Return the ordered steps of ``template_name`` or ``None`` if unknown."""
        ...


@runtime_checkable
class ArtifactSink(Protocol):
    """Receives the artifacts of a completed workflow for durable export."""

    async def save(self, workflow_id: str, artifacts: Sequence[Mapping[str, Any]]) -> None:
        """Export ``{filename, content, agent_id, metadata}`` records."""
        ...


@runtime_checkable
class NotificationPublisher(Protocol):
    """Fans typed progress events out to external subscribers."""

    async def publish(self, event: str, payload: Mapping[str, Any]) -> None:
        """Publish one progress event.

        Args:
            event: One of ``activation``, ``completion``, ``error``,
                ``elicitation`` or ``workflow_complete``.
            payload: JSON compatible event payload.
        """
        ...


@runtime_checkable
class ProviderClient(Protocol):
    """Normalized contract of one AI provider."""

    async def invoke(self, prompt: str, options: Mapping[str, Any]) -> ProviderResponse:
        """Send ``prompt`` to the provider and return the normalized answer."""
        ...


@runtime_checkable
class AgentRunner(Protocol):
    """Executes one agent step and returns its structured result."""

    async def run(self, workflow: Workflow, step: Step, context: Mapping[str, Any]) -> AgentExecutionResult:
        """Run ``step`` of ``workflow`` with the prepared agent ``context``.

        Raises:
            Exception: Any escaping exception is treated as a critical failure.
        """
        ...


@runtime_checkable
class PersistenceStore(Protocol):
    """Durable storage for workflows, checkpoints and usage records.

    Workflows are stored as the dictionaries produced by ``Workflow.to_dict``;
    they are turned back into objects by ``rehydrate``.
    """

    async def save_workflow(self, record: Mapping[str, Any]) -> None:
        """Insert or replace a workflow record."""
        ...

    async def find_workflow(self, workflow_id: str) -> dict[str, Any] | None:
        """Return a workflow record by id."""
        ...

    async def list_workflows(self, status: str | None = None) -> list[dict[str, Any]]:
        """Return workflow records, optionally filtered by status."""
        ...

    async def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow record. Returns whether it existed."""
        ...

    async def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        """Store a checkpoint."""
        ...

    async def find_checkpoint(self, checkpoint_id: str) -> Checkpoint | None:
        """Return a checkpoint by id."""
        ...

    async def list_checkpoints(self, workflow_id: str) -> list[Checkpoint]:
        """Return all checkpoints of a workflow, oldest first."""
        ...

    async def delete_checkpoints_older_than(self, cutoff: datetime) -> int:
        """Delete checkpoints created before ``cutoff``. Returns the count."""
        ...

    async def save_usage_record(self, record: UsageRecord) -> None:
        """Store a usage record."""
        ...

    async def list_usage_records(
        self,
        user_id: str | None = None,
        since: datetime | None = None,
    ) -> list[UsageRecord]:
        """Return usage records, optionally filtered by user and age."""
        ...

    async def delete_usage_records_older_than(self, cutoff: datetime) -> int:
        """Delete usage records created before ``cutoff``. Returns the count."""
        ...
