"""Checkpoint creation, rollback and retention.

A checkpoint is a write-once deep copy of a workflow's mutable state. Full
records go to the ``PersistenceStore``; a capped list of compact summaries
per workflow is kept in memory for fast listing and auto-rollback.
"""

from __future__ import annotations

import copy
import logging
from collections import defaultdict, deque
from typing import TYPE_CHECKING, Any

from litestar_agent_workflows.core.models import (
    Artifact,
    Checkpoint,
    CheckpointSummary,
    Message,
    WorkflowErrorRecord,
    generate_id,
    utcnow,
)
from litestar_agent_workflows.core.types import AgentStatus, MessageType, WorkflowStatus
from litestar_agent_workflows.exceptions import CheckpointNotFoundError, InvalidStateError

if TYPE_CHECKING:
    from datetime import timedelta

    from litestar_agent_workflows.config import EngineConfig
    from litestar_agent_workflows.core.models import Workflow
    from litestar_agent_workflows.core.protocols import PersistenceStore
    from litestar_agent_workflows.engine.communicator import AgentCommunicator
    from litestar_agent_workflows.engine.state import WorkflowStateStore

__all__ = ["CheckpointManager", "before_agent_tag"]

logger = logging.getLogger(__name__)


def before_agent_tag(agent_id: str) -> str:
    """Return the checkpoint type written before ``agent_id`` runs."""
    return f"before_agent_{agent_id}"


def _snapshot(workflow: Workflow) -> dict[str, Any]:
    return copy.deepcopy(
        {
            "artifacts": [artifact.to_dict() for artifact in workflow.artifacts],
            "messages": [message.to_dict() for message in workflow.messages],
            "errors": [error.to_dict() for error in workflow.errors],
            "context": workflow.context,
            "metadata": workflow.metadata,
            "agent_statuses": {agent_id: str(status) for agent_id, status in workflow.agent_statuses.items()},
        }
    )


def _restore(workflow: Workflow, checkpoint: Checkpoint) -> None:
    state = copy.deepcopy(checkpoint.state)
    workflow.current_step_index = checkpoint.step
    workflow.current_agent_id = checkpoint.current_agent_id
    workflow.artifacts = [Artifact.from_dict(item) for item in state.get("artifacts", ())]
    workflow.messages = [Message.from_dict(item) for item in state.get("messages", ())]
    workflow.errors = [WorkflowErrorRecord.from_dict(item) for item in state.get("errors", ())]
    workflow.context = state.get("context", {})
    workflow.metadata = state.get("metadata", {})
    workflow.agent_statuses = {
        agent_id: AgentStatus(status) for agent_id, status in state.get("agent_statuses", {}).items()
    }
    workflow.elicitation_pending = None


class CheckpointManager:
    """Snapshots and restores workflow state.

    Attributes:
        workflows: Live workflow cache.
        store: Durable storage for full checkpoint records.
        communicator: Message bus used for rollback notices.
        config: Engine settings (in-memory cap, retention).
    """

    def __init__(
        self,
        workflows: WorkflowStateStore,
        store: PersistenceStore,
        communicator: AgentCommunicator,
        config: EngineConfig,
    ) -> None:
        self.workflows = workflows
        self.store = store
        self.communicator = communicator
        self.config = config
        self._recent: dict[str, deque[CheckpointSummary]] = defaultdict(
            lambda: deque(maxlen=self.config.max_checkpoints)
        )

    async def create(self, workflow_id: str, type: str, description: str = "") -> Checkpoint | None:  # noqa: A002
        """Snapshot the current state of a workflow.

        Args:
            workflow_id: Workflow to snapshot.
            type: Checkpoint tag, e.g. ``before_agent_pm``.
            description: Human readable description.

        Returns:
            The checkpoint, or ``None`` when checkpoints are disabled for the workflow.
        """
        workflow = await self.workflows.get(workflow_id)
        if not workflow.checkpoint_enabled:
            return None
        checkpoint = Checkpoint(
            id=generate_id("cp"),
            workflow_id=workflow_id,
            type=type,
            description=description or type.replace("_", " "),
            step=workflow.current_step_index,
            current_agent_id=workflow.current_agent_id,
            status=workflow.status,
            state=_snapshot(workflow),
            user_id=workflow.user_id,
        )
        self._recent[workflow_id].append(checkpoint.summary())
        await self.store.save_checkpoint(checkpoint)
        logger.debug("Created checkpoint '%s' (%s) for workflow '%s'", checkpoint.id, type, workflow_id)
        return checkpoint

    def list_checkpoints(self, workflow_id: str) -> list[CheckpointSummary]:
        """Return the fast-path summaries of a workflow, oldest first."""
        return list(self._recent.get(workflow_id, ()))

    async def list_stored_checkpoints(self, workflow_id: str) -> list[Checkpoint]:
        """Return every durable checkpoint of a workflow, oldest first."""
        return await self.store.list_checkpoints(workflow_id)

    async def get_checkpoint(self, workflow_id: str, checkpoint_id: str) -> Checkpoint:
        """Return one checkpoint of a workflow.

        Raises:
            CheckpointNotFoundError: If it does not exist or belongs to another workflow.
        """
        checkpoint = await self.store.find_checkpoint(checkpoint_id)
        if checkpoint is None or checkpoint.workflow_id != workflow_id:
            raise CheckpointNotFoundError(checkpoint_id, workflow_id)
        return checkpoint

    async def rollback_to_checkpoint(self, workflow_id: str, checkpoint_id: str) -> Workflow:
        """Restore a workflow to a checkpoint.

        The workflow ends in ``ROLLED_BACK`` and is not resumed automatically.
        Work still in flight for the workflow is invalidated.

        Args:
            workflow_id: Workflow to restore.
            checkpoint_id: Checkpoint to restore.

        Returns:
            The restored workflow.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
            CheckpointNotFoundError: If the checkpoint does not exist.
            InvalidStateError: If the workflow already finished.
        """
        workflow = await self.workflows.get(workflow_id)
        checkpoint = await self.get_checkpoint(workflow_id, checkpoint_id)
        if workflow.status.is_terminal:
            raise InvalidStateError(workflow_id, workflow.status, "roll back")

        self.workflows.bump_epoch(workflow_id)
        workflow.status = WorkflowStatus.ROLLING_BACK
        await self.workflows.save(workflow)
        await self.communicator.send_message(
            workflow_id,
            sender="system",
            recipient="all",
            type=MessageType.SYSTEM,
            content={
                "action": "rollback",
                "checkpoint_id": checkpoint.id,
                "checkpoint_type": checkpoint.type,
                "step": checkpoint.step,
                "message": f"Rolling back to checkpoint '{checkpoint.description}'",
            },
        )
        try:
            _restore(workflow, checkpoint)
            if workflow.current_agent_id:
                workflow.agent_statuses[workflow.current_agent_id] = AgentStatus.IDLE
            workflow.rolled_back_to = checkpoint.id
            workflow.status = WorkflowStatus.ROLLED_BACK
            await self.workflows.save(workflow)
        except Exception as exc:
            workflow.status = WorkflowStatus.ERROR
            workflow.error = f"Rollback to '{checkpoint.id}' failed: {exc}"
            workflow.completed_at = utcnow()
            workflow.errors.append(
                WorkflowErrorRecord(
                    type="rollback_error",
                    message=str(exc),
                    step=workflow.current_step_index,
                    details={"checkpoint_id": checkpoint.id},
                )
            )
            await self.workflows.save(workflow)
            raise
        logger.info("Workflow '%s' rolled back to checkpoint '%s' (%s)", workflow_id, checkpoint.id, checkpoint.type)
        return workflow

    async def _candidates(self, workflow_id: str) -> list[CheckpointSummary]:
        recent = self.list_checkpoints(workflow_id)
        if recent:
            return recent
        stored = await self.store.list_checkpoints(workflow_id)
        return [checkpoint.summary() for checkpoint in stored[-self.config.max_checkpoints :]]

    async def auto_rollback(self, workflow_id: str, error: BaseException, agent_id: str | None = None) -> bool:
        """Roll back after a critical failure.

        Recent checkpoints are searched newest first, skipping the one written
        right before the failing agent started. The first remaining checkpoint
        is restored.

        Args:
            workflow_id: Workflow that failed.
            error: The failure that triggered the rollback.
            agent_id: Failing agent; defaults to the workflow's current agent.

        Returns:
            Whether a rollback happened. On ``False`` the caller must move the
            workflow to ``ERROR``.
        """
        workflow = await self.workflows.get(workflow_id)
        if not workflow.checkpoint_enabled or workflow.status.is_terminal:
            return False
        failing_agent = agent_id or workflow.current_agent_id
        excluded = before_agent_tag(failing_agent) if failing_agent else None
        for summary in reversed(await self._candidates(workflow_id)):
            if summary.type == excluded:
                continue
            logger.warning(
                "Auto-rollback of workflow '%s' to checkpoint '%s' after: %s",
                workflow_id,
                summary.id,
                error,
            )
            try:
                await self.rollback_to_checkpoint(workflow_id, summary.id)
            except Exception:
                logger.exception("Auto-rollback of workflow '%s' failed", workflow_id)
                return False
            return True
        return False

    async def cleanup(self, older_than: timedelta | None = None) -> int:
        """Delete checkpoints older than the retention period.

        Args:
            older_than: Age threshold; defaults to ``config.checkpoint_retention``.

        Returns:
            The number of durable checkpoints deleted.
        """
        cutoff = utcnow() - (older_than if older_than is not None else self.config.checkpoint_retention)
        for workflow_id in list(self._recent):
            kept = [summary for summary in self._recent[workflow_id] if summary.created_at >= cutoff]
            if kept:
                self._recent[workflow_id] = deque(kept, maxlen=self.config.max_checkpoints)
            else:
                del self._recent[workflow_id]
        deleted = await self.store.delete_checkpoints_older_than(cutoff)
        if deleted:
            logger.info("Deleted %d checkpoints older than %s", deleted, cutoff.isoformat())
        return deleted

    def forget(self, workflow_id: str) -> None:
        """Drop the in-memory summaries of a workflow."""
        self._recent.pop(workflow_id, None)
