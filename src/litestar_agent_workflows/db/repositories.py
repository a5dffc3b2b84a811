"""Repository implementations for agent workflow persistence.

This module provides async repositories for the agent workflow models using
advanced-alchemy's repository pattern.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from advanced_alchemy.repository import SQLAlchemyAsyncRepository
from sqlalchemy import and_, delete, select

from litestar_agent_workflows.db.models import AgentWorkflowModel, CheckpointModel, UsageRecordModel

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from litestar_agent_workflows.core.types import WorkflowStatus

__all__ = [
    "AgentWorkflowRepository",
    "CheckpointRepository",
    "UsageRecordRepository",
]


class AgentWorkflowRepository(SQLAlchemyAsyncRepository[AgentWorkflowModel]):
    """Repository for agent workflow records."""

    model_type = AgentWorkflowModel

    async def get_by_workflow_id(self, workflow_id: str) -> AgentWorkflowModel | None:
        """Get a workflow by its engine-level identifier.

        Args:
            workflow_id: The workflow identifier.

        Returns:
            The workflow model or None if not found.
        """
        stmt = select(AgentWorkflowModel).where(AgentWorkflowModel.workflow_id == workflow_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_status(self, status: WorkflowStatus | None = None) -> Sequence[AgentWorkflowModel]:
        """Find workflows, optionally filtered by status, oldest first.

        Args:
            status: Optional status filter.

        Returns:
            List of workflow models.
        """
        stmt = select(AgentWorkflowModel).order_by(AgentWorkflowModel.created_at)
        if status is not None:
            stmt = stmt.where(AgentWorkflowModel.status == status)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def delete_by_workflow_id(self, workflow_id: str) -> bool:
        """Delete a workflow by its engine-level identifier.

        Returns:
            True if a row was deleted.
        """
        stmt = delete(AgentWorkflowModel).where(AgentWorkflowModel.workflow_id == workflow_id)
        result = await self.session.execute(stmt)
        return bool(result.rowcount)


class CheckpointRepository(SQLAlchemyAsyncRepository[CheckpointModel]):
    """Repository for workflow checkpoints."""

    model_type = CheckpointModel

    async def get_by_checkpoint_id(self, checkpoint_id: str) -> CheckpointModel | None:
        """Get a checkpoint by its engine-level identifier."""
        stmt = select(CheckpointModel).where(CheckpointModel.checkpoint_id == checkpoint_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_workflow(self, workflow_id: str) -> Sequence[CheckpointModel]:
        """Find all checkpoints of a workflow, oldest first.

        Args:
            workflow_id: The workflow identifier.

        Returns:
            List of checkpoint models.
        """
        stmt = (
            select(CheckpointModel)
            .where(CheckpointModel.workflow_id == workflow_id)
            .order_by(CheckpointModel.created_at, CheckpointModel.id)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete checkpoints created before ``cutoff``.

        Returns:
            The number of deleted checkpoints.
        """
        result = await self.session.execute(delete(CheckpointModel).where(CheckpointModel.created_at < cutoff))
        return result.rowcount or 0


class UsageRecordRepository(SQLAlchemyAsyncRepository[UsageRecordModel]):
    """Repository for AI usage records."""

    model_type = UsageRecordModel

    async def find_records(
        self,
        user_id: str | None = None,
        since: datetime | None = None,
    ) -> Sequence[UsageRecordModel]:
        """Find usage records, oldest first.

        Args:
            user_id: Optional user filter.
            since: Only records created at or after this time.

        Returns:
            List of usage record models.
        """
        conditions = []
        if user_id is not None:
            conditions.append(UsageRecordModel.user_id == user_id)
        if since is not None:
            conditions.append(UsageRecordModel.created_at >= since)
        stmt = select(UsageRecordModel).order_by(UsageRecordModel.created_at)
        if conditions:
            stmt = stmt.where(and_(*conditions))
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete usage records created before ``cutoff``.

        Returns:
            The number of deleted records.
        """
        result = await self.session.execute(delete(UsageRecordModel).where(UsageRecordModel.created_at < cutoff))
        return result.rowcount or 0
