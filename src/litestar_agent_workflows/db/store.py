"""``PersistenceStore`` backed by SQLAlchemy and advanced-alchemy repositories."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from litestar_agent_workflows.core.models import Checkpoint, UsageRecord
from litestar_agent_workflows.core.types import WorkflowStatus
from litestar_agent_workflows.db.models import AgentWorkflowModel, CheckpointModel, UsageRecordModel
from litestar_agent_workflows.db.repositories import (
    AgentWorkflowRepository,
    CheckpointRepository,
    UsageRecordRepository,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

__all__ = ["SQLAlchemyStore"]

logger = logging.getLogger(__name__)


def _checkpoint_from_model(model: CheckpointModel) -> Checkpoint:
    return Checkpoint(
        id=model.checkpoint_id,
        workflow_id=model.workflow_id,
        type=model.type,
        description=model.description,
        step=model.step,
        current_agent_id=model.current_agent_id,
        status=WorkflowStatus(model.status),
        state=dict(model.state or {}),
        user_id=model.user_id,
        created_at=model.created_at,
    )


def _usage_from_model(model: UsageRecordModel) -> UsageRecord:
    return UsageRecord(
        id=model.record_id,
        user_id=model.user_id,
        provider=model.provider,
        tokens=model.tokens,
        cost=model.cost,
        prompt_tokens=model.prompt_tokens,
        completion_tokens=model.completion_tokens,
        timestamp=model.created_at,
    )


class SQLAlchemyStore:
    """Stores workflows, checkpoints and usage records in a SQL database.

    Every operation runs in its own session and commits before returning, so
    the store can be shared by long-lived engine components.

    Attributes:
        session_maker: Factory for async sessions.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        """Initialize the store.

        Args:
            session_maker: Factory for async sessions bound to the database.
        """
        self.session_maker = session_maker

    async def save_workflow(self, record: Mapping[str, Any]) -> None:
        """Insert or replace a workflow record."""
        async with self.session_maker() as session:
            repo = AgentWorkflowRepository(session=session)
            model = await repo.get_by_workflow_id(record["id"])
            if model is None:
                model = AgentWorkflowModel(workflow_id=record["id"])
                session.add(model)
            model.name = record.get("name") or "custom"
            model.template_name = record.get("template_name")
            model.status = WorkflowStatus(record.get("status") or WorkflowStatus.INITIALIZING)
            model.current_step_index = record.get("current_step_index", 0)
            model.user_id = record.get("user_id")
            model.error = record.get("error")
            model.data = dict(record)
            await session.commit()

    async def find_workflow(self, workflow_id: str) -> dict[str, Any] | None:
        """Return a workflow record by id."""
        async with self.session_maker() as session:
            model = await AgentWorkflowRepository(session=session).get_by_workflow_id(workflow_id)
            return dict(model.data) if model is not None else None

    async def list_workflows(self, status: str | None = None) -> list[dict[str, Any]]:
        """Return workflow records, optionally filtered by status."""
        async with self.session_maker() as session:
            repo = AgentWorkflowRepository(session=session)
            models = await repo.find_by_status(WorkflowStatus(status) if status is not None else None)
            return [dict(model.data) for model in models]

    async def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow record. Returns whether it existed."""
        async with self.session_maker() as session:
            deleted = await AgentWorkflowRepository(session=session).delete_by_workflow_id(workflow_id)
            await session.commit()
            return deleted

    async def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        """Store a checkpoint."""
        async with self.session_maker() as session:
            await CheckpointRepository(session=session).add(
                CheckpointModel(
                    checkpoint_id=checkpoint.id,
                    workflow_id=checkpoint.workflow_id,
                    type=checkpoint.type,
                    description=checkpoint.description,
                    step=checkpoint.step,
                    current_agent_id=checkpoint.current_agent_id,
                    status=checkpoint.status,
                    state=checkpoint.state,
                    user_id=checkpoint.user_id,
                    created_at=checkpoint.created_at,
                )
            )
            await session.commit()

    async def find_checkpoint(self, checkpoint_id: str) -> Checkpoint | None:
        """Return a checkpoint by id."""
        async with self.session_maker() as session:
            model = await CheckpointRepository(session=session).get_by_checkpoint_id(checkpoint_id)
            return _checkpoint_from_model(model) if model is not None else None

    async def list_checkpoints(self, workflow_id: str) -> list[Checkpoint]:
        """Return all checkpoints of a workflow, oldest first."""
        async with self.session_maker() as session:
            models = await CheckpointRepository(session=session).find_by_workflow(workflow_id)
            return [_checkpoint_from_model(model) for model in models]

    async def delete_checkpoints_older_than(self, cutoff: datetime) -> int:
        """Delete checkpoints created before ``cutoff``. Returns the count."""
        async with self.session_maker() as session:
            deleted = await CheckpointRepository(session=session).delete_older_than(cutoff)
            await session.commit()
        logger.debug("Deleted %d stored checkpoints", deleted)
        return deleted

    async def save_usage_record(self, record: UsageRecord) -> None:
        """Store a usage record."""
        async with self.session_maker() as session:
            await UsageRecordRepository(session=session).add(
                UsageRecordModel(
                    record_id=record.id,
                    user_id=record.user_id,
                    provider=record.provider,
                    tokens=record.tokens,
                    cost=record.cost,
                    prompt_tokens=record.prompt_tokens,
                    completion_tokens=record.completion_tokens,
                    created_at=record.timestamp,
                )
            )
            await session.commit()

    async def list_usage_records(
        self,
        user_id: str | None = None,
        since: datetime | None = None,
    ) -> list[UsageRecord]:
        """Return usage records, optionally filtered by user and age."""
        async with self.session_maker() as session:
            models = await UsageRecordRepository(session=session).find_records(user_id, since)
            return [_usage_from_model(model) for model in models]

    async def delete_usage_records_older_than(self, cutoff: datetime) -> int:
        """Delete usage records created before ``cutoff``. Returns the count."""
        async with self.session_maker() as session:
            deleted = await UsageRecordRepository(session=session).delete_older_than(cutoff)
            await session.commit()
            return deleted
