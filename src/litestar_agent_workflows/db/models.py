"""SQLAlchemy models for agent workflow persistence.

This module defines the database models backing ``SQLAlchemyStore``:
- AgentWorkflowModel: Stores the full record of each workflow
- CheckpointModel: Stores write-once workflow snapshots
- UsageRecordModel: Stores AI usage for daily limits and reporting
"""

from __future__ import annotations

from typing import Any

from advanced_alchemy.base import UUIDAuditBase
from sqlalchemy import JSON, Enum, Float, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from litestar_agent_workflows.core.types import WorkflowStatus

__all__ = [
    "AgentWorkflowModel",
    "CheckpointModel",
    "UsageRecordModel",
]


# Cross-database JSON type: uses JSONB for PostgreSQL, JSON for others (SQLite, MySQL, etc.)
JSONType = JSON().with_variant(JSONB, "postgresql")


class AgentWorkflowModel(UUIDAuditBase):
    """Persisted agent workflow.

    The complete workflow record lives in ``data``; a few fields are copied
    into columns for querying.

    Attributes:
        workflow_id: Engine-level workflow identifier.
        name: Human readable name.
        template_name: Sequence template the workflow was started from.
        status: Current lifecycle status.
        current_step_index: Index of the step to execute next.
        user_id: User that started the workflow.
        error: Error message if the workflow failed.
        data: The record produced by ``Workflow.to_dict``.
    """

    __tablename__ = "agent_workflows"
    __table_args__ = (
        Index("ix_agent_workflows_status", "status"),
        Index("ix_agent_workflows_user_id", "user_id"),
    )

    workflow_id: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    template_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[WorkflowStatus] = mapped_column(
        Enum(WorkflowStatus, native_enum=False, length=50),
        default=WorkflowStatus.INITIALIZING,
    )
    current_step_index: Mapped[int] = mapped_column(Integer, default=0)
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)


class CheckpointModel(UUIDAuditBase):
    """Persisted workflow checkpoint.

    Attributes:
        checkpoint_id: Engine-level checkpoint identifier.
        workflow_id: Workflow the snapshot belongs to.
        type: Checkpoint tag, e.g. ``before_agent_pm``.
        description: Human readable description.
        step: Step index at snapshot time.
        current_agent_id: Agent executing at snapshot time.
        status: Workflow status at snapshot time.
        state: Deep copy of the workflow's mutable state.
        user_id: User that owns the workflow.
    """

    __tablename__ = "agent_workflow_checkpoints"
    __table_args__ = (Index("ix_agent_workflow_checkpoints_workflow_created", "workflow_id", "created_at"),)

    checkpoint_id: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    workflow_id: Mapped[str] = mapped_column(String(100))
    type: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text, default="")
    step: Mapped[int] = mapped_column(Integer, default=0)
    current_agent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[WorkflowStatus] = mapped_column(Enum(WorkflowStatus, native_enum=False, length=50))
    state: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)


class UsageRecordModel(UUIDAuditBase):
    """Persisted AI usage of one successful invocation.

    Attributes:
        record_id: Engine-level record identifier.
        user_id: User the usage is accounted to.
        provider: Provider that served the request.
        tokens: Total tokens used.
        cost: Estimated cost.
        prompt_tokens: Prompt tokens, when reported.
        completion_tokens: Completion tokens, when reported.
    """

    __tablename__ = "ai_usage_records"
    __table_args__ = (Index("ix_ai_usage_records_user_created", "user_id", "created_at"),)

    record_id: Mapped[str] = mapped_column(String(100), unique=True)
    user_id: Mapped[str] = mapped_column(String(255))
    provider: Mapped[str] = mapped_column(String(100))
    tokens: Mapped[int] = mapped_column(Integer, default=0)
    cost: Mapped[float] = mapped_column(Float, default=0.0)
    prompt_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    completion_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
