"""Database persistence layer for litestar-agent-workflows.

This module provides SQLAlchemy models, repositories and a
``PersistenceStore`` implementation for workflows, checkpoints and AI usage.

Requires the [db] extra:
    pip install litestar-agent-workflows[db]
"""

from __future__ import annotations

from litestar_agent_workflows.db.models import AgentWorkflowModel, CheckpointModel, UsageRecordModel
from litestar_agent_workflows.db.repositories import (
    AgentWorkflowRepository,
    CheckpointRepository,
    UsageRecordRepository,
)
from litestar_agent_workflows.db.store import SQLAlchemyStore

__all__ = [
    "AgentWorkflowModel",
    "AgentWorkflowRepository",
    "CheckpointModel",
    "CheckpointRepository",
    "SQLAlchemyStore",
    "UsageRecordModel",
    "UsageRecordRepository",
]
