"""In-memory ``PersistenceStore`` for development, tests and single processes."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from litestar_agent_workflows.core.models import Checkpoint, UsageRecord

__all__ = ["InMemoryStore"]


class InMemoryStore:
    """Keeps workflow records, checkpoints and usage records in dictionaries.

    Workflow records are deep-copied on the way in and out, so callers never
    share mutable state with the store. Checkpoints and usage records are
    immutable and stored as is.
    """

    def __init__(self) -> None:
        self._workflows: dict[str, dict[str, Any]] = {}
        self._checkpoints: dict[str, Checkpoint] = {}
        self._usage: list[UsageRecord] = []

    async def save_workflow(self, record: Mapping[str, Any]) -> None:
        self._workflows[record["id"]] = copy.deepcopy(dict(record))

    async def find_workflow(self, workflow_id: str) -> dict[str, Any] | None:
        record = self._workflows.get(workflow_id)
        return copy.deepcopy(record) if record is not None else None

    async def list_workflows(self, status: str | None = None) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(record)
            for record in self._workflows.values()
            if status is None or record.get("status") == status
        ]

    async def delete_workflow(self, workflow_id: str) -> bool:
        return self._workflows.pop(workflow_id, None) is not None

    async def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        self._checkpoints[checkpoint.id] = checkpoint

    async def find_checkpoint(self, checkpoint_id: str) -> Checkpoint | None:
        return self._checkpoints.get(checkpoint_id)

    async def list_checkpoints(self, workflow_id: str) -> list[Checkpoint]:
        matches = [cp for cp in self._checkpoints.values() if cp.workflow_id == workflow_id]
        return sorted(matches, key=lambda cp: cp.created_at)

    async def delete_checkpoints_older_than(self, cutoff: datetime) -> int:
        stale = [cp_id for cp_id, cp in self._checkpoints.items() if cp.created_at < cutoff]
        for cp_id in stale:
            del self._checkpoints[cp_id]
        return len(stale)

    async def save_usage_record(self, record: UsageRecord) -> None:
        self._usage.append(record)

    async def list_usage_records(
        self,
        user_id: str | None = None,
        since: datetime | None = None,
    ) -> list[UsageRecord]:
        return [
            record
            for record in self._usage
            if (user_id is None or record.user_id == user_id) and (since is None or record.timestamp >= since)
        ]

    async def delete_usage_records_older_than(self, cutoff: datetime) -> int:
        kept = [record for record in self._usage if record.timestamp >= cutoff]
        deleted = len(self._usage) - len(kept)
        self._usage = kept
        return deleted
