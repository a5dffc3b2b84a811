"""Write-through cache of live workflow objects."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from litestar_agent_workflows.core.models import utcnow
from litestar_agent_workflows.engine.rehydrate import rehydrate
from litestar_agent_workflows.exceptions import WorkflowNotFoundError

if TYPE_CHECKING:
    from collections.abc import Callable

    from litestar_agent_workflows.core.models import Workflow
    from litestar_agent_workflows.core.protocols import PersistenceStore, WorkflowSequenceProvider

__all__ = ["WorkflowStateStore"]

logger = logging.getLogger(__name__)


class WorkflowStateStore:
    """Holds active and finished workflows and keeps storage in sync.

    Every lookup goes through ``get``: a cache hit returns the live object, a
    miss loads the persisted record and passes it through ``rehydrate``. Every
    mutation goes through ``save``, which persists the workflow and refreshes
    its cache entry. Terminal workflows live in the history map.

    Attributes:
        store: Optional durable storage.
        sequences: Optional template provider used when rehydrating.
        on_rehydrate: Optional callback receiving every workflow rebuilt from
            storage.
    """

    def __init__(
        self,
        store: PersistenceStore | None = None,
        sequences: WorkflowSequenceProvider | None = None,
        on_rehydrate: Callable[[Workflow], None] | None = None,
    ) -> None:
        self.store = store
        self.sequences = sequences
        self.on_rehydrate = on_rehydrate
        self._active: dict[str, Workflow] = {}
        self._history: dict[str, Workflow] = {}
        self._epochs: dict[str, int] = {}

    async def get(self, workflow_id: str) -> Workflow:
        """Return the live workflow, loading it from storage on a cache miss.

        Raises:
            WorkflowNotFoundError: If the workflow is unknown everywhere.
        """
        cached = self._active.get(workflow_id) or self._history.get(workflow_id)
        if cached is not None:
            return cached
        if self.store is None:
            raise WorkflowNotFoundError(workflow_id)
        record = await self.store.find_workflow(workflow_id)
        if record is None:
            raise WorkflowNotFoundError(workflow_id)
        template = None
        if not record.get("sequence") and record.get("template_name") and self.sequences is not None:
            template = self.sequences.get(record["template_name"])
        workflow = rehydrate(record, template)
        self._cache(workflow)
        if self.on_rehydrate is not None:
            self.on_rehydrate(workflow)
        logger.info("Rehydrated workflow '%s' from storage in status '%s'", workflow_id, workflow.status)
        return workflow

    def peek(self, workflow_id: str) -> Workflow | None:
        """Return the cached workflow without touching storage."""
        return self._active.get(workflow_id) or self._history.get(workflow_id)

    async def save(self, workflow: Workflow) -> None:
        """Persist ``workflow`` and refresh its cache entry."""
        workflow.updated_at = utcnow()
        self.invalidate(workflow.id)
        self._cache(workflow)
        if self.store is not None:
            await self.store.save_workflow(workflow.to_dict())

    def invalidate(self, workflow_id: str) -> None:
        """Drop the cache entry of ``workflow_id``; the next ``get`` rehydrates it."""
        self._active.pop(workflow_id, None)
        self._history.pop(workflow_id, None)

    def epoch(self, workflow_id: str) -> int:
        """Return the execution epoch of a workflow.

        The epoch changes whenever pause, cancel or rollback invalidate work
        that may still be in flight, so late results can be recognised.
        """
        return self._epochs.get(workflow_id, 0)

    def bump_epoch(self, workflow_id: str) -> int:
        """Invalidate in-flight work of a workflow. Returns the new epoch."""
        self._epochs[workflow_id] = self._epochs.get(workflow_id, 0) + 1
        return self._epochs[workflow_id]

    def _cache(self, workflow: Workflow) -> None:
        if workflow.status.is_terminal:
            self._history[workflow.id] = workflow
        else:
            self._active[workflow.id] = workflow

    def active(self) -> list[Workflow]:
        """Return cached non-terminal workflows, oldest first."""
        return sorted(self._active.values(), key=lambda workflow: workflow.created_at)

    def history(self, limit: int | None = 50) -> list[Workflow]:
        """Return finished workflows, most recently finished first."""
        finished = sorted(
            self._history.values(),
            key=lambda workflow: workflow.completed_at or workflow.updated_at,
            reverse=True,
        )
        return finished[:limit] if limit is not None else finished

    def prune_history(self, older_than: timedelta) -> list[str]:
        """Forget finished workflows older than ``older_than``. Storage is untouched.

        Returns:
            The ids of the workflows dropped from memory.
        """
        cutoff = utcnow() - older_than
        stale = [
            workflow_id
            for workflow_id, workflow in self._history.items()
            if (workflow.completed_at or workflow.updated_at) < cutoff
        ]
        for workflow_id in stale:
            del self._history[workflow_id]
            self._epochs.pop(workflow_id, None)
        return stale
