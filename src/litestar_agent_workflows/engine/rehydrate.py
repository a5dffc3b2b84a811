"""Rebuild live workflow objects from persisted records."""

from __future__ import annotations

import copy
from datetime import datetime
from typing import TYPE_CHECKING, Any

from litestar_agent_workflows.core.models import (
    Artifact,
    ElicitationRequest,
    Message,
    Step,
    Workflow,
    WorkflowErrorRecord,
    utcnow,
)
from litestar_agent_workflows.core.types import AgentStatus, WorkflowStatus

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

__all__ = ["normalize_sequence", "rehydrate"]


def normalize_sequence(steps: Sequence[Mapping[str, Any] | Step]) -> list[Step]:
    """Turn step mappings into ``Step`` objects ordered by position.

    Args:
        steps: Step mappings or ``Step`` objects.

    Returns:
        Steps whose ``order`` equals their index.
    """
    normalized = []
    for index, step in enumerate(steps):
        data = step.to_dict() if isinstance(step, Step) else dict(step)
        normalized.append(Step.from_dict(data, order=index))
    return normalized


def _datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def rehydrate(record: Mapping[str, Any], template: Sequence[Mapping[str, Any]] | None = None) -> Workflow:
    """Build a ``Workflow`` from a persisted record.

    This is a pure function: it never touches storage and never mutates its
    arguments. The record's own sequence wins; ``template`` is only used when
    the record carries no sequence (for example a record written by an older
    process that stored the template name only).

    Args:
        record: Dictionary produced by ``Workflow.to_dict``.
        template: Step mappings of the workflow's template, if known.

    Returns:
        The rebuilt workflow.

    Raises:
        KeyError: If the record has no ``id``.
    """
    raw_sequence = record.get("sequence") or template or []
    pending = record.get("elicitation_pending")
    return Workflow(
        id=record["id"],
        name=record.get("name") or record["id"],
        sequence=normalize_sequence(raw_sequence),
        status=WorkflowStatus(record.get("status", WorkflowStatus.INITIALIZING)),
        current_step_index=int(record.get("current_step_index", 0)),
        current_agent_id=record.get("current_agent_id"),
        context=copy.deepcopy(dict(record.get("context") or {})),
        artifacts=[Artifact.from_dict(item) for item in record.get("artifacts") or ()],
        messages=[Message.from_dict(item) for item in record.get("messages") or ()],
        errors=[WorkflowErrorRecord.from_dict(item) for item in record.get("errors") or ()],
        elicitation_pending=ElicitationRequest.from_dict(pending) if pending else None,
        checkpoint_enabled=bool(record.get("checkpoint_enabled", True)),
        agent_statuses={
            agent_id: AgentStatus(status) for agent_id, status in (record.get("agent_statuses") or {}).items()
        },
        user_id=record.get("user_id"),
        user_prompt=record.get("user_prompt") or "",
        template_name=record.get("template_name"),
        metadata=copy.deepcopy(dict(record.get("metadata") or {})),
        rolled_back_to=record.get("rolled_back_to"),
        error=record.get("error"),
        created_at=_datetime(record.get("created_at")) or utcnow(),
        updated_at=_datetime(record.get("updated_at")) or utcnow(),
        started_at=_datetime(record.get("started_at")),
        completed_at=_datetime(record.get("completed_at")),
    )
