"""Workflow lifecycle: start, pause, resume, cancel, rollback and completion.

``WorkflowStateMachine`` is the public entry point of the engine. It owns the
state store, the communicator, the checkpoint manager, the elicitation
controller and the step executor, and wires them together.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from litestar_agent_workflows.config import EngineConfig
from litestar_agent_workflows.core.events import EventBus
from litestar_agent_workflows.core.models import Workflow, WorkflowErrorRecord, generate_id, utcnow
from litestar_agent_workflows.core.types import AgentStatus, MessageType, WorkflowStatus
from litestar_agent_workflows.engine.checkpoints import CheckpointManager
from litestar_agent_workflows.engine.communicator import AgentCommunicator
from litestar_agent_workflows.engine.elicitation import ElicitationController
from litestar_agent_workflows.engine.executor import StepExecutor
from litestar_agent_workflows.engine.registry import AgentRegistry, SequenceRegistry
from litestar_agent_workflows.engine.rehydrate import normalize_sequence
from litestar_agent_workflows.engine.runner import AIAgentRunner
from litestar_agent_workflows.engine.state import WorkflowStateStore
from litestar_agent_workflows.exceptions import InvalidStateError, ValidationError
from litestar_agent_workflows.store.memory import InMemoryStore

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from litestar_agent_workflows.ai.service import AIInvocationLayer
    from litestar_agent_workflows.core.models import Checkpoint, CheckpointSummary, Message, Step
    from litestar_agent_workflows.core.protocols import (
        AgentDefinitionProvider,
        AgentRunner,
        ArtifactSink,
        NotificationPublisher,
        PersistenceStore,
        WorkflowSequenceProvider,
    )
    from litestar_agent_workflows.exceptions import CriticalFailureError

__all__ = ["WorkflowConfig", "WorkflowStateMachine"]

logger = logging.getLogger(__name__)


@dataclass
class WorkflowConfig:
    """Parameters of a new workflow.

    Either ``sequence`` or ``template_name`` must be given; an explicit
    sequence wins.

    Attributes:
        name: Human readable name; defaults to the template name.
        sequence: Ordered steps, as ``Step`` objects or mappings.
        template_name: Name of a registered sequence template.
        workflow_id: Explicit id; generated when omitted.
        user_prompt: The user's request handed to every agent.
        user_id: User the AI usage is accounted to.
        context: Workflow-level context shared with every agent.
        metadata: Extra information, e.g. ``complexity``.
        checkpoint_enabled: Overrides ``EngineConfig.checkpoint_enabled``.
    """

    name: str | None = None
    sequence: list[Step | Mapping[str, Any]] | None = None
    template_name: str | None = None
    workflow_id: str | None = None
    user_prompt: str = ""
    user_id: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    checkpoint_enabled: bool | None = None


class WorkflowStateMachine:
    """Drives agent workflows through their lifecycle.

    Attributes:
        config: Engine settings.
        agents: Agent definitions used to validate sequences.
        sequences: Named sequence templates.
        store: Durable storage for workflows, checkpoints and usage.
        events: Event bus every engine event is emitted on.
        artifact_sink: Optional export target for finished workflows.
        ai: AI invocation layer, swept by ``cleanup`` when given.
        workflows: Write-through cache of live workflows.
        communicator: Message bus.
        checkpoints: Checkpoint manager.
        elicitation: Human-in-the-loop controller.
        executor: Step executor.
    """

    def __init__(
        self,
        runner: AgentRunner | None = None,
        *,
        ai: AIInvocationLayer | None = None,
        agents: AgentDefinitionProvider | None = None,
        sequences: WorkflowSequenceProvider | None = None,
        store: PersistenceStore | None = None,
        events: EventBus | None = None,
        artifact_sink: ArtifactSink | None = None,
        publisher: NotificationPublisher | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            runner: Agent runner; built from ``ai`` when omitted.
            ai: AI invocation layer for the default ``AIAgentRunner``.
            agents: Agent definitions; defaults to the built-in agents.
            sequences: Sequence templates; defaults to the built-in templates.
            store: Durable storage; defaults to an ``InMemoryStore``.
            events: Event bus; a private one is created when omitted.
            artifact_sink: Optional export target for finished workflows.
            publisher: Optional external notification fan-out.
            config: Engine settings.

        Raises:
            ValueError: If neither ``runner`` nor ``ai`` is given.
        """
        self.config = config or EngineConfig()
        self.agents = agents if agents is not None else AgentRegistry()
        self.sequences = sequences if sequences is not None else SequenceRegistry()
        if runner is None:
            if ai is None:
                msg = "Either an agent runner or an AI invocation layer is required"
                raise ValueError(msg)
            runner = AIAgentRunner(ai, self.agents)
        self.store = store if store is not None else InMemoryStore()
        self.events = events if events is not None else EventBus()
        self.artifact_sink = artifact_sink
        self.ai = ai

        self.communicator = AgentCommunicator(self.events, publisher)
        self.workflows = WorkflowStateStore(self.store, self.sequences, on_rehydrate=self._restore_messages)
        self.checkpoints = CheckpointManager(self.workflows, self.store, self.communicator, self.config)
        self.elicitation = ElicitationController(self.workflows, self.communicator)
        self.executor = StepExecutor(self, runner, self.config)
        self._running: dict[str, asyncio.Task[None]] = {}

    def _restore_messages(self, workflow: Workflow) -> None:
        self.communicator.restore(workflow.id, workflow.messages)

    # Lifecycle

    async def start(self, config: WorkflowConfig, *, background: bool = False) -> Workflow:
        """Create a workflow and execute it from the first step.

        Args:
            config: Parameters of the workflow.
            background: Run the steps in an asyncio task instead of awaiting them.

        Returns:
            The workflow. Unless ``background`` is set, it has already reached
            a terminal or paused status.

        Raises:
            ValidationError: If the sequence is empty, references unknown
                agents or the id is taken.
        """
        steps = self._resolve_sequence(config)
        workflow_id = config.workflow_id or generate_id("workflow")
        if self.workflows.peek(workflow_id) is not None or await self.store.find_workflow(workflow_id) is not None:
            msg = f"Workflow '{workflow_id}' already exists"
            raise ValidationError(msg)

        now = utcnow()
        workflow = Workflow(
            id=workflow_id,
            name=config.name or config.template_name or "custom",
            sequence=steps,
            context=copy.deepcopy(config.context),
            checkpoint_enabled=(
                config.checkpoint_enabled if config.checkpoint_enabled is not None else self.config.checkpoint_enabled
            ),
            agent_statuses={step.agent_id: AgentStatus.IDLE for step in steps},
            user_id=config.user_id,
            user_prompt=config.user_prompt,
            template_name=config.template_name,
            metadata=copy.deepcopy(config.metadata),
            started_at=now,
        )
        await self.workflows.save(workflow)
        await self.checkpoints.create(workflow_id, "workflow_initialized", "Workflow initialized")
        workflow.status = WorkflowStatus.RUNNING
        await self.workflows.save(workflow)
        logger.info("Started workflow '%s' (%s) with %d steps", workflow_id, workflow.name, workflow.total_steps)

        await self._continue(workflow_id, background=background)
        return workflow

    def _resolve_sequence(self, config: WorkflowConfig) -> list[Step]:
        errors: list[str] = []
        raw: Iterable[Step | Mapping[str, Any]] | None = config.sequence
        if raw is None and config.template_name:
            raw = self.sequences.get(config.template_name)
            if raw is None:
                errors.append(f"Unknown workflow template '{config.template_name}'")
        steps = normalize_sequence(raw or ())
        if not steps and not errors:
            errors.append("Workflow sequence is empty")
        errors.extend(self._validate_steps(steps))
        if errors:
            raise ValidationError(errors)
        return steps

    def _validate_steps(self, steps: Iterable[Step]) -> list[str]:
        errors = []
        for step in steps:
            if not step.agent_id:
                errors.append(f"Step {step.order} has no agent")
            elif self.agents.get(step.agent_id) is None:
                errors.append(f"Step {step.order} references unknown agent '{step.agent_id}'")
            if step.timeout is not None and step.timeout <= 0:
                errors.append(f"Step {step.order} has a non-positive timeout")
        return errors

    async def _continue(self, workflow_id: str, *, background: bool) -> None:
        if not background:
            await self.executor.drive(workflow_id)
            return
        task = asyncio.create_task(self.executor.drive(workflow_id), name=f"workflow:{workflow_id}")
        self._running[workflow_id] = task

        def _done(finished: asyncio.Task[None]) -> None:
            if self._running.get(workflow_id) is finished:
                del self._running[workflow_id]
            if not finished.cancelled() and finished.exception() is not None:
                logger.error("Workflow '%s' task failed", workflow_id, exc_info=finished.exception())

        task.add_done_callback(_done)

    async def wait(self, workflow_id: str) -> Workflow:
        """Wait for the background task of a workflow, then return the workflow."""
        task = self._running.get(workflow_id)
        if task is not None:
            await asyncio.shield(task)
        return await self.workflows.get(workflow_id)

    async def pause(self, workflow_id: str) -> Workflow:
        """Pause a workflow. A step still in flight is re-run on resume.

        Raises:
            InvalidStateError: If the workflow already finished.
        """
        workflow = await self.workflows.get(workflow_id)
        if workflow.status.is_terminal:
            raise InvalidStateError(workflow_id, workflow.status, "pause")
        if workflow.status == WorkflowStatus.PAUSED:
            return workflow
        self.workflows.bump_epoch(workflow_id)
        if workflow.current_agent_id and workflow.agent_statuses.get(workflow.current_agent_id) == AgentStatus.ACTIVE:
            workflow.agent_statuses[workflow.current_agent_id] = AgentStatus.PAUSED
        workflow.status = WorkflowStatus.PAUSED
        await self.workflows.save(workflow)
        await self._system_message(workflow_id, "pause", "Workflow paused")
        logger.info("Paused workflow '%s' at step %d", workflow_id, workflow.current_step_index)
        return workflow

    async def resume(self, workflow_id: str, *, background: bool = False) -> Workflow:
        """Resume a paused or rolled back workflow.

        A workflow paused while waiting for an answer goes back to waiting.
        A running workflow that no drive loop owns, e.g. one reloaded after a
        restart, continues from its current step; otherwise resuming a running
        workflow does nothing.

        Raises:
            InvalidStateError: If the workflow finished, is waiting for an
                answer, or is rolling back.
        """
        workflow = await self.workflows.get(workflow_id)
        status = workflow.status
        if status == WorkflowStatus.RUNNING:
            if workflow_id not in self._running and not self.executor.is_running(workflow_id):
                logger.info("Recovering workflow '%s' at step %d", workflow_id, workflow.current_step_index)
                await self._continue(workflow_id, background=background)
            return workflow
        if status == WorkflowStatus.ROLLED_BACK:
            return await self.resume_from_rollback(workflow_id, background=background)
        if status.is_terminal or status in {WorkflowStatus.PAUSED_FOR_ELICITATION, WorkflowStatus.ROLLING_BACK}:
            raise InvalidStateError(workflow_id, status, "resume")

        if status == WorkflowStatus.PAUSED and workflow.elicitation_pending is not None:
            workflow.status = WorkflowStatus.PAUSED_FOR_ELICITATION
            await self.workflows.save(workflow)
            return workflow

        workflow.status = WorkflowStatus.RUNNING
        await self.workflows.save(workflow)
        await self._system_message(workflow_id, "resume", "Workflow resumed")
        logger.info("Resumed workflow '%s' at step %d", workflow_id, workflow.current_step_index)
        await self._continue(workflow_id, background=background)
        return workflow

    async def resume_with_elicitation(
        self,
        workflow_id: str,
        response: Any,
        agent_id: str | None = None,
        *,
        background: bool = False,
    ) -> Workflow:
        """Answer a pending question and re-run the step that asked it."""
        workflow = await self.elicitation.resume(workflow_id, response, agent_id)
        await self._continue(workflow_id, background=background)
        return workflow

    async def cancel(self, workflow_id: str) -> Workflow:
        """Cancel a workflow. Results still in flight are discarded.

        Raises:
            InvalidStateError: If the workflow already finished.
        """
        workflow = await self.workflows.get(workflow_id)
        if workflow.status.is_terminal:
            raise InvalidStateError(workflow_id, workflow.status, "cancel")
        self.workflows.bump_epoch(workflow_id)
        if workflow.current_agent_id:
            workflow.agent_statuses[workflow.current_agent_id] = AgentStatus.IDLE
        workflow.status = WorkflowStatus.CANCELLED
        workflow.elicitation_pending = None
        workflow.completed_at = utcnow()
        await self.workflows.save(workflow)
        await self._system_message(workflow_id, "cancel", "Workflow cancelled")
        logger.info("Cancelled workflow '%s'", workflow_id)
        return workflow

    async def _system_message(self, workflow_id: str, action: str, text: str) -> Message:
        return await self.communicator.send_message(
            workflow_id,
            sender="system",
            recipient="all",
            type=MessageType.SYSTEM,
            content={"action": action, "message": text},
        )

    # Checkpoints

    async def create_checkpoint(self, workflow_id: str, description: str = "") -> Checkpoint | None:
        """Write a manual checkpoint."""
        return await self.checkpoints.create(workflow_id, "manual", description or "Manual checkpoint")

    def list_checkpoints(self, workflow_id: str) -> list[CheckpointSummary]:
        """Return the recent checkpoints of a workflow, oldest first."""
        return self.checkpoints.list_checkpoints(workflow_id)

    async def rollback_to_checkpoint(self, workflow_id: str, checkpoint_id: str) -> Workflow:
        """Restore a workflow to a checkpoint; it stays ``ROLLED_BACK`` until resumed."""
        return await self.checkpoints.rollback_to_checkpoint(workflow_id, checkpoint_id)

    async def resume_from_rollback(self, workflow_id: str, *, background: bool = False) -> Workflow:
        """Continue a rolled back workflow from the restored step.

        Raises:
            InvalidStateError: If the workflow is not ``ROLLED_BACK``.
        """
        workflow = await self.workflows.get(workflow_id)
        if workflow.status != WorkflowStatus.ROLLED_BACK:
            raise InvalidStateError(workflow_id, workflow.status, "resume from rollback")
        await self.checkpoints.create(workflow_id, "resume_from_rollback", "Resuming after rollback")
        workflow.status = WorkflowStatus.RUNNING
        await self.workflows.save(workflow)
        logger.info("Resuming workflow '%s' from step %d after rollback", workflow_id, workflow.current_step_index)
        await self._continue(workflow_id, background=background)
        return workflow

    # Sequence changes

    async def inject_steps(
        self,
        workflow_id: str,
        steps: Iterable[Step | Mapping[str, Any]],
        position: int | None = None,
    ) -> Workflow:
        """Insert steps into the sequence of an unfinished workflow.

        Args:
            workflow_id: Workflow to extend.
            steps: Steps to insert.
            position: Index to insert at; defaults to right after the step
                currently executing, or at the current index when no step has
                started yet.

        Raises:
            InvalidStateError: If the workflow already finished.
            ValidationError: If the steps are invalid or ``position`` would
                rewrite steps that already ran.
        """
        workflow = await self.workflows.get(workflow_id)
        if workflow.status.is_terminal:
            raise InvalidStateError(workflow_id, workflow.status, "inject steps into")
        new_steps = normalize_sequence(steps)
        errors = self._validate_steps(new_steps)
        if not new_steps:
            errors.append("No steps to inject")

        index = workflow.current_step_index
        in_flight = workflow.status == WorkflowStatus.RUNNING and self.executor.is_running(workflow_id)
        earliest = index + 1 if in_flight else index
        if position is None:
            position = earliest
        if not earliest <= position <= workflow.total_steps:
            errors.append(f"Position {position} must be between {earliest} and {workflow.total_steps}")
        if errors:
            raise ValidationError(errors)

        head, tail = workflow.sequence[:position], workflow.sequence[position:]
        workflow.sequence = normalize_sequence([*head, *new_steps, *tail])
        for step in new_steps:
            workflow.agent_statuses.setdefault(step.agent_id, AgentStatus.IDLE)
        await self.workflows.save(workflow)
        logger.info("Injected %d steps into workflow '%s' at position %d", len(new_steps), workflow_id, position)
        return workflow

    # Completion and failure

    async def complete_workflow(self, workflow_id: str) -> Workflow:
        """Finish a workflow whose steps all ran and export its artifacts."""
        workflow = await self.workflows.get(workflow_id)
        workflow.status = WorkflowStatus.COMPLETED
        workflow.completed_at = utcnow()
        workflow.current_agent_id = None

        if self.artifact_sink is not None and workflow.artifacts:
            try:
                exported = [artifact.to_dict() for artifact in workflow.artifacts]
                await self.artifact_sink.save(workflow_id, exported)
            except Exception as exc:
                logger.exception("Exporting artifacts of workflow '%s' failed", workflow_id)
                workflow.errors.append(
                    WorkflowErrorRecord(
                        type="artifact_export",
                        message=str(exc),
                        details={"artifacts": len(workflow.artifacts)},
                    )
                )

        started = workflow.started_at or workflow.created_at
        await self.communicator.send_message(
            workflow_id,
            sender="system",
            recipient="user",
            type=MessageType.WORKFLOW_COMPLETE,
            content={
                "total_artifacts": len(workflow.artifacts),
                "total_messages": self.communicator.message_count(workflow_id),
                "total_errors": len(workflow.errors),
                "duration": (workflow.completed_at - started).total_seconds(),
            },
        )
        await self.checkpoints.create(workflow_id, "workflow_completed", "Workflow completed")
        await self.workflows.save(workflow)
        logger.info(
            "Workflow '%s' completed with %d artifacts and %d errors",
            workflow_id,
            len(workflow.artifacts),
            len(workflow.errors),
        )
        return workflow

    async def fail_workflow(self, workflow_id: str, error: CriticalFailureError) -> Workflow:
        """Move a workflow to ``ERROR`` after an unrecoverable failure."""
        workflow = await self.workflows.get(workflow_id)
        if workflow.current_agent_id:
            workflow.agent_statuses[workflow.current_agent_id] = AgentStatus.ERROR
        workflow.errors.append(
            WorkflowErrorRecord(
                type="critical_failure",
                message=str(error.cause),
                agent_id=error.agent_id,
                step=workflow.current_step_index,
                details={"exception": type(error.cause).__name__},
            )
        )
        workflow.status = WorkflowStatus.ERROR
        workflow.error = str(error.cause)
        workflow.completed_at = utcnow()
        await self.workflows.save(workflow)
        logger.error("Workflow '%s' failed: %s", workflow_id, error)
        return workflow

    # Queries

    async def get_workflow(self, workflow_id: str) -> Workflow:
        """Return a workflow, loading it from storage if needed."""
        return await self.workflows.get(workflow_id)

    async def get_status(self, workflow_id: str) -> dict[str, Any]:
        """Return a status summary of one workflow."""
        return self._summary(await self.workflows.get(workflow_id))

    def get_active_workflows(self) -> list[dict[str, Any]]:
        """Return summaries of every unfinished workflow in memory."""
        return [self._summary(workflow) for workflow in self.workflows.active()]

    def get_execution_history(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Return summaries of finished workflows, most recent first."""
        return [
            self._summary(workflow)
            for workflow in self.workflows.history(limit if limit is not None else self.config.history_limit)
        ]

    def get_message_history(self, workflow_id: str, **filters: Any) -> list[Message]:
        """Return the communicator's message log of a workflow.

        For a workflow rebuilt from storage the log starts with the messages
        kept on the workflow: completions, errors and elicitation answers.
        """
        return self.communicator.get_message_history(workflow_id, **filters)

    def _summary(self, workflow: Workflow) -> dict[str, Any]:
        return {
            "id": workflow.id,
            "name": workflow.name,
            "status": str(workflow.status),
            "current_step_index": workflow.current_step_index,
            "total_steps": workflow.total_steps,
            "progress": workflow.progress,
            "current_agent_id": workflow.current_agent_id,
            "elicitation_pending": workflow.elicitation_pending.to_dict() if workflow.elicitation_pending else None,
            "artifacts": len(workflow.artifacts),
            "errors": [error.to_dict() for error in workflow.errors],
            "checkpoints": len(self.checkpoints.list_checkpoints(workflow.id)),
            "rolled_back_to": workflow.rolled_back_to,
            "error": workflow.error,
            "user_id": workflow.user_id,
            "created_at": workflow.created_at.isoformat(),
            "updated_at": workflow.updated_at.isoformat(),
            "started_at": workflow.started_at.isoformat() if workflow.started_at else None,
            "completed_at": workflow.completed_at.isoformat() if workflow.completed_at else None,
        }

    # Housekeeping

    async def cleanup(
        self,
        *,
        history_older_than: timedelta | None = None,
        checkpoints_older_than: timedelta | None = None,
    ) -> dict[str, int]:
        """Forget old finished workflows and delete expired checkpoints.

        Usage records older than a day and idle request queues of the AI
        layer are swept as well.

        Returns:
            Counts of pruned workflows, deleted checkpoints and usage records.
        """
        pruned = self.workflows.prune_history(
            history_older_than if history_older_than is not None else self.config.history_retention
        )
        for workflow_id in pruned:
            self.communicator.cleanup(workflow_id)
            self.checkpoints.forget(workflow_id)
            self.executor.forget(workflow_id)
        deleted = await self.checkpoints.cleanup(checkpoints_older_than)
        usage = 0
        if self.ai is not None:
            usage = await self.ai.usage_tracker.cleanup()
            self.ai.request_queue.cleanup()
        if pruned:
            logger.info("Pruned %d finished workflows from memory", len(pruned))
        return {"workflows": len(pruned), "checkpoints": deleted, "usage_records": usage}

    async def shutdown(self) -> None:
        """Cancel background workflow tasks."""
        tasks = list(self._running.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._running.clear()
