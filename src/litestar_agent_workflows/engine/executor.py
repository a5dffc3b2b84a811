"""Step execution: the per-workflow trampoline loop.

``drive`` repeatedly calls ``execute_next_step`` until the workflow leaves
``RUNNING``. Each iteration reads ``current_step_index`` from the workflow
itself, so the index is the only thing needed to continue a workflow after a
restart. Runs of the same workflow are serialized with a per-workflow lock;
different workflows run independently.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from litestar_agent_workflows.core.models import AgentExecutionResult, WorkflowErrorRecord
from litestar_agent_workflows.core.types import AgentStatus, MessageType, WorkflowStatus
from litestar_agent_workflows.engine.checkpoints import before_agent_tag
from litestar_agent_workflows.exceptions import CriticalFailureError, NotInitializedError

if TYPE_CHECKING:
    from litestar_agent_workflows.config import EngineConfig
    from litestar_agent_workflows.core.models import Step, Workflow
    from litestar_agent_workflows.core.protocols import AgentRunner
    from litestar_agent_workflows.engine.state_machine import WorkflowStateMachine

__all__ = ["CRITICAL_ERRORS", "StepExecutor"]

logger = logging.getLogger(__name__)

CRITICAL_ERRORS: tuple[type[BaseException], ...] = (CriticalFailureError, NotInitializedError, LookupError)
"""Exceptions that escape ``execute_agent`` instead of becoming a structured failure."""


class StepExecutor:
    """Executes the steps of workflows, one at a time per workflow.

    Attributes:
        engine: Owning state machine.
        runner: Agent runner executing individual steps.
        config: Engine settings (timeouts and retries).
    """

    def __init__(self, engine: WorkflowStateMachine, runner: AgentRunner, config: EngineConfig) -> None:
        self.engine = engine
        self.runner = runner
        self.config = config
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def drive(self, workflow_id: str) -> None:
        """Execute steps until the workflow pauses, finishes or fails."""
        async with self._locks[workflow_id]:
            while await self.execute_next_step(workflow_id):
                pass

    def is_running(self, workflow_id: str) -> bool:
        """Whether a drive loop currently owns the workflow."""
        lock = self._locks.get(workflow_id)
        return lock is not None and lock.locked()

    def forget(self, workflow_id: str) -> None:
        """Drop the lock of a finished workflow."""
        lock = self._locks.get(workflow_id)
        if lock is not None and not lock.locked():
            del self._locks[workflow_id]

    async def execute_next_step(self, workflow_id: str) -> bool:
        """Execute the step at ``current_step_index``.

        Completes the workflow once the index is past the end of the sequence.

        Returns:
            Whether the loop should continue with the next step.
        """
        workflows = self.engine.workflows
        workflow = await workflows.get(workflow_id)
        if workflow.status != WorkflowStatus.RUNNING:
            return False
        step = workflow.current_step
        if step is None:
            await self.engine.complete_workflow(workflow_id)
            return False

        epoch = workflows.epoch(workflow_id)
        try:
            await self.engine.checkpoints.create(
                workflow_id,
                before_agent_tag(step.agent_id),
                f"Before {step.agent_id} ({step.role or 'step'} {step.order + 1}/{workflow.total_steps})",
            )
            workflow.current_agent_id = step.agent_id
            workflow.agent_statuses[step.agent_id] = AgentStatus.ACTIVE
            await workflows.save(workflow)

            context = self.prepare_agent_context(workflow, step)
            await self.engine.communicator.send_message(
                workflow_id,
                sender="system",
                recipient=step.agent_id,
                type=MessageType.ACTIVATION,
                content={
                    "step": context["step"],
                    "total_steps": context["total_steps"],
                    "role": step.role,
                    "description": step.description,
                },
            )
            result = await self.execute_agent(workflow, step, context)
        except Exception as exc:
            if self._is_stale(workflow, epoch):
                logger.info(
                    "Ignoring failure of superseded step '%s' in workflow '%s': %s", step.agent_id, workflow_id, exc
                )
                return False
            return await self.handle_critical_failure(workflow_id, step, exc)

        if self._is_stale(workflow, epoch):
            logger.info("Discarding result of superseded step '%s' in workflow '%s'", step.agent_id, workflow_id)
            return False
        return await self.handle_agent_completion(workflow_id, step, result)

    def _is_stale(self, workflow: Workflow, epoch: int) -> bool:
        return workflow.status != WorkflowStatus.RUNNING or self.engine.workflows.epoch(workflow.id) != epoch

    def prepare_agent_context(self, workflow: Workflow, step: Step) -> dict[str, Any]:
        """Build the context handed to the agent of ``step``."""
        index = workflow.current_step_index
        responses = [
            message.content.get("response") if isinstance(message.content, dict) else message.content
            for message in workflow.messages
            if message.type == MessageType.ELICITATION_RESPONSE
            and message.recipient == step.agent_id
            and message.metadata.get("step") == index
        ]
        return {
            "workflow_id": workflow.id,
            "step": index,
            "total_steps": workflow.total_steps,
            "user_prompt": workflow.user_prompt,
            "previous_artifacts": [artifact.to_dict() for artifact in workflow.artifacts],
            "workflow_context": copy.deepcopy(workflow.context),
            "agent_role": step.role,
            "agent_description": step.description,
            "metadata": copy.deepcopy(workflow.metadata),
            "elicitation_responses": responses,
        }

    async def execute_agent(self, workflow: Workflow, step: Step, context: dict[str, Any]) -> AgentExecutionResult:
        """Run the agent of ``step`` against its timeout.

        Timeouts are retried ``config.timeout_retries`` times. Giving up on
        timeouts, like any other agent error, yields a structured failure.

        Returns:
            The agent's result, or a result with ``success=False``.

        Raises:
            CriticalFailureError: Passed through from the runner.
            NotInitializedError: If the AI layer has no provider.
            LookupError: If the agent cannot be resolved.
        """
        timeout = self.config.clamp_timeout(step.timeout)
        max_attempts = max(self.config.timeout_retries, 0) + 1
        attempts = 0
        while True:
            attempts += 1
            try:
                result = await asyncio.wait_for(self.runner.run(workflow, step, context), timeout)
            except asyncio.TimeoutError:
                if attempts < max_attempts:
                    logger.warning(
                        "Agent '%s' timed out after %.1fs in workflow '%s', retrying (%d/%d)",
                        step.agent_id,
                        timeout,
                        workflow.id,
                        attempts,
                        max_attempts,
                    )
                    continue
                logger.warning("Agent '%s' timed out %d times in workflow '%s'", step.agent_id, attempts, workflow.id)
                return AgentExecutionResult(
                    success=False,
                    timed_out=True,
                    attempts=attempts,
                    error=f"Agent '{step.agent_id}' timed out after {timeout:g}s ({attempts} attempts)",
                )
            except CRITICAL_ERRORS:
                raise
            except Exception as exc:
                logger.warning("Agent '%s' failed in workflow '%s': %s", step.agent_id, workflow.id, exc)
                return AgentExecutionResult(success=False, attempts=attempts, error=str(exc) or type(exc).__name__)
            result.attempts = attempts
            return result

    async def handle_agent_completion(self, workflow_id: str, step: Step, result: AgentExecutionResult) -> bool:
        """Record the result of a step and advance the workflow.

        An elicitation request pauses the workflow without advancing. A failed
        result is recorded in ``errors`` and the workflow still advances.

        Returns:
            Whether the loop should continue.
        """
        workflow = await self.engine.workflows.get(workflow_id)
        if result.elicitation_required:
            await self.engine.elicitation.pause_for_elicitation(workflow, step, result)
            return False

        index = workflow.current_step_index
        for artifact in result.artifacts:
            if artifact.step is None:
                artifact.step = index
            workflow.artifacts.append(artifact)

        if result.success:
            workflow.agent_statuses[step.agent_id] = AgentStatus.COMPLETED
            message = await self.engine.communicator.send_message(
                workflow_id,
                sender=step.agent_id,
                recipient="system",
                type=MessageType.COMPLETION,
                content={
                    "output": result.output,
                    "artifacts": [artifact.filename for artifact in result.artifacts],
                    "provider": result.provider,
                    "attempts": result.attempts,
                },
                metadata={"step": index},
            )
        else:
            error_type = "timeout" if result.timed_out else "execution_error"
            workflow.agent_statuses[step.agent_id] = AgentStatus.TIMEOUT if result.timed_out else AgentStatus.ERROR
            workflow.errors.append(
                WorkflowErrorRecord(
                    type=error_type,
                    message=result.error or error_type,
                    agent_id=step.agent_id,
                    step=index,
                    details={"attempts": result.attempts, "timed_out": result.timed_out},
                )
            )
            message = await self.engine.communicator.send_message(
                workflow_id,
                sender=step.agent_id,
                recipient="system",
                type=MessageType.ERROR,
                content={"error": result.error, "type": error_type, "attempts": result.attempts},
                metadata={"step": index},
            )
        workflow.messages.append(message)
        workflow.current_step_index = index + 1
        await self.engine.workflows.save(workflow)
        await self.engine.checkpoints.create(workflow_id, f"after_agent_{step.agent_id}", f"After {step.agent_id}")
        return True

    async def handle_critical_failure(self, workflow_id: str, step: Step, error: Exception) -> bool:
        """Attempt one auto-rollback, otherwise move the workflow to ``ERROR``.

        Returns:
            Always ``False``: the loop stops either way.
        """
        failure = error
        if not isinstance(failure, CriticalFailureError):
            failure = CriticalFailureError(workflow_id, step.agent_id, error)
        logger.error("Critical failure in workflow '%s' at agent '%s'", workflow_id, step.agent_id, exc_info=error)
        await self.engine.communicator.send_message(
            workflow_id,
            sender=step.agent_id,
            recipient="system",
            type=MessageType.ERROR,
            content={"error": str(error), "critical": True},
        )

        if await self.engine.checkpoints.auto_rollback(workflow_id, error, step.agent_id):
            workflow = await self.engine.workflows.get(workflow_id)
            workflow.errors.append(
                WorkflowErrorRecord(
                    type="critical_failure",
                    message=str(error),
                    agent_id=step.agent_id,
                    step=workflow.current_step_index,
                    details={"exception": type(error).__name__, "rolled_back_to": workflow.rolled_back_to},
                )
            )
            await self.engine.workflows.save(workflow)
            return False

        workflow = await self.engine.workflows.get(workflow_id)
        if not workflow.status.is_terminal:
            await self.engine.fail_workflow(workflow_id, failure)
        return False
