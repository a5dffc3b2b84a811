"""Human-in-the-loop pauses."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from litestar_agent_workflows.core.models import ElicitationRequest
from litestar_agent_workflows.core.types import AgentStatus, MessageType, WorkflowStatus
from litestar_agent_workflows.exceptions import InvalidStateError, ValidationError

if TYPE_CHECKING:
    from litestar_agent_workflows.core.models import AgentExecutionResult, Step, Workflow
    from litestar_agent_workflows.engine.communicator import AgentCommunicator
    from litestar_agent_workflows.engine.state import WorkflowStateStore

__all__ = ["ElicitationController"]

logger = logging.getLogger(__name__)


class ElicitationController:
    """Pauses workflows for a question and resumes them with the answer.

    While paused for elicitation the step index does not move: the step that
    asked the question runs again once the answer arrives, with the answer in
    its context.
    """

    def __init__(self, workflows: WorkflowStateStore, communicator: AgentCommunicator) -> None:
        self.workflows = workflows
        self.communicator = communicator

    async def pause_for_elicitation(self, workflow: Workflow, step: Step, result: AgentExecutionResult) -> None:
        """Park ``workflow`` on the question carried by ``result``."""
        request = ElicitationRequest(
            agent_id=step.agent_id,
            content={**(result.elicitation or {}), "step": workflow.current_step_index},
        )
        workflow.status = WorkflowStatus.PAUSED_FOR_ELICITATION
        workflow.current_agent_id = step.agent_id
        workflow.elicitation_pending = request
        workflow.agent_statuses[step.agent_id] = AgentStatus.PAUSED
        message = await self.communicator.send_message(
            workflow.id,
            sender=step.agent_id,
            recipient="user",
            type=MessageType.ELICITATION_REQUEST,
            content=request.content,
            metadata={"step": workflow.current_step_index},
        )
        workflow.messages.append(message)
        await self.workflows.save(workflow)
        logger.info("Workflow '%s' paused for elicitation by agent '%s'", workflow.id, step.agent_id)

    async def resume(self, workflow_id: str, response: Any, agent_id: str | None = None) -> Workflow:
        """Record the user's answer and make the workflow runnable again.

        The caller is responsible for driving the workflow afterwards.

        Args:
            workflow_id: Paused workflow.
            response: The user's answer.
            agent_id: Agent the answer is for; defaults to the asking agent.

        Returns:
            The workflow, now ``RUNNING``.

        Raises:
            InvalidStateError: If the workflow is not waiting for an answer.
            ValidationError: If ``agent_id`` is not the agent that asked.
        """
        workflow = await self.workflows.get(workflow_id)
        pending = workflow.elicitation_pending
        if workflow.status != WorkflowStatus.PAUSED_FOR_ELICITATION or pending is None:
            raise InvalidStateError(workflow_id, workflow.status, "answer elicitation for")
        if agent_id is not None and agent_id != pending.agent_id:
            msg = f"Workflow '{workflow_id}' is waiting for an answer to agent '{pending.agent_id}', not '{agent_id}'"
            raise ValidationError(msg)

        index = workflow.current_step_index
        message = await self.communicator.send_message(
            workflow_id,
            sender="user",
            recipient=pending.agent_id,
            type=MessageType.ELICITATION_RESPONSE,
            content={"response": response, "section_title": pending.content.get("section_title")},
            metadata={"step": index},
        )
        workflow.messages.append(message)
        responses = workflow.context.setdefault("elicitation_responses", {})
        responses.setdefault(pending.agent_id, []).append(response)
        workflow.elicitation_pending = None
        workflow.agent_statuses[pending.agent_id] = AgentStatus.IDLE
        workflow.status = WorkflowStatus.RUNNING
        await self.workflows.save(workflow)
        logger.info("Workflow '%s' received elicitation response for agent '%s'", workflow_id, pending.agent_id)
        return workflow
