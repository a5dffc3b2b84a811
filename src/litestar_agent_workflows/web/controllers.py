"""REST API controller for agent workflows.

``AgentWorkflowController`` is a thin layer over ``WorkflowStateMachine``:
start workflows, query their status and messages, control their lifecycle,
answer elicitations and work with checkpoints.
"""

from __future__ import annotations

from typing import ClassVar

from litestar import Controller, get, post
from litestar.params import Parameter

from litestar_agent_workflows.engine.state_machine import (  # noqa: TC001 - needed for DI
    WorkflowConfig,
    WorkflowStateMachine,
)
from litestar_agent_workflows.web.dto import (
    CheckpointDTO,
    CreateCheckpointDTO,
    ElicitationResponseDTO,
    InjectStepsDTO,
    MessageDTO,
    StartWorkflowDTO,
    WorkflowDetailDTO,
    WorkflowDTO,
)

__all__ = ["AgentWorkflowController"]


class AgentWorkflowController(Controller):
    """API controller for agent workflows.

    Tags: Agent Workflows
    """

    path = "/"
    tags: ClassVar[list[str]] = ["Agent Workflows"]

    @post("/", dto=None, return_dto=None)
    async def start_workflow(
        self,
        data: StartWorkflowDTO,
        workflow_engine: WorkflowStateMachine,
        wait: bool = Parameter(
            default=False,
            description="Block until the workflow pauses or finishes",
        ),
    ) -> WorkflowDTO:
        """Start a new workflow.

        The steps run in the background unless ``wait`` is set.

        Args:
            data: Workflow start parameters.
            workflow_engine: Injected workflow engine.
            wait: Whether to wait for the workflow to pause or finish.

        Returns:
            Workflow DTO.
        """
        workflow = await workflow_engine.start(
            WorkflowConfig(
                name=data.name,
                sequence=data.sequence,
                template_name=data.template_name,
                workflow_id=data.workflow_id,
                user_prompt=data.user_prompt,
                user_id=data.user_id,
                context=data.context,
                metadata=data.metadata,
                checkpoint_enabled=data.checkpoint_enabled,
            ),
            background=not wait,
        )
        return WorkflowDTO.from_workflow(workflow)

    @get("/")
    async def list_active(self, workflow_engine: WorkflowStateMachine) -> list[WorkflowDTO]:
        """List unfinished workflows."""
        return [WorkflowDTO.from_workflow(workflow) for workflow in workflow_engine.workflows.active()]

    @get("/history")
    async def list_history(
        self,
        workflow_engine: WorkflowStateMachine,
        limit: int = Parameter(
            default=50,
            ge=1,
            le=500,
            description="Maximum number of results",
        ),
    ) -> list[WorkflowDTO]:
        """List finished workflows, most recent first."""
        return [WorkflowDTO.from_workflow(workflow) for workflow in workflow_engine.workflows.history(limit)]

    @get("/{workflow_id:str}")
    async def get_workflow(self, workflow_id: str, workflow_engine: WorkflowStateMachine) -> WorkflowDetailDTO:
        """Get detailed workflow information.

        Args:
            workflow_id: The workflow ID.
            workflow_engine: Injected workflow engine.

        Returns:
            Detailed workflow DTO.
        """
        return WorkflowDetailDTO.from_workflow(await workflow_engine.get_workflow(workflow_id))

    @post("/{workflow_id:str}/pause")
    async def pause_workflow(self, workflow_id: str, workflow_engine: WorkflowStateMachine) -> WorkflowDTO:
        """Pause a workflow."""
        return WorkflowDTO.from_workflow(await workflow_engine.pause(workflow_id))

    @post("/{workflow_id:str}/resume")
    async def resume_workflow(
        self,
        workflow_id: str,
        workflow_engine: WorkflowStateMachine,
        wait: bool = Parameter(default=False, description="Block until the workflow pauses or finishes"),
    ) -> WorkflowDTO:
        """Resume a paused or rolled back workflow."""
        return WorkflowDTO.from_workflow(await workflow_engine.resume(workflow_id, background=not wait))

    @post("/{workflow_id:str}/cancel")
    async def cancel_workflow(self, workflow_id: str, workflow_engine: WorkflowStateMachine) -> WorkflowDTO:
        """Cancel a workflow."""
        return WorkflowDTO.from_workflow(await workflow_engine.cancel(workflow_id))

    @post("/{workflow_id:str}/elicitation", dto=None, return_dto=None)
    async def answer_elicitation(
        self,
        workflow_id: str,
        data: ElicitationResponseDTO,
        workflow_engine: WorkflowStateMachine,
        wait: bool = Parameter(default=False, description="Block until the workflow pauses or finishes"),
    ) -> WorkflowDTO:
        """Answer the pending question of a workflow and continue it.

        Args:
            workflow_id: The workflow ID.
            data: The answer.
            workflow_engine: Injected workflow engine.
            wait: Whether to wait for the workflow to pause or finish.

        Returns:
            Workflow DTO.
        """
        workflow = await workflow_engine.resume_with_elicitation(
            workflow_id,
            data.response,
            data.agent_id,
            background=not wait,
        )
        return WorkflowDTO.from_workflow(workflow)

    @post("/{workflow_id:str}/steps", dto=None, return_dto=None)
    async def inject_steps(
        self,
        workflow_id: str,
        data: InjectStepsDTO,
        workflow_engine: WorkflowStateMachine,
    ) -> WorkflowDetailDTO:
        """Insert steps into an unfinished workflow."""
        workflow = await workflow_engine.inject_steps(workflow_id, data.steps, data.position)
        return WorkflowDetailDTO.from_workflow(workflow)

    @get("/{workflow_id:str}/messages")
    async def list_messages(
        self,
        workflow_id: str,
        workflow_engine: WorkflowStateMachine,
        message_type: str | None = Parameter(
            query="type",
            default=None,
            description="Filter by message type",
        ),
        agent_id: str | None = Parameter(
            default=None,
            description="Filter by sending or receiving agent",
        ),
        limit: int | None = Parameter(
            default=None,
            ge=1,
            description="Only the newest messages, most recent first",
        ),
    ) -> list[MessageDTO]:
        """List the messages of a workflow."""
        await workflow_engine.get_workflow(workflow_id)
        messages = workflow_engine.get_message_history(
            workflow_id,
            type=message_type,
            agent_id=agent_id,
            limit=limit,
        )
        return [MessageDTO.from_message(message) for message in messages]

    @get("/{workflow_id:str}/checkpoints")
    async def list_checkpoints(self, workflow_id: str, workflow_engine: WorkflowStateMachine) -> list[CheckpointDTO]:
        """List the checkpoints of a workflow, oldest first."""
        await workflow_engine.get_workflow(workflow_id)
        stored = await workflow_engine.checkpoints.list_stored_checkpoints(workflow_id)
        return [CheckpointDTO.from_summary(checkpoint.summary()) for checkpoint in stored]

    @post("/{workflow_id:str}/checkpoints", dto=None, return_dto=None)
    async def create_checkpoint(
        self,
        workflow_id: str,
        data: CreateCheckpointDTO,
        workflow_engine: WorkflowStateMachine,
    ) -> CheckpointDTO | None:
        """Write a manual checkpoint. Returns nothing when checkpoints are disabled."""
        checkpoint = await workflow_engine.create_checkpoint(workflow_id, data.description)
        return CheckpointDTO.from_summary(checkpoint.summary()) if checkpoint is not None else None

    @post("/{workflow_id:str}/checkpoints/{checkpoint_id:str}/rollback")
    async def rollback(
        self,
        workflow_id: str,
        checkpoint_id: str,
        workflow_engine: WorkflowStateMachine,
    ) -> WorkflowDTO:
        """Restore a workflow to a checkpoint. The workflow stays rolled back until resumed."""
        return WorkflowDTO.from_workflow(await workflow_engine.rollback_to_checkpoint(workflow_id, checkpoint_id))

    @post("/{workflow_id:str}/resume-from-rollback")
    async def resume_from_rollback(
        self,
        workflow_id: str,
        workflow_engine: WorkflowStateMachine,
        wait: bool = Parameter(default=False, description="Block until the workflow pauses or finishes"),
    ) -> WorkflowDTO:
        """Continue a rolled back workflow from the restored step."""
        return WorkflowDTO.from_workflow(await workflow_engine.resume_from_rollback(workflow_id, background=not wait))
