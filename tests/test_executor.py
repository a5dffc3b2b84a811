"""Tests for step execution: context, timeouts, failures and stale results."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest

from litestar_agent_workflows.core.models import AgentExecutionResult
from litestar_agent_workflows.core.types import AgentStatus, MessageType, WorkflowStatus
from litestar_agent_workflows.engine.state_machine import WorkflowConfig, WorkflowStateMachine

if TYPE_CHECKING:
    from tests.conftest import ScriptedRunner


async def _slow(workflow: Any, step: Any, context: Any) -> AgentExecutionResult:
    await asyncio.sleep(1)
    return AgentExecutionResult(success=True, output="too late")


@pytest.mark.integration
@pytest.mark.asyncio
class TestHappyPath:
    """Tests for a workflow whose steps all succeed."""

    async def test_runs_every_step_in_order(
        self, engine: WorkflowStateMachine, runner: ScriptedRunner, three_steps: list[dict]
    ) -> None:
        """Each agent runs once, in sequence order, and the workflow completes."""
        workflow = await engine.start(WorkflowConfig(sequence=three_steps, workflow_id="wf-1", user_prompt="Todo app"))

        assert workflow.status == WorkflowStatus.COMPLETED
        assert runner.agents_called == ["analyst", "pm", "architect"]
        assert workflow.current_step_index == 3
        assert workflow.progress == 100
        assert [artifact.filename for artifact in workflow.artifacts] == [
            "analyst-output.md",
            "prd.md",
            "architect-output.md",
        ]
        assert [artifact.step for artifact in workflow.artifacts] == [0, 1, 2]
        assert set(workflow.agent_statuses.values()) == {AgentStatus.COMPLETED}
        assert workflow.current_agent_id is None
        assert workflow.completed_at is not None

    async def test_agent_context(
        self, engine: WorkflowStateMachine, runner: ScriptedRunner, three_steps: list[dict]
    ) -> None:
        """Agents see the prompt, their position and earlier artifacts."""
        await engine.start(
            WorkflowConfig(
                sequence=three_steps,
                workflow_id="wf-1",
                user_prompt="Todo app",
                context={"stack": "litestar"},
                metadata={"complexity": "simple"},
            )
        )

        _, step, context = runner.calls[1]
        assert step == 1
        assert context["workflow_id"] == "wf-1"
        assert context["total_steps"] == 3
        assert context["user_prompt"] == "Todo app"
        assert context["agent_role"] == "Product Management"
        assert context["workflow_context"] == {"stack": "litestar"}
        assert context["metadata"] == {"complexity": "simple"}
        assert [artifact["agent_id"] for artifact in context["previous_artifacts"]] == ["analyst"]
        assert context["elicitation_responses"] == []

    async def test_messages_and_checkpoints(self, engine: WorkflowStateMachine, three_steps: list[dict]) -> None:
        """Steps are announced, reported and bracketed by checkpoints."""
        await engine.start(WorkflowConfig(sequence=three_steps, workflow_id="wf-1"))

        activations = engine.get_message_history("wf-1", type=MessageType.ACTIVATION)
        assert [message.recipient for message in activations] == ["analyst", "pm", "architect"]
        assert activations[0].content["total_steps"] == 3

        completions = engine.get_message_history("wf-1", type=MessageType.COMPLETION)
        assert [message.metadata["step"] for message in completions] == [0, 1, 2]
        assert len(engine.get_message_history("wf-1", type=MessageType.WORKFLOW_COMPLETE)) == 1

        types = [cp.type for cp in await engine.checkpoints.list_stored_checkpoints("wf-1")]
        assert types[0] == "workflow_initialized"
        assert types[1:3] == ["before_agent_analyst", "after_agent_analyst"]
        assert types[-1] == "workflow_completed"
        assert len(types) == 8

    async def test_not_running_does_nothing(
        self, engine: WorkflowStateMachine, runner: ScriptedRunner, three_steps: list[dict]
    ) -> None:
        """execute_next_step is a no-op outside RUNNING."""
        await engine.start(WorkflowConfig(sequence=three_steps, workflow_id="wf-1"))
        calls = len(runner.calls)

        assert await engine.executor.execute_next_step("wf-1") is False
        assert len(runner.calls) == calls


@pytest.mark.integration
@pytest.mark.asyncio
class TestStructuredFailures:
    """Tests for step failures that do not stop the workflow."""

    async def test_agent_error_is_recorded_and_workflow_continues(
        self, engine: WorkflowStateMachine, runner: ScriptedRunner, three_steps: list[dict]
    ) -> None:
        """A failing agent is recorded and the next step still runs."""
        runner.script("pm", RuntimeError("model refused"))

        workflow = await engine.start(WorkflowConfig(sequence=three_steps, workflow_id="wf-1"))

        assert workflow.status == WorkflowStatus.COMPLETED
        assert runner.agents_called == ["analyst", "pm", "architect"]
        assert workflow.agent_statuses["pm"] == AgentStatus.ERROR
        assert len(workflow.errors) == 1
        error = workflow.errors[0]
        assert error.type == "execution_error"
        assert error.message == "model refused"
        assert error.agent_id == "pm"
        assert error.step == 1
        assert [artifact.agent_id for artifact in workflow.artifacts] == ["analyst", "architect"]

    async def test_unsuccessful_result(
        self, engine: WorkflowStateMachine, runner: ScriptedRunner, three_steps: list[dict]
    ) -> None:
        """A result with success=False is recorded like an error."""
        runner.script("analyst", AgentExecutionResult(success=False, error="no data"))

        workflow = await engine.start(WorkflowConfig(sequence=three_steps, workflow_id="wf-1"))

        assert workflow.status == WorkflowStatus.COMPLETED
        assert workflow.errors[0].message == "no data"
        errors = engine.get_message_history("wf-1", type=MessageType.ERROR)
        assert errors[0].sender == "analyst"

    async def test_timeout_after_retries(
        self, engine: WorkflowStateMachine, runner: ScriptedRunner, three_steps: list[dict]
    ) -> None:
        """A step that keeps timing out is recorded as a timeout."""
        three_steps[0]["timeout"] = 0.05
        runner.script("analyst", _slow, _slow)

        workflow = await engine.start(WorkflowConfig(sequence=three_steps, workflow_id="wf-1"))

        assert workflow.status == WorkflowStatus.COMPLETED
        assert workflow.agent_statuses["analyst"] == AgentStatus.TIMEOUT
        error = workflow.errors[0]
        assert error.type == "timeout"
        assert error.details == {"attempts": 2, "timed_out": True}
        assert error.message == "Agent 'analyst' timed out after 0.05s (2 attempts)"
        assert runner.agents_called == ["analyst", "analyst", "pm", "architect"]

    async def test_timeout_then_success(
        self, engine: WorkflowStateMachine, runner: ScriptedRunner, outcomes: Any, three_steps: list[dict]
    ) -> None:
        """A retry after a timeout can still succeed."""
        three_steps[0]["timeout"] = 0.05
        runner.script("analyst", _slow, outcomes.ok("analysis"))

        workflow = await engine.start(WorkflowConfig(sequence=three_steps, workflow_id="wf-1"))

        assert workflow.errors == []
        assert workflow.artifacts[0].content == "analysis"
        completion = engine.get_message_history("wf-1", type=MessageType.COMPLETION)[0]
        assert completion.content["attempts"] == 2


@pytest.mark.integration
@pytest.mark.asyncio
class TestCriticalFailures:
    """Tests for failures that escape step execution."""

    async def test_rolls_back_to_last_good_checkpoint(
        self, engine: WorkflowStateMachine, runner: ScriptedRunner, three_steps: list[dict]
    ) -> None:
        """A critical failure rolls back past the failing agent's checkpoint."""
        runner.script("pm", LookupError("agent definition missing"))

        workflow = await engine.start(WorkflowConfig(sequence=three_steps, workflow_id="wf-1"))

        assert workflow.status == WorkflowStatus.ROLLED_BACK
        assert workflow.current_step_index == 1
        assert [artifact.agent_id for artifact in workflow.artifacts] == ["analyst"]
        checkpoint = await engine.checkpoints.get_checkpoint("wf-1", workflow.rolled_back_to or "")
        assert checkpoint.type == "after_agent_analyst"
        assert workflow.errors[-1].type == "critical_failure"
        assert workflow.errors[-1].details["rolled_back_to"] == checkpoint.id

        resumed = await engine.resume("wf-1")

        assert resumed.status == WorkflowStatus.COMPLETED
        assert runner.agents_called == ["analyst", "pm", "pm", "architect"]

    async def test_errors_without_checkpoints(
        self, engine: WorkflowStateMachine, runner: ScriptedRunner, three_steps: list[dict]
    ) -> None:
        """Without a checkpoint to return to the workflow errors out."""
        runner.script("pm", LookupError("agent definition missing"))

        workflow = await engine.start(
            WorkflowConfig(sequence=three_steps, workflow_id="wf-1", checkpoint_enabled=False)
        )

        assert workflow.status == WorkflowStatus.ERROR
        assert workflow.error == "agent definition missing"
        assert workflow.agent_statuses["pm"] == AgentStatus.ERROR
        assert workflow.errors[-1].type == "critical_failure"
        assert runner.agents_called == ["analyst", "pm"]
        assert workflow in engine.workflows.history()

    async def test_sink_is_not_called_for_failed_workflows(
        self, runner: ScriptedRunner, recording_sink: Any, three_steps: list[dict]
    ) -> None:
        """Artifacts are only exported on completion."""
        engine = WorkflowStateMachine(runner, artifact_sink=recording_sink)
        runner.script("analyst", LookupError("missing"))

        await engine.start(WorkflowConfig(sequence=three_steps, workflow_id="wf-1", checkpoint_enabled=False))

        assert recording_sink.saved == []


@pytest.mark.integration
@pytest.mark.asyncio
class TestStaleResults:
    """Tests for results that arrive after the workflow moved on."""

    async def test_result_after_pause_is_discarded(
        self, engine: WorkflowStateMachine, runner: ScriptedRunner, outcomes: Any, three_steps: list[dict]
    ) -> None:
        """Pausing during a step discards its result; resume runs it again."""

        async def pause_midway(workflow: Any, step: Any, context: Any) -> AgentExecutionResult:
            await engine.pause(workflow.id)
            return outcomes.ok("stale")(workflow, step, context)

        runner.script("analyst", pause_midway)

        workflow = await engine.start(WorkflowConfig(sequence=three_steps, workflow_id="wf-1"))

        assert workflow.status == WorkflowStatus.PAUSED
        assert workflow.current_step_index == 0
        assert workflow.artifacts == []

        resumed = await engine.resume("wf-1")

        assert resumed.status == WorkflowStatus.COMPLETED
        assert resumed.artifacts[0].content == "analyst output"
        assert runner.agents_called == ["analyst", "analyst", "pm", "architect"]

    async def test_result_after_cancel_is_discarded(
        self, engine: WorkflowStateMachine, runner: ScriptedRunner, outcomes: Any, three_steps: list[dict]
    ) -> None:
        """Cancelling during a step discards its result and stops the run."""

        async def cancel_midway(workflow: Any, step: Any, context: Any) -> AgentExecutionResult:
            await engine.cancel(workflow.id)
            return outcomes.ok("stale")(workflow, step, context)

        runner.script("pm", cancel_midway)

        workflow = await engine.start(WorkflowConfig(sequence=three_steps, workflow_id="wf-1"))

        assert workflow.status == WorkflowStatus.CANCELLED
        assert workflow.current_step_index == 1
        assert [artifact.agent_id for artifact in workflow.artifacts] == ["analyst"]
        assert runner.agents_called == ["analyst", "pm"]

    async def test_failure_after_cancel_is_ignored(
        self, engine: WorkflowStateMachine, runner: ScriptedRunner, three_steps: list[dict]
    ) -> None:
        """A critical failure of a cancelled step does not touch the workflow."""

        async def cancel_then_fail(workflow: Any, step: Any, context: Any) -> AgentExecutionResult:
            await engine.cancel(workflow.id)
            raise LookupError("gone")

        runner.script("analyst", cancel_then_fail)

        workflow = await engine.start(WorkflowConfig(sequence=three_steps, workflow_id="wf-1"))

        assert workflow.status == WorkflowStatus.CANCELLED
        assert workflow.errors == []
        assert workflow.rolled_back_to is None
