"""Tests for type definitions, enums and core data models."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest


@pytest.mark.unit
class TestWorkflowStatus:
    """Tests for WorkflowStatus enum."""

    def test_values_are_lowercase_names(self) -> None:
        """Statuses persist as their lowercase member names."""
        from litestar_agent_workflows.core.types import WorkflowStatus

        assert WorkflowStatus.RUNNING == "running"
        assert WorkflowStatus.PAUSED_FOR_ELICITATION == "paused_for_elicitation"
        assert str(WorkflowStatus.ROLLED_BACK) == "rolled_back"
        assert WorkflowStatus("cancelled") is WorkflowStatus.CANCELLED

    @pytest.mark.parametrize(
        ("status", "terminal"),
        [
            ("completed", True),
            ("error", True),
            ("cancelled", True),
            ("running", False),
            ("paused", False),
            ("rolled_back", False),
        ],
    )
    def test_is_terminal(self, status: str, terminal: bool) -> None:
        """Only completed, error and cancelled are terminal."""
        from litestar_agent_workflows.core.types import WorkflowStatus

        assert WorkflowStatus(status).is_terminal is terminal


@pytest.mark.unit
class TestOtherEnums:
    """Tests for the remaining enums."""

    def test_message_types(self) -> None:
        """Message types cover the whole workflow conversation."""
        from litestar_agent_workflows.core.types import MessageType

        assert {str(member) for member in MessageType} == {
            "activation",
            "completion",
            "error",
            "inter_agent",
            "elicitation_request",
            "elicitation_response",
            "system",
            "workflow_complete",
        }

    def test_circuit_states(self) -> None:
        """Circuit breakers know three states."""
        from litestar_agent_workflows.core.types import CircuitState

        assert list(CircuitState) == [CircuitState.CLOSED, CircuitState.OPEN, CircuitState.HALF_OPEN]
        assert CircuitState.HALF_OPEN == "half_open"

    def test_error_categories(self) -> None:
        """Provider failures fall into three categories."""
        from litestar_agent_workflows.core.types import ErrorCategory

        assert {str(member) for member in ErrorCategory} == {"transient", "quota_exceeded", "fatal"}


@pytest.mark.unit
class TestModels:
    """Tests for the core data models."""

    def test_generate_id(self) -> None:
        """Identifiers are unique and optionally prefixed."""
        from litestar_agent_workflows.core.models import generate_id

        first, second = generate_id("cp"), generate_id("cp")

        assert first.startswith("cp_")
        assert first != second
        assert "_" not in generate_id()

    def test_step_from_dict_accepts_short_agent_key(self) -> None:
        """Templates may name the agent with ``agent``."""
        from litestar_agent_workflows.core.models import Step

        step = Step.from_dict({"agent": "pm", "creates": "prd.md", "order": 7}, order=1)

        assert step.agent_id == "pm"
        assert step.creates == "prd.md"
        assert step.order == 1
        assert Step.from_dict(step.to_dict()) == step

    def test_steps_are_immutable(self) -> None:
        """Validated steps cannot be changed."""
        from dataclasses import FrozenInstanceError

        from litestar_agent_workflows.core.models import Step

        step = Step(agent_id="pm")

        with pytest.raises(FrozenInstanceError):
            step.agent_id = "qa"  # type: ignore[misc]

    def test_message_serialization(self) -> None:
        """Messages serialize their type as a string and parse it back."""
        from litestar_agent_workflows.core.models import Message
        from litestar_agent_workflows.core.types import MessageType

        timestamp = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        message = Message(
            workflow_id="wf-1",
            sender="system",
            recipient="pm",
            type=MessageType.ACTIVATION,
            content={"step": 1},
            timestamp=timestamp,
        )

        data = message.to_dict()

        assert data["type"] == "activation"
        assert data["timestamp"] == "2024-01-02T03:04:05+00:00"
        restored = Message.from_dict(data)
        assert restored.type is MessageType.ACTIVATION
        assert restored.timestamp == timestamp

    def test_workflow_progress(self) -> None:
        """Progress follows the current step index."""
        from litestar_agent_workflows.core.models import Step, Workflow

        workflow = Workflow(id="wf-1", name="demo", sequence=[Step("analyst"), Step("pm"), Step("dev")])

        assert workflow.progress == 0
        assert workflow.current_step == Step("analyst")

        workflow.current_step_index = 2
        assert workflow.progress == 67

        workflow.current_step_index = 3
        assert workflow.progress == 100
        assert workflow.current_step is None
        assert Workflow(id="wf-2", name="empty", sequence=[]).progress == 0

    def test_workflow_to_dict(self) -> None:
        """The serialized workflow is JSON compatible."""
        from litestar_agent_workflows.core.models import Artifact, Step, Workflow
        from litestar_agent_workflows.core.types import AgentStatus, WorkflowStatus

        workflow = Workflow(
            id="wf-1",
            name="demo",
            sequence=[Step("analyst")],
            status=WorkflowStatus.RUNNING,
            agent_statuses={"analyst": AgentStatus.ACTIVE},
            artifacts=[Artifact(filename="brief.md", content="text", agent_id="analyst", step=0)],
        )

        data = workflow.to_dict()

        assert data["status"] == "running"
        assert data["agent_statuses"] == {"analyst": "active"}
        assert data["sequence"][0]["agent_id"] == "analyst"
        assert data["artifacts"][0]["filename"] == "brief.md"
        assert data["elicitation_pending"] is None
        assert data["completed_at"] is None
