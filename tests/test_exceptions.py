"""Tests for exception hierarchy."""

from __future__ import annotations

import pytest


@pytest.mark.unit
class TestAgentWorkflowsError:
    """Tests for base AgentWorkflowsError exception."""

    def test_every_error_inherits_from_base(self) -> None:
        """Every library error can be caught with the base class."""
        from litestar_agent_workflows import exceptions

        for name in exceptions.__all__:
            assert issubclass(getattr(exceptions, name), exceptions.AgentWorkflowsError)

    def test_base_exception_can_be_raised(self) -> None:
        """Test AgentWorkflowsError can be raised and caught."""
        from litestar_agent_workflows.exceptions import AgentWorkflowsError

        with pytest.raises(AgentWorkflowsError, match="test"):
            raise AgentWorkflowsError("test")


@pytest.mark.unit
class TestValidationError:
    """Tests for ValidationError."""

    def test_single_message(self) -> None:
        """A single message is wrapped in a list."""
        from litestar_agent_workflows.exceptions import ValidationError

        error = ValidationError("Workflow sequence is empty")

        assert error.errors == ["Workflow sequence is empty"]
        assert str(error) == "Validation failed: Workflow sequence is empty"

    def test_multiple_messages(self) -> None:
        """Multiple messages are joined in the string form."""
        from litestar_agent_workflows.exceptions import ValidationError

        error = ValidationError(["a", "b"])

        assert error.errors == ["a", "b"]
        assert "a; b" in str(error)


@pytest.mark.unit
class TestNotFoundErrors:
    """Tests for the not found family."""

    def test_workflow_not_found(self) -> None:
        """WorkflowNotFoundError keeps the id."""
        from litestar_agent_workflows.exceptions import NotFoundError, WorkflowNotFoundError

        error = WorkflowNotFoundError("wf-1")

        assert isinstance(error, NotFoundError)
        assert error.workflow_id == "wf-1"
        assert str(error) == "Workflow 'wf-1' not found"

    def test_checkpoint_not_found_with_workflow(self) -> None:
        """CheckpointNotFoundError names the workflow when given."""
        from litestar_agent_workflows.exceptions import CheckpointNotFoundError

        error = CheckpointNotFoundError("cp-1", "wf-1")

        assert error.checkpoint_id == "cp-1"
        assert str(error) == "Checkpoint 'cp-1' for workflow 'wf-1' not found"
        assert str(CheckpointNotFoundError("cp-2")) == "Checkpoint 'cp-2' not found"


@pytest.mark.unit
class TestInvalidStateError:
    """Tests for InvalidStateError."""

    def test_message_names_operation_and_status(self) -> None:
        """The message names the operation and the status."""
        from litestar_agent_workflows.core.types import WorkflowStatus
        from litestar_agent_workflows.exceptions import InvalidStateError

        error = InvalidStateError("wf-1", WorkflowStatus.COMPLETED, "pause")

        assert error.operation == "pause"
        assert error.status == WorkflowStatus.COMPLETED
        assert str(error) == "Cannot pause workflow 'wf-1' in status 'completed'"


@pytest.mark.unit
class TestProviderErrors:
    """Tests for provider related errors."""

    def test_provider_error_defaults(self) -> None:
        """ProviderError without category leaves it to inference."""
        from litestar_agent_workflows.exceptions import ProviderError

        error = ProviderError("boom", provider="gemini")

        assert error.provider == "gemini"
        assert error.category is None

    def test_circuit_open_is_transient(self) -> None:
        """CircuitOpenError is a transient provider error."""
        from litestar_agent_workflows.core.types import ErrorCategory
        from litestar_agent_workflows.exceptions import CircuitOpenError, ProviderError

        error = CircuitOpenError("gemini", 12.5)

        assert isinstance(error, ProviderError)
        assert error.category == ErrorCategory.TRANSIENT
        assert error.retry_after == 12.5
        assert "12.5s" in str(error)

    def test_circuit_open_clamps_negative_retry(self) -> None:
        """A negative retry delay is reported as zero."""
        from litestar_agent_workflows.exceptions import CircuitOpenError

        assert CircuitOpenError("gemini", -3.0).retry_after == 0.0

    def test_all_providers_failed_lists_failures(self) -> None:
        """AllProvidersFailedError keeps every provider failure."""
        from litestar_agent_workflows.exceptions import AllProvidersFailedError

        error = AllProvidersFailedError(
            {
                "gemini": {"category": "quota_exceeded", "error": "quota"},
                "openai": {"category": "transient", "error": "503"},
            }
        )

        assert set(error.failures) == {"gemini", "openai"}
        assert "gemini (quota_exceeded): quota" in str(error)
        assert "openai (transient): 503" in str(error)

    def test_rate_limit_error(self) -> None:
        """RateLimitError carries the reason and the figures."""
        from litestar_agent_workflows.exceptions import RateLimitError

        error = RateLimitError("alice", "Daily request limit exceeded", 1000, 1000)

        assert error.user_id == "alice"
        assert error.current == 1000
        assert str(error) == "Usage limit exceeded: Daily request limit exceeded"


@pytest.mark.unit
class TestCriticalFailureError:
    """Tests for CriticalFailureError."""

    def test_wraps_cause(self) -> None:
        """The cause and the failing agent are preserved."""
        from litestar_agent_workflows.exceptions import CriticalFailureError

        cause = RuntimeError("kaboom")
        error = CriticalFailureError("wf-1", "pm", cause)

        assert error.cause is cause
        assert error.agent_id == "pm"
        assert "kaboom" in str(error)
