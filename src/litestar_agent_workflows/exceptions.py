"""Exception hierarchy for litestar-agent-workflows."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from litestar_agent_workflows.core.types import ErrorCategory, WorkflowStatus

__all__ = (
    "AgentWorkflowsError",
    "AllProvidersFailedError",
    "CheckpointNotFoundError",
    "CircuitOpenError",
    "CriticalFailureError",
    "InvalidStateError",
    "NotFoundError",
    "NotInitializedError",
    "ProviderError",
    "RateLimitError",
    "RequestCancelledError",
    "ValidationError",
    "WorkflowNotFoundError",
)


class AgentWorkflowsError(Exception):
    """Base exception for all litestar-agent-workflows errors.

    All exceptions raised by the engine and the invocation layer inherit from
    this class, so callers can catch every library error with one clause.
    """


class ValidationError(AgentWorkflowsError):
    """Raised when input is rejected before any execution happens.

    Validation errors are never retried.

    Attributes:
        errors: List of validation error messages.
    """

    def __init__(self, errors: Sequence[str] | str) -> None:
        """Initialize the exception with validation errors.

        Args:
            errors: A single message or a list of validation error messages.
        """
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("Validation failed: " + "; ".join(self.errors))


class NotFoundError(AgentWorkflowsError):
    """Raised when a requested entity does not exist."""


class WorkflowNotFoundError(NotFoundError):
    """Raised when a workflow is neither active, in history, nor persisted.

    Attributes:
        workflow_id: The ID of the workflow that was not found.
    """

    def __init__(self, workflow_id: str) -> None:
        """Initialize the exception with workflow details.

        Args:
            workflow_id: The ID of the workflow that was not found.
        """
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' not found")


class CheckpointNotFoundError(NotFoundError):
    """Raised when a checkpoint does not exist for the given workflow.

    Attributes:
        checkpoint_id: The ID of the missing checkpoint.
        workflow_id: The workflow the checkpoint was looked up for.
    """

    def __init__(self, checkpoint_id: str, workflow_id: str | None = None) -> None:
        """Initialize the exception with checkpoint details.

        Args:
            checkpoint_id: The ID of the missing checkpoint.
            workflow_id: The workflow the checkpoint was looked up for.
        """
        self.checkpoint_id = checkpoint_id
        self.workflow_id = workflow_id
        msg = f"Checkpoint '{checkpoint_id}'"
        if workflow_id:
            msg += f" for workflow '{workflow_id}'"
        msg += " not found"
        super().__init__(msg)


class InvalidStateError(AgentWorkflowsError):
    """Raised when an operation is not legal for the workflow's current status.

    Attributes:
        workflow_id: The workflow the operation targeted.
        status: The status the workflow was in.
        operation: The operation that was attempted.
    """

    def __init__(self, workflow_id: str, status: WorkflowStatus | str, operation: str) -> None:
        """Initialize the exception with state details.

        Args:
            workflow_id: The workflow the operation targeted.
            status: The status the workflow was in.
            operation: The operation that was attempted.
        """
        self.workflow_id = workflow_id
        self.status = status
        self.operation = operation
        super().__init__(f"Cannot {operation} workflow '{workflow_id}' in status '{status}'")


class CriticalFailureError(AgentWorkflowsError):
    """Raised when an exception escapes step execution.

    A critical failure triggers one auto-rollback attempt. When no rollback is
    possible the workflow is marked as errored with this error preserved.

    Attributes:
        workflow_id: The workflow that failed.
        agent_id: The agent whose step was executing.
        cause: The underlying exception.
    """

    def __init__(self, workflow_id: str, agent_id: str | None, cause: BaseException) -> None:
        """Initialize the exception with failure details.

        Args:
            workflow_id: The workflow that failed.
            agent_id: The agent whose step was executing.
            cause: The underlying exception.
        """
        self.workflow_id = workflow_id
        self.agent_id = agent_id
        self.cause = cause
        super().__init__(f"Critical failure in workflow '{workflow_id}' at agent '{agent_id}': {cause}")


class ProviderError(AgentWorkflowsError):
    """Raised when an AI provider call fails.

    Attributes:
        provider: Name of the provider that failed.
        category: Categorization used by the retry and fallback logic.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        category: ErrorCategory | None = None,
    ) -> None:
        """Initialize the exception with provider details.

        Args:
            message: Description of the failure.
            provider: Name of the provider that failed.
            category: Error category. ``None`` lets the retry policy infer it.
        """
        self.provider = provider
        self.category = category
        super().__init__(message)


class CircuitOpenError(ProviderError):
    """Raised when a call is short-circuited by an open circuit breaker.

    Attributes:
        retry_after: Seconds until the breaker allows a trial call.
    """

    def __init__(self, provider: str, retry_after: float = 0.0) -> None:
        """Initialize the exception with breaker details.

        Args:
            provider: Name of the protected provider.
            retry_after: Seconds until the breaker allows a trial call.
        """
        from litestar_agent_workflows.core.types import ErrorCategory

        self.retry_after = max(retry_after, 0.0)
        super().__init__(
            f"Circuit breaker for '{provider}' is open; retry in {self.retry_after:.1f}s",
            provider=provider,
            category=ErrorCategory.TRANSIENT,
        )


class AllProvidersFailedError(AgentWorkflowsError):
    """Raised when every configured provider failed for one call.

    Attributes:
        failures: Mapping of provider name to its categorized failure.
    """

    def __init__(self, failures: Mapping[str, Mapping[str, Any]]) -> None:
        """Initialize the exception with per-provider failures.

        Args:
            failures: Mapping of provider name to ``{"category", "error"}``.
        """
        self.failures = dict(failures)
        details = ", ".join(
            f"{name} ({failure.get('category')}): {failure.get('error')}" for name, failure in self.failures.items()
        )
        super().__init__(f"All AI providers failed: [{details}]")


class RateLimitError(AgentWorkflowsError):
    """Raised when a user reached a usage ceiling before a call was made.

    Attributes:
        user_id: The user that hit the limit.
        reason: Stable, human-readable reason.
        current: Current value of the exceeded measure.
        limit: Configured ceiling.
    """

    def __init__(
        self,
        user_id: str,
        reason: str,
        current: float | None = None,
        limit: float | None = None,
    ) -> None:
        """Initialize the exception with usage details.

        Args:
            user_id: The user that hit the limit.
            reason: Stable, human-readable reason.
            current: Current value of the exceeded measure.
            limit: Configured ceiling.
        """
        self.user_id = user_id
        self.reason = reason
        self.current = current
        self.limit = limit
        super().__init__(f"Usage limit exceeded: {reason}")


class NotInitializedError(AgentWorkflowsError):
    """Raised when the invocation layer is used without any provider configured."""

    def __init__(self, message: str = "AI invocation layer has no provider configured") -> None:
        """Initialize the exception.

        Args:
            message: Optional custom message.
        """
        super().__init__(message)


class RequestCancelledError(AgentWorkflowsError):
    """Raised for queued calls dropped by ``RequestQueue.clear_queue``.

    Attributes:
        user_id: The user whose queue was cleared.
    """

    def __init__(self, user_id: str) -> None:
        """Initialize the exception.

        Args:
            user_id: The user whose queue was cleared.
        """
        self.user_id = user_id
        super().__init__(f"Queued request for user '{user_id}' was cancelled")
