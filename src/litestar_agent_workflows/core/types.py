"""Core type definitions for litestar-agent-workflows.

This module defines the enums shared by the workflow engine and the AI
invocation layer. Enum values are the lowercase member names, which is also
how they are persisted.
"""

from __future__ import annotations

import sys
from enum import Enum, auto

# StrEnum backport for Python < 3.11
if sys.version_info >= (3, 11):
    from enum import StrEnum
else:

    class StrEnum(str, Enum):
        """String enumeration compatibility for Python < 3.11."""

        @staticmethod
        def _generate_next_value_(name: str, start: int, count: int, last_values: list[str]) -> str:
            return name.lower()

        def __str__(self) -> str:
            return str(self.value)


__all__ = [
    "TERMINAL_STATUSES",
    "AgentStatus",
    "ChannelStatus",
    "CircuitState",
    "ErrorCategory",
    "MessageType",
    "StrEnum",
    "WorkflowStatus",
]


class WorkflowStatus(StrEnum):
    """Lifecycle status of a workflow.

    Attributes:
        INITIALIZING: Workflow was created and is being validated.
        RUNNING: Steps are being executed.
        PAUSED: Execution was paused by a caller.
        PAUSED_FOR_ELICITATION: Waiting for a human answer to an agent question.
        ROLLING_BACK: A checkpoint is being restored.
        ROLLED_BACK: A checkpoint was restored; execution waits for a resume.
        COMPLETED: Every step ran.
        ERROR: A critical failure could not be recovered.
        CANCELLED: Execution was cancelled by a caller.
    """

    INITIALIZING = auto()
    RUNNING = auto()
    PAUSED = auto()
    PAUSED_FOR_ELICITATION = auto()
    ROLLING_BACK = auto()
    ROLLED_BACK = auto()
    COMPLETED = auto()
    ERROR = auto()
    CANCELLED = auto()

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is possible from this status."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({WorkflowStatus.COMPLETED, WorkflowStatus.ERROR, WorkflowStatus.CANCELLED})


class AgentStatus(StrEnum):
    """Status of an agent within a workflow.

    Attributes:
        IDLE: Agent is not working on anything.
        ACTIVE: Agent is executing its step.
        PAUSED: Agent is waiting on an elicitation answer.
        COMPLETED: Agent finished its step.
        ERROR: Agent failed its step.
        TIMEOUT: Agent exceeded its step timeout.
    """

    IDLE = auto()
    ACTIVE = auto()
    PAUSED = auto()
    COMPLETED = auto()
    ERROR = auto()
    TIMEOUT = auto()


class ChannelStatus(StrEnum):
    """Status of a per-agent communication channel."""

    IDLE = auto()
    ACTIVE = auto()
    COMPLETED = auto()
    ERROR = auto()


class MessageType(StrEnum):
    """Types of messages exchanged within a workflow."""

    ACTIVATION = auto()
    COMPLETION = auto()
    ERROR = auto()
    INTER_AGENT = auto()
    ELICITATION_REQUEST = auto()
    ELICITATION_RESPONSE = auto()
    SYSTEM = auto()
    WORKFLOW_COMPLETE = auto()


class CircuitState(StrEnum):
    """State of a circuit breaker.

    Attributes:
        CLOSED: Calls pass through.
        OPEN: Calls fail fast until the reset timeout elapses.
        HALF_OPEN: A single trial call is allowed.
    """

    CLOSED = auto()
    OPEN = auto()
    HALF_OPEN = auto()


class ErrorCategory(StrEnum):
    """Classification of provider failures.

    Attributes:
        TRANSIENT: Worth retrying on the same provider.
        QUOTA_EXCEEDED: The provider's quota is exhausted; move to the next one.
        FATAL: The request itself is broken; move to the next provider.
    """

    TRANSIENT = auto()
    QUOTA_EXCEEDED = auto()
    FATAL = auto()
