"""Domain events and the in-process event bus.

The communicator emits these events whenever a message of the matching type is
sent. Handlers can be plain functions or coroutines; a failing handler is
logged and never interrupts the workflow.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from litestar_agent_workflows.core.models import utcnow

if TYPE_CHECKING:
    from collections.abc import Callable

__all__ = [
    "AGENT_ACTIVATED",
    "AGENT_COMMUNICATION",
    "AGENT_COMPLETED",
    "ELICITATION_REQUESTED",
    "MESSAGE_SENT",
    "WORKFLOW_COMPLETED",
    "WORKFLOW_ERROR",
    "AgentActivated",
    "AgentCommunication",
    "AgentCompleted",
    "ElicitationRequested",
    "EventBus",
    "WorkflowCompletedEvent",
    "WorkflowErrorOccurred",
    "WorkflowEvent",
]

logger = logging.getLogger(__name__)

AGENT_ACTIVATED = "agent:activated"
AGENT_COMPLETED = "agent:completed"
AGENT_COMMUNICATION = "agent:communication"
WORKFLOW_ERROR = "workflow:error"
ELICITATION_REQUESTED = "elicitation:request"
WORKFLOW_COMPLETED = "workflow:complete"
MESSAGE_SENT = "message"


@dataclass
class WorkflowEvent:
    """Base class for all workflow events.

    Attributes:
        workflow_id: Workflow the event belongs to.
        message_id: Message that caused the event.
        timestamp: When the event occurred.
    """

    workflow_id: str
    message_id: str
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class AgentActivated(WorkflowEvent):
    """Event emitted when an agent receives its activation message."""

    agent_id: str = ""
    context: Any = None


@dataclass
class AgentCompleted(WorkflowEvent):
    """Event emitted when an agent reports completion."""

    agent_id: str = ""
    result: Any = None


@dataclass
class WorkflowErrorOccurred(WorkflowEvent):
    """Event emitted when an error message is sent."""

    agent_id: str = ""
    error: Any = None


@dataclass
class AgentCommunication(WorkflowEvent):
    """Event emitted when one agent messages another."""

    sender: str = ""
    recipient: str = ""
    content: Any = None


@dataclass
class ElicitationRequested(WorkflowEvent):
    """Event emitted when an agent asks the user for input."""

    agent_id: str = ""
    content: Any = None


@dataclass
class WorkflowCompletedEvent(WorkflowEvent):
    """Event emitted when a workflow completes."""

    content: Any = None


class EventBus:
    """Minimal async publish/subscribe bus keyed by event name.

    Example:
        >>> bus = EventBus()
        >>> received = []
        >>> bus.on("agent:activated", received.append)
        >>> await bus.emit("agent:activated", event)
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[[Any], Any]]] = defaultdict(list)

    def on(self, event_name: str, handler: Callable[[Any], Any]) -> Callable[[], None]:
        """Register a handler.

        Args:
            event_name: Name of the event to listen to.
            handler: Function or coroutine function receiving the event payload.

        Returns:
            A callable that removes the handler again.
        """
        self._handlers[event_name].append(handler)
        return lambda: self.off(event_name, handler)

    def off(self, event_name: str, handler: Callable[[Any], Any]) -> None:
        """Remove a previously registered handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event_name)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self._handlers[event_name]

    def listener_count(self, event_name: str) -> int:
        """Return the number of handlers registered for ``event_name``."""
        return len(self._handlers.get(event_name, ()))

    async def emit(self, event_name: str, payload: Any = None) -> None:
        """Deliver ``payload`` to every handler registered for ``event_name``.

        Args:
            event_name: Name of the event.
            payload: Event payload passed to each handler.
        """
        for handler in list(self._handlers.get(event_name, ())):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Event handler for '%s' failed", event_name)
