"""Append-only message log, typed event emission and agent channels."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from litestar_agent_workflows.core.events import (
    AGENT_ACTIVATED,
    AGENT_COMMUNICATION,
    AGENT_COMPLETED,
    ELICITATION_REQUESTED,
    MESSAGE_SENT,
    WORKFLOW_COMPLETED,
    WORKFLOW_ERROR,
    AgentActivated,
    AgentCommunication,
    AgentCompleted,
    ElicitationRequested,
    EventBus,
    WorkflowCompletedEvent,
    WorkflowErrorOccurred,
)
from litestar_agent_workflows.core.models import Message
from litestar_agent_workflows.core.types import ChannelStatus, MessageType
from litestar_agent_workflows.exceptions import ValidationError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from litestar_agent_workflows.core.protocols import NotificationPublisher

__all__ = ["AgentChannel", "AgentCommunicator", "summarize_message"]

logger = logging.getLogger(__name__)

_NOTIFICATIONS = {
    MessageType.ACTIVATION: "activation",
    MessageType.COMPLETION: "completion",
    MessageType.ERROR: "error",
    MessageType.ELICITATION_REQUEST: "elicitation",
    MessageType.WORKFLOW_COMPLETE: "workflow_complete",
}


@dataclass
class AgentChannel:
    """Progress record of one agent within one workflow."""

    workflow_id: str
    agent_id: str
    status: ChannelStatus = ChannelStatus.IDLE
    started_at: datetime | None = None
    ended_at: datetime | None = None
    context: Any = None
    result: Any = None
    error: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize the channel to a dictionary."""
        return {
            "workflow_id": self.workflow_id,
            "agent_id": self.agent_id,
            "status": str(self.status),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }


def _field(content: Any, key: str, default: str) -> str:
    if isinstance(content, dict) and content.get(key):
        return str(content[key])
    return default


def summarize_message(message: Message) -> str:
    """Return a one-line, human readable summary of ``message``."""
    if message.type == MessageType.ACTIVATION:
        return f"Activating {message.recipient} agent"
    if message.type == MessageType.COMPLETION:
        return f"{message.sender} completed task"
    if message.type == MessageType.ERROR:
        return f"Error in {message.sender}: {_field(message.content, 'error', 'Unknown error')}"
    if message.type == MessageType.INTER_AGENT:
        return f"{message.sender} -> {message.recipient}: {_field(message.content, 'summary', 'Communication')}"
    if message.type == MessageType.ELICITATION_REQUEST:
        return f"{message.sender} requests user input: {_field(message.content, 'section_title', 'Input required')}"
    if message.type == MessageType.ELICITATION_RESPONSE:
        return f"User answered {message.recipient}"
    if message.type == MessageType.WORKFLOW_COMPLETE:
        return "Workflow completed successfully"
    if isinstance(message.content, str):
        return message.content if len(message.content) <= 120 else message.content[:117] + "..."
    return f"{message.type} message"


class AgentCommunicator:
    """Message bus of the workflow engine.

    Every sent message is validated, stamped, appended to the per-workflow
    log and dispatched as typed events on ``events``. Progress events are also
    forwarded to the optional ``NotificationPublisher``.

    Attributes:
        events: Event bus the typed events are emitted on.
        publisher: Optional external fan-out.
    """

    def __init__(self, events: EventBus | None = None, publisher: NotificationPublisher | None = None) -> None:
        self.events = events or EventBus()
        self.publisher = publisher
        self._history: dict[str, list[Message]] = defaultdict(list)
        self._channels: dict[tuple[str, str], AgentChannel] = {}

    @staticmethod
    def validate_message(sender: Any, recipient: Any, message_type: Any) -> list[str]:
        """Return the validation errors of a message, empty when valid."""
        errors = []
        if not sender:
            errors.append("Message 'sender' is required")
        if not recipient:
            errors.append("Message 'recipient' is required")
        if not message_type:
            errors.append("Message 'type' is required")
        elif message_type not in {str(item) for item in MessageType}:
            errors.append(f"Invalid message type '{message_type}'")
        return errors

    async def send_message(
        self,
        workflow_id: str,
        *,
        sender: str,
        recipient: str,
        type: MessageType | str,  # noqa: A002
        content: Any = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Message:
        """Validate, record and dispatch a message.

        Args:
            workflow_id: Workflow the message belongs to.
            sender: Sending agent, ``"user"`` or ``"system"``.
            recipient: Receiving agent, ``"user"``, ``"system"`` or ``"all"``.
            type: One of the ``MessageType`` values.
            content: Payload.
            metadata: Extra information stored with the message.

        Returns:
            The recorded message, with id and timestamp assigned.

        Raises:
            ValidationError: If a field is missing or the type is unknown.
        """
        errors = self.validate_message(sender, recipient, type)
        if errors:
            raise ValidationError(errors)

        message = Message(
            workflow_id=workflow_id,
            sender=sender,
            recipient=recipient,
            type=MessageType(type),
            content=content,
            metadata=dict(metadata or {}),
        )
        self._history[workflow_id].append(message)
        await self._dispatch(message)
        await self._notify(message)
        return message

    async def _dispatch(self, message: Message) -> None:
        now = message.timestamp
        workflow_id = message.workflow_id
        if message.type == MessageType.ACTIVATION:
            channel = self._channel(workflow_id, message.recipient)
            channel.status = ChannelStatus.ACTIVE
            channel.started_at = now
            channel.ended_at = None
            channel.context = message.content
            await self.events.emit(
                AGENT_ACTIVATED,
                AgentActivated(workflow_id, message.id, now, agent_id=message.recipient, context=message.content),
            )
        elif message.type == MessageType.COMPLETION:
            channel = self._channel(workflow_id, message.sender)
            channel.status = ChannelStatus.COMPLETED
            channel.ended_at = now
            channel.result = message.content
            await self.events.emit(
                AGENT_COMPLETED,
                AgentCompleted(workflow_id, message.id, now, agent_id=message.sender, result=message.content),
            )
        elif message.type == MessageType.ERROR:
            channel = self._channel(workflow_id, message.sender)
            channel.status = ChannelStatus.ERROR
            channel.ended_at = now
            channel.error = message.content
            await self.events.emit(
                WORKFLOW_ERROR,
                WorkflowErrorOccurred(workflow_id, message.id, now, agent_id=message.sender, error=message.content),
            )
        elif message.type == MessageType.INTER_AGENT:
            await self.events.emit(
                AGENT_COMMUNICATION,
                AgentCommunication(
                    workflow_id,
                    message.id,
                    now,
                    sender=message.sender,
                    recipient=message.recipient,
                    content=message.content,
                ),
            )
        elif message.type == MessageType.ELICITATION_REQUEST:
            await self.events.emit(
                ELICITATION_REQUESTED,
                ElicitationRequested(workflow_id, message.id, now, agent_id=message.sender, content=message.content),
            )
        elif message.type == MessageType.WORKFLOW_COMPLETE:
            await self.events.emit(
                WORKFLOW_COMPLETED,
                WorkflowCompletedEvent(workflow_id, message.id, now, content=message.content),
            )
        await self.events.emit(MESSAGE_SENT, message)

    async def _notify(self, message: Message) -> None:
        event = _NOTIFICATIONS.get(message.type)
        if self.publisher is None or event is None:
            return
        payload = {**message.to_dict(), "summary": summarize_message(message)}
        try:
            await self.publisher.publish(event, payload)
        except Exception:
            logger.exception("Failed to publish '%s' notification for workflow '%s'", event, message.workflow_id)

    def _channel(self, workflow_id: str, agent_id: str) -> AgentChannel:
        key = (workflow_id, agent_id)
        if key not in self._channels:
            self._channels[key] = AgentChannel(workflow_id=workflow_id, agent_id=agent_id)
        return self._channels[key]

    def get_message_history(
        self,
        workflow_id: str,
        *,
        type: MessageType | str | None = None,  # noqa: A002
        agent_id: str | None = None,
        limit: int | None = None,
    ) -> list[Message]:
        """Return a filtered view of a workflow's message log.

        Args:
            workflow_id: Workflow to read.
            type: Only messages of this type.
            agent_id: Only messages sent by or addressed to this agent.
            limit: Only the newest ``limit`` messages, most recent first.

        Returns:
            Matching messages, chronological unless ``limit`` is given.
        """
        messages = list(self._history.get(workflow_id, ()))
        if type is not None:
            messages = [message for message in messages if message.type == type]
        if agent_id is not None:
            messages = [message for message in messages if agent_id in (message.sender, message.recipient)]
        if limit is not None:
            return list(reversed(messages[-limit:])) if limit > 0 else []
        return messages

    def restore(self, workflow_id: str, messages: Iterable[Message]) -> bool:
        """Seed the log of a workflow reloaded from storage.

        Only the messages kept on the workflow itself survive a restart, so the
        restored log is a subset of the original one. A workflow that already
        has a log is left alone, and no events are emitted.

        Returns:
            Whether the log was seeded.
        """
        if self._history.get(workflow_id):
            return False
        restored = sorted(messages, key=lambda message: message.timestamp)
        if not restored:
            return False
        self._history[workflow_id] = restored
        return True

    def get_channel(self, workflow_id: str, agent_id: str) -> AgentChannel | None:
        """Return the channel of one agent, if it ever received a message."""
        return self._channels.get((workflow_id, agent_id))

    def get_channels(self, workflow_id: str) -> list[AgentChannel]:
        """Return every channel of a workflow."""
        return [channel for (owner, _), channel in self._channels.items() if owner == workflow_id]

    def get_active_channels(self, workflow_id: str) -> list[AgentChannel]:
        """Return the channels of a workflow whose agent is currently working."""
        return [channel for channel in self.get_channels(workflow_id) if channel.status == ChannelStatus.ACTIVE]

    def get_communication_timeline(self, workflow_id: str) -> list[dict[str, Any]]:
        """Return the message log as summarized timeline entries."""
        return [
            {
                "id": message.id,
                "timestamp": message.timestamp.isoformat(),
                "sender": message.sender,
                "recipient": message.recipient,
                "type": str(message.type),
                "summary": summarize_message(message),
            }
            for message in self._history.get(workflow_id, ())
        ]

    async def send_inter_agent_message(
        self,
        workflow_id: str,
        sender: str,
        recipient: str,
        content: Any,
    ) -> Message:
        """Send a message from one agent to another."""
        return await self.send_message(
            workflow_id,
            sender=sender,
            recipient=recipient,
            type=MessageType.INTER_AGENT,
            content=content,
        )

    async def broadcast_message(
        self,
        workflow_id: str,
        sender: str,
        content: Mapping[str, Any],
        recipients: Iterable[str] | None = None,
    ) -> list[Message]:
        """Send ``content`` to several agents of a workflow.

        Args:
            workflow_id: Workflow the agents belong to.
            sender: Sending agent.
            content: Payload; ``broadcast: True`` is added to it.
            recipients: Target agents. Defaults to every agent with a channel.

        Returns:
            The sent messages, one per recipient other than ``sender``.
        """
        targets = list(recipients) if recipients is not None else [c.agent_id for c in self.get_channels(workflow_id)]
        return [
            await self.send_inter_agent_message(workflow_id, sender, agent_id, {**content, "broadcast": True})
            for agent_id in dict.fromkeys(targets)
            if agent_id != sender
        ]

    def subscribe_to_workflow(
        self,
        workflow_id: str,
        handlers: Mapping[str, Callable[[Any], Any]],
    ) -> Callable[[], None]:
        """Register event handlers that only see events of one workflow.

        Args:
            workflow_id: Workflow to follow.
            handlers: Mapping of event name to handler.

        Returns:
            A callable that removes every registered handler.
        """
        removers = []
        for event_name, handler in handlers.items():

            def scoped(payload: Any, handler: Callable[[Any], Any] = handler) -> Any:
                if getattr(payload, "workflow_id", None) == workflow_id:
                    return handler(payload)
                return None

            removers.append(self.events.on(event_name, scoped))

        def unsubscribe() -> None:
            for remove in removers:
                remove()

        return unsubscribe

    def message_count(self, workflow_id: str) -> int:
        """Return the number of messages logged for a workflow."""
        return len(self._history.get(workflow_id, ()))

    def cleanup(self, workflow_id: str) -> None:
        """Forget the log and channels of a workflow."""
        self._history.pop(workflow_id, None)
        for key in [key for key in self._channels if key[0] == workflow_id]:
            del self._channels[key]
