"""Tests for domain events and the event bus."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import pytest

from litestar_agent_workflows.core.events import (
    AGENT_ACTIVATED,
    AGENT_COMPLETED,
    AgentActivated,
    ElicitationRequested,
    EventBus,
    WorkflowEvent,
)


@pytest.mark.unit
class TestWorkflowEvents:
    """Tests for event payloads."""

    def test_agent_activated_event(self) -> None:
        """Test AgentActivated event creation."""
        event = AgentActivated(workflow_id="wf-1", message_id="msg_1", agent_id="pm", context={"step": 1})

        assert isinstance(event, WorkflowEvent)
        assert event.agent_id == "pm"
        assert event.context == {"step": 1}
        assert isinstance(event.timestamp, datetime)
        assert event.timestamp.tzinfo is not None

    def test_elicitation_requested_event(self) -> None:
        """Test ElicitationRequested event creation."""
        event = ElicitationRequested(workflow_id="wf-1", message_id="msg_2", agent_id="pm", content={"q": "?"})

        assert event.workflow_id == "wf-1"
        assert event.content == {"q": "?"}


@pytest.mark.unit
@pytest.mark.asyncio
class TestEventBus:
    """Tests for EventBus."""

    async def test_sync_and_async_handlers(self) -> None:
        """Both plain and coroutine handlers receive the payload."""
        bus = EventBus()
        received: list[Any] = []

        async def async_handler(payload: Any) -> None:
            received.append(("async", payload))

        bus.on(AGENT_ACTIVATED, lambda payload: received.append(("sync", payload)))
        bus.on(AGENT_ACTIVATED, async_handler)

        await bus.emit(AGENT_ACTIVATED, "payload")

        assert received == [("sync", "payload"), ("async", "payload")]

    async def test_events_are_routed_by_name(self) -> None:
        """Handlers only see the events they registered for."""
        bus = EventBus()
        received: list[Any] = []
        bus.on(AGENT_COMPLETED, received.append)

        await bus.emit(AGENT_ACTIVATED, "ignored")
        await bus.emit(AGENT_COMPLETED, "seen")

        assert received == ["seen"]

    async def test_unsubscribe(self) -> None:
        """The callable returned by ``on`` removes the handler."""
        bus = EventBus()
        received: list[Any] = []
        unsubscribe = bus.on(AGENT_ACTIVATED, received.append)
        assert bus.listener_count(AGENT_ACTIVATED) == 1

        unsubscribe()
        bus.off(AGENT_ACTIVATED, received.append)
        await bus.emit(AGENT_ACTIVATED, "payload")

        assert received == []
        assert bus.listener_count(AGENT_ACTIVATED) == 0

    async def test_failing_handler_does_not_stop_delivery(self, caplog: pytest.LogCaptureFixture) -> None:
        """A handler error is logged and later handlers still run."""
        bus = EventBus()
        received: list[Any] = []

        def broken(payload: Any) -> None:
            raise RuntimeError("handler failed")

        bus.on(AGENT_ACTIVATED, broken)
        bus.on(AGENT_ACTIVATED, received.append)

        await bus.emit(AGENT_ACTIVATED, "payload")

        assert received == ["payload"]
        assert "Event handler for 'agent:activated' failed" in caplog.text
