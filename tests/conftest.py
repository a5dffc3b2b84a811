"""Shared test fixtures for litestar-agent-workflows test suite."""

from __future__ import annotations

import inspect
from collections import defaultdict
from typing import TYPE_CHECKING, Any

import pytest

from litestar_agent_workflows.ai.providers import ProviderResponse, TokenUsage
from litestar_agent_workflows.config import EngineConfig
from litestar_agent_workflows.core.models import AgentExecutionResult, Artifact

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from litestar_agent_workflows.core.models import Step, Workflow
    from litestar_agent_workflows.engine.state_machine import WorkflowStateMachine
    from litestar_agent_workflows.store.memory import InMemoryStore


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Awaitable sleep replacement that records delays and advances a clock."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.clock = clock
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.clock is not None:
            self.clock.advance(delay)


class ScriptedProvider:
    """Provider client answering from a script.

    Each script item is returned as the answer, or raised when it is an
    exception. Once the script is exhausted the default answer is returned.
    """

    def __init__(self, *script: Any, default: Any = "ok") -> None:
        self.script = list(script)
        self.default = default
        self.prompts: list[str] = []
        self.options: list[Mapping[str, Any]] = []
        self.closed = False

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def invoke(self, prompt: str, options: Mapping[str, Any]) -> Any:
        self.prompts.append(prompt)
        self.options.append(options)
        outcome = self.script.pop(0) if self.script else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, str):
            return ProviderResponse(content=outcome, usage=TokenUsage(10, 20, 30))
        return outcome

    async def aclose(self) -> None:
        self.closed = True


def ok(content: str = "done", filename: str | None = None) -> Callable[..., AgentExecutionResult]:
    """Outcome producing one artifact."""

    def outcome(workflow: Workflow, step: Step, context: Mapping[str, Any]) -> AgentExecutionResult:
        artifact = Artifact(
            filename=filename or step.creates or f"{step.agent_id}-output.md",
            content=content,
            agent_id=step.agent_id,
        )
        return AgentExecutionResult(success=True, output=content, artifacts=[artifact], provider="fake")

    return outcome


def ask(section_title: str = "Scope", instruction: str = "Please clarify") -> AgentExecutionResult:
    """Outcome asking the user a question."""
    return AgentExecutionResult(
        success=True,
        output="question",
        elicitation={"section_title": section_title, "instruction": instruction},
    )


class ScriptedRunner:
    """Agent runner answering from per-agent scripts.

    Script items may be an ``AgentExecutionResult``, an exception to raise, or
    a callable ``(workflow, step, context)`` returning a result (sync or
    async). Agents without a script produce a default artifact.
    """

    def __init__(self) -> None:
        self.scripts: dict[str, list[Any]] = defaultdict(list)
        self.calls: list[tuple[str, int, dict[str, Any]]] = []

    def script(self, agent_id: str, *outcomes: Any) -> ScriptedRunner:
        self.scripts[agent_id].extend(outcomes)
        return self

    @property
    def agents_called(self) -> list[str]:
        return [agent_id for agent_id, _, _ in self.calls]

    async def run(self, workflow: Workflow, step: Step, context: Mapping[str, Any]) -> AgentExecutionResult:
        self.calls.append((step.agent_id, context["step"], dict(context)))
        queue = self.scripts.get(step.agent_id)
        outcome: Any = queue.pop(0) if queue else ok(f"{step.agent_id} output")
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            outcome = outcome(workflow, step, context)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        return outcome


class RecordingSink:
    """Artifact sink remembering every export."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.saved: list[tuple[str, list[Mapping[str, Any]]]] = []

    async def save(self, workflow_id: str, artifacts: Any) -> None:
        if self.error is not None:
            raise self.error
        self.saved.append((workflow_id, list(artifacts)))


class RecordingPublisher:
    """Notification publisher remembering every event."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Mapping[str, Any]]] = []

    async def publish(self, event: str, payload: Mapping[str, Any]) -> None:
        self.events.append((event, payload))


@pytest.fixture
def fake_clock() -> FakeClock:
    """Create a controllable monotonic clock."""
    return FakeClock()


@pytest.fixture
def sleeper(fake_clock: FakeClock) -> SleepRecorder:
    """Create a sleep recorder bound to the fake clock."""
    return SleepRecorder(fake_clock)


@pytest.fixture
def runner() -> ScriptedRunner:
    """Create a scripted agent runner."""
    return ScriptedRunner()


@pytest.fixture
def engine_config() -> EngineConfig:
    """Engine settings with short timeouts for fast tests."""
    return EngineConfig(
        default_step_timeout=5.0,
        min_step_timeout=0.01,
        max_step_timeout=10.0,
        timeout_retries=1,
        max_checkpoints=10,
    )


@pytest.fixture
def memory_store() -> InMemoryStore:
    """Create an empty in-memory store."""
    from litestar_agent_workflows.store.memory import InMemoryStore

    return InMemoryStore()


@pytest.fixture
def engine(runner: ScriptedRunner, memory_store: InMemoryStore, engine_config: EngineConfig) -> WorkflowStateMachine:
    """Create a workflow engine driven by the scripted runner.

    Args:
        runner: Scripted runner fixture
        memory_store: In-memory store fixture
        engine_config: Engine settings fixture

    Returns:
        WorkflowStateMachine instance
    """
    from litestar_agent_workflows.engine.state_machine import WorkflowStateMachine

    return WorkflowStateMachine(runner, store=memory_store, config=engine_config)


@pytest.fixture
def three_steps() -> list[dict[str, Any]]:
    """A short analyst -> pm -> architect sequence."""
    return [
        {"agent_id": "analyst", "role": "Business Analysis", "description": "Analyze"},
        {"agent_id": "pm", "role": "Product Management", "description": "Write the PRD", "creates": "prd.md"},
        {"agent_id": "architect", "role": "System Architecture", "description": "Design"},
    ]


@pytest.fixture
def recording_sink() -> RecordingSink:
    """Create an artifact sink that records exports."""
    return RecordingSink()


@pytest.fixture
def failing_sink() -> RecordingSink:
    """Create an artifact sink whose exports fail."""
    return RecordingSink(error=OSError("disk full"))


@pytest.fixture
def publisher() -> RecordingPublisher:
    """Create a notification publisher that records events."""
    return RecordingPublisher()


@pytest.fixture
def provider_factory() -> type[ScriptedProvider]:
    """Expose the scripted provider class to test modules."""
    return ScriptedProvider


@pytest.fixture
def outcomes() -> Any:
    """Expose the outcome builders to test modules."""

    class Outcomes:
        ok = staticmethod(ok)
        ask = staticmethod(ask)

    return Outcomes


# Pytest configuration
def pytest_configure(config: Any) -> None:
    """Configure pytest with custom markers.

    Args:
        config: Pytest config object
    """
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
