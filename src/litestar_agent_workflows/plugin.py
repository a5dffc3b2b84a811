"""Litestar plugin for agent workflow integration.

This module provides the AgentWorkflowPlugin for integrating the workflow
engine and the AI invocation layer with Litestar applications.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from litestar.di import Provide
from litestar.plugins import InitPluginProtocol

from litestar_agent_workflows.ai.service import AIInvocationLayer
from litestar_agent_workflows.engine.state_machine import WorkflowStateMachine
from litestar_agent_workflows.exceptions import AgentWorkflowsError

if TYPE_CHECKING:
    from litestar.config.app import AppConfig

    from litestar_agent_workflows.config import EngineConfig, InvocationConfig
    from litestar_agent_workflows.core.protocols import (
        AgentDefinitionProvider,
        AgentRunner,
        ArtifactSink,
        NotificationPublisher,
        PersistenceStore,
        WorkflowSequenceProvider,
    )

__all__ = ["AgentWorkflowPlugin", "PluginConfig"]


@dataclass
class PluginConfig:
    """Configuration for the AgentWorkflowPlugin.

    Attributes:
        engine: Optional pre-configured WorkflowStateMachine. If not provided,
            one is created from the other fields.
        ai: Optional pre-configured AIInvocationLayer. If not provided, one is
            created from ``invocation_config``; register providers on
            ``plugin.ai`` before the first workflow runs.
        runner: Optional agent runner replacing the AI-backed default.
        store: Optional persistence store shared by the engine and the AI layer.
        agents: Optional agent definitions; defaults to the built-in agents.
        sequences: Optional sequence templates; defaults to the built-in templates.
        artifact_sink: Optional export target for finished workflows.
        publisher: Optional external notification fan-out.
        engine_config: Engine settings.
        invocation_config: AI invocation settings.
        dependency_key_engine: The key used for dependency injection of the
            WorkflowStateMachine. Defaults to "workflow_engine".
        dependency_key_ai: The key used for dependency injection of the
            AIInvocationLayer. Defaults to "ai_layer".
        enable_api: Whether to enable the REST API endpoints. Defaults to True.
        api_path_prefix: URL path prefix for all workflow API endpoints.
            Defaults to "/workflows".
        api_guards: List of Litestar guards to apply to all workflow API endpoints.
        api_tags: OpenAPI tags to apply to workflow API endpoints.
        include_api_in_schema: Whether to include API endpoints in OpenAPI schema.
            Defaults to True.
    """

    engine: WorkflowStateMachine | None = None
    ai: AIInvocationLayer | None = None
    runner: AgentRunner | None = None
    store: PersistenceStore | None = None
    agents: AgentDefinitionProvider | None = None
    sequences: WorkflowSequenceProvider | None = None
    artifact_sink: ArtifactSink | None = None
    publisher: NotificationPublisher | None = None
    engine_config: EngineConfig | None = None
    invocation_config: InvocationConfig | None = None
    dependency_key_engine: str = "workflow_engine"
    dependency_key_ai: str = "ai_layer"
    enable_api: bool = True
    api_path_prefix: str = "/workflows"
    api_guards: list[Any] = field(default_factory=list)
    api_tags: list[str] = field(default_factory=lambda: ["Agent Workflows"])
    include_api_in_schema: bool = True


class AgentWorkflowPlugin(InitPluginProtocol):
    """Litestar plugin for agent workflow management.

    This plugin provides dependency injection for the WorkflowStateMachine and
    the AIInvocationLayer, initializes the AI layer on startup and releases
    it on shutdown.

    Example:
        Basic usage::

            from litestar import Litestar
            from litestar_agent_workflows import AgentWorkflowPlugin, CallableProvider

            plugin = AgentWorkflowPlugin()
            plugin.ai.register_provider("gemini", CallableProvider(call_gemini))

            app = Litestar(plugins=[plugin])

        Using in a route handler::

            from litestar import post
            from litestar_agent_workflows import WorkflowConfig, WorkflowStateMachine


            @post("/projects")
            async def start_project(workflow_engine: WorkflowStateMachine) -> dict:
                workflow = await workflow_engine.start(
                    WorkflowConfig(template_name="full_stack", user_prompt="A todo app"),
                    background=True,
                )
                return {"workflow_id": workflow.id, "status": workflow.status}
    """

    __slots__ = ("_ai", "_config", "_engine")

    def __init__(self, config: PluginConfig | None = None) -> None:
        """Initialize the plugin.

        The AI layer is created right away so providers can be registered
        before the application starts.

        Args:
            config: Optional configuration for the plugin.
        """
        self._config = config or PluginConfig()
        self._ai: AIInvocationLayer = self._config.ai or AIInvocationLayer(
            self._config.invocation_config,
            store=self._config.store,
        )
        self._engine: WorkflowStateMachine | None = self._config.engine

    @property
    def ai(self) -> AIInvocationLayer:
        """Get the AI invocation layer."""
        return self._ai

    @property
    def engine(self) -> WorkflowStateMachine:
        """Get the workflow engine.

        Returns:
            The WorkflowStateMachine instance.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._engine is None:
            msg = "AgentWorkflowPlugin has not been initialized. Access engine after app startup."
            raise RuntimeError(msg)
        return self._engine

    async def _on_startup(self) -> None:
        await self._ai.initialize()

    async def _on_shutdown(self) -> None:
        if self._engine is not None:
            await self._engine.shutdown()
        await self._ai.close()

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        """Initialize the plugin when the Litestar app starts.

        This method:
        1. Creates or uses the provided WorkflowStateMachine
        2. Adds dependency providers to the app config
        3. Registers startup and shutdown hooks for the AI layer
        4. Optionally registers the REST API controller if enable_api=True

        Args:
            app_config: The Litestar application configuration.

        Returns:
            The modified application configuration.
        """
        config = self._config
        if self._engine is None:
            self._engine = WorkflowStateMachine(
                config.runner,
                ai=self._ai,
                agents=config.agents,
                sequences=config.sequences,
                store=config.store,
                artifact_sink=config.artifact_sink,
                publisher=config.publisher,
                config=config.engine_config,
            )

        def provide_engine() -> WorkflowStateMachine:
            return self._engine  # type: ignore[return-value]

        def provide_workflow_engine() -> WorkflowStateMachine:
            return self._engine  # type: ignore[return-value]

        def provide_ai() -> AIInvocationLayer:
            return self._ai

        app_config.dependencies[config.dependency_key_engine] = Provide(provide_engine, sync_to_thread=False)
        app_config.dependencies[config.dependency_key_ai] = Provide(provide_ai, sync_to_thread=False)

        app_config.on_startup.append(self._on_startup)
        app_config.on_shutdown.append(self._on_shutdown)

        if config.enable_api:
            from litestar import Router

            from litestar_agent_workflows.web.controllers import AgentWorkflowController
            from litestar_agent_workflows.web.exceptions import agent_workflows_exception_handler

            router_dependencies: dict[str, Provide] = {}
            if config.dependency_key_engine != "workflow_engine":
                router_dependencies["workflow_engine"] = Provide(provide_workflow_engine, sync_to_thread=False)

            workflow_router = Router(
                path=config.api_path_prefix,
                route_handlers=[AgentWorkflowController],
                dependencies=router_dependencies,
                guards=config.api_guards,
                tags=config.api_tags,
                include_in_schema=config.include_api_in_schema,
            )
            app_config.route_handlers.append(workflow_router)
            app_config.exception_handlers[AgentWorkflowsError] = agent_workflows_exception_handler  # type: ignore[assignment]

        return app_config
