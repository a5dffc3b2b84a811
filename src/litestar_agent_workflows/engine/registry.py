"""Registries of agent definitions and workflow sequences.

``AgentRegistry`` implements ``AgentDefinitionProvider`` and
``SequenceRegistry`` implements ``WorkflowSequenceProvider``. Both come
pre-populated with a built-in catalogue that can be extended or replaced.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from litestar_agent_workflows.core.models import AgentDefinition

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

__all__ = ["DEFAULT_AGENTS", "DEFAULT_SEQUENCES", "AgentRegistry", "SequenceRegistry"]


DEFAULT_AGENTS: tuple[AgentDefinition, ...] = (
    AgentDefinition(
        id="analyst",
        identity="Business Analyst",
        role="Business Analysis",
        description="Analyzes requirements, market and stakeholder context.",
        principles=("Ground every claim in the stated requirements", "Surface open questions early"),
        capabilities=("requirements_analysis", "business_research", "stakeholder_analysis"),
    ),
    AgentDefinition(
        id="pm",
        identity="Product Manager",
        role="Product Management",
        description="Turns analysis into a product requirements document.",
        principles=("Prioritize user value", "Make acceptance criteria testable"),
        capabilities=("product_strategy", "roadmap_planning", "prd_creation"),
    ),
    AgentDefinition(
        id="architect",
        identity="System Architect",
        role="System Architecture",
        description="Designs the system architecture and selects technologies.",
        principles=("Prefer simple designs", "Document trade-offs"),
        capabilities=("system_design", "technology_selection", "architecture_documentation"),
    ),
    AgentDefinition(
        id="ux-expert",
        identity="UX Expert",
        role="UX Design",
        description="Specifies user flows and interface behavior.",
        principles=("Design for the primary user journey first",),
        capabilities=("user_research", "interface_design", "usability_testing"),
    ),
    AgentDefinition(
        id="dev",
        identity="Developer",
        role="Development",
        description="Implements the solution described by earlier artifacts.",
        principles=("Follow the architecture document", "Keep changes reviewable"),
        capabilities=("code_implementation", "technical_problem_solving", "code_review"),
    ),
    AgentDefinition(
        id="qa",
        identity="Quality Assurance",
        role="Quality Assurance",
        description="Plans and runs validation of the implementation.",
        principles=("Trace every test to a requirement",),
        capabilities=("test_planning", "test_execution", "quality_validation"),
    ),
)


def _steps(*steps: tuple[str, str, str]) -> tuple[Mapping[str, Any], ...]:
    return tuple(
        MappingProxyType({"agent_id": agent_id, "role": role, "description": description})
        for agent_id, role, description in steps
    )


DEFAULT_SEQUENCES: Mapping[str, tuple[Mapping[str, Any], ...]] = MappingProxyType(
    {
        "full_stack": _steps(
            ("analyst", "Business Analysis", "Analyze requirements and business context"),
            ("pm", "Product Management", "Create PRD and define product requirements"),
            ("architect", "System Architecture", "Design system architecture"),
            ("ux-expert", "UX Design", "Create user experience specifications"),
            ("dev", "Development", "Implement the solution"),
            ("qa", "Quality Assurance", "Test and validate implementation"),
        ),
        "backend_service": _steps(
            ("analyst", "Requirements Analysis", "Analyze service requirements"),
            ("architect", "Service Architecture", "Design service architecture"),
            ("dev", "Implementation", "Develop backend service"),
            ("qa", "Testing", "Test service functionality"),
        ),
        "frontend_application": _steps(
            ("pm", "Product Definition", "Define product requirements"),
            ("ux-expert", "UX Design", "Design user experience"),
            ("architect", "Frontend Architecture", "Design frontend architecture"),
            ("dev", "Implementation", "Develop frontend application"),
            ("qa", "Testing", "Test user interface and functionality"),
        ),
        "documentation": _steps(
            ("analyst", "Content Analysis", "Analyze documentation requirements"),
            ("pm", "Documentation Planning", "Plan documentation structure"),
            ("ux-expert", "Information Architecture", "Design information architecture"),
            ("dev", "Content Creation", "Create and organize content"),
        ),
        "research": _steps(
            ("analyst", "Research Design", "Design research methodology"),
            ("pm", "Research Planning", "Plan research execution"),
            ("analyst", "Data Collection", "Collect and analyze data"),
            ("pm", "Insights & Recommendations", "Generate insights and recommendations"),
        ),
    }
)


class AgentRegistry:
    """Registry of agent definitions keyed by agent id.

    Example:
        >>> registry = AgentRegistry()
        >>> registry.get("pm").identity
        'Product Manager'
    """

    def __init__(self, agents: Iterable[AgentDefinition] | None = None, *, include_defaults: bool = True) -> None:
        """Initialize the registry.

        Args:
            agents: Definitions to register.
            include_defaults: Whether to start from the built-in agents.
        """
        self._agents: dict[str, AgentDefinition] = {}
        if include_defaults:
            for agent in DEFAULT_AGENTS:
                self.register(agent)
        for agent in agents or ():
            self.register(agent)

    def register(self, agent: AgentDefinition) -> None:
        """Add or replace an agent definition."""
        self._agents[agent.id] = agent

    def unregister(self, agent_id: str) -> None:
        """Remove an agent definition. Unknown ids are ignored."""
        self._agents.pop(agent_id, None)

    def get(self, agent_id: str) -> AgentDefinition | None:
        """Return the definition of ``agent_id`` or ``None`` if unknown."""
        return self._agents.get(agent_id)

    def list_agents(self) -> list[AgentDefinition]:
        """Return every registered definition."""
        return list(self._agents.values())

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents


class SequenceRegistry:
    """Registry of named step sequences."""

    def __init__(
        self,
        sequences: Mapping[str, Sequence[Mapping[str, Any]]] | None = None,
        *,
        include_defaults: bool = True,
    ) -> None:
        """Initialize the registry.

        Args:
            sequences: Named sequences to register.
            include_defaults: Whether to start from the built-in sequences.
        """
        self._sequences: dict[str, tuple[Mapping[str, Any], ...]] = {}
        if include_defaults:
            self._sequences.update(DEFAULT_SEQUENCES)
        for name, steps in (sequences or {}).items():
            self.register(name, steps)

    def register(self, name: str, steps: Sequence[Mapping[str, Any]]) -> None:
        """Add or replace a named sequence."""
        self._sequences[name] = tuple(MappingProxyType(dict(step)) for step in steps)

    def get(self, template_name: str) -> tuple[Mapping[str, Any], ...] | None:
        """Return the steps of ``template_name`` or ``None`` if unknown."""
        return self._sequences.get(template_name)

    def list_names(self) -> list[str]:
        """Return the registered sequence names."""
        return sorted(self._sequences)
