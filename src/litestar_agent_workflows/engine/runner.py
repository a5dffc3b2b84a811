"""Default agent runner backed by the AI invocation layer."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

from litestar_agent_workflows.core.models import AgentExecutionResult, Artifact

if TYPE_CHECKING:
    from collections.abc import Mapping

    from litestar_agent_workflows.ai.service import AIInvocationLayer
    from litestar_agent_workflows.core.models import AgentDefinition, Step, Workflow
    from litestar_agent_workflows.core.protocols import AgentDefinitionProvider

__all__ = ["AIAgentRunner", "build_prompt", "parse_elicitation"]

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)
_ARTIFACT_PREVIEW = 2000


def parse_elicitation(content: str) -> dict[str, Any] | None:
    """Detect an elicitation request in an agent answer.

    An answer asks for human input when it is a JSON object (optionally
    wrapped in a code fence) with ``"type": "elicitation_required"`` or
    ``"elicitation_required": true``.

    Returns:
        The question payload without the marker keys, or ``None``.
    """
    text = content.strip()
    fenced = _FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    if not text.startswith("{"):
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    if data.get("type") != "elicitation_required" and data.get("elicitation_required") is not True:
        return None
    return {key: value for key, value in data.items() if key not in {"type", "elicitation_required"}}


def build_prompt(agent: AgentDefinition, step: Step, context: Mapping[str, Any]) -> str:
    """Render the prompt of one agent step.

    Args:
        agent: Persona of the agent.
        step: The step being executed.
        context: Agent context prepared by the step executor.

    Returns:
        The prompt text.
    """
    lines = [
        f"You are {agent.identity or agent.id}, acting as {step.role or agent.role}.",
    ]
    if agent.description:
        lines.append(agent.description)
    if agent.principles:
        lines.append("Principles:")
        lines.extend(f"- {principle}" for principle in agent.principles)
    if agent.capabilities:
        lines.append("Capabilities: " + ", ".join(agent.capabilities))

    lines += [
        "",
        f"Step {context.get('step', 0) + 1} of {context.get('total_steps', 1)}: {step.description or step.role}",
        "",
        "User request:",
        str(context.get("user_prompt") or ""),
    ]

    previous = context.get("previous_artifacts") or []
    if previous:
        lines += ["", "Artifacts produced so far:"]
        for artifact in previous:
            body = str(artifact.get("content", ""))[:_ARTIFACT_PREVIEW]
            lines += [f"### {artifact.get('filename')} (by {artifact.get('agent_id')})", body]

    workflow_context = context.get("workflow_context") or {}
    if workflow_context:
        lines += ["", "Workflow context:", json.dumps(workflow_context, default=str, indent=2)]

    answers = context.get("elicitation_responses") or []
    if answers:
        lines += ["", "Answers from the user to your earlier questions:"]
        lines.extend(f"- {answer}" for answer in answers)

    lines += [
        "",
        "If you cannot continue without more information from the user, answer only with a JSON object "
        '{"type": "elicitation_required", "section_title": "...", "instruction": "..."}.',
    ]
    if step.creates:
        lines.append(f"Otherwise produce the complete content of '{step.creates}'.")
    return "\n".join(lines)


class AIAgentRunner:
    """Runs agent steps by prompting the AI invocation layer.

    The answer becomes one artifact, named after the step's ``creates`` field
    or ``<agent_id>-output.md``, unless it is an elicitation request.
    """

    def __init__(self, ai: AIInvocationLayer, agents: AgentDefinitionProvider) -> None:
        self.ai = ai
        self.agents = agents

    async def run(self, workflow: Workflow, step: Step, context: Mapping[str, Any]) -> AgentExecutionResult:
        """Execute ``step`` and interpret the answer.

        Raises:
            LookupError: If the step's agent has no definition.
        """
        agent = self.agents.get(step.agent_id)
        if agent is None:
            msg = f"Agent '{step.agent_id}' is not defined"
            raise LookupError(msg)

        result = await self.ai.call(
            build_prompt(agent, step, context),
            agent=step.agent_id,
            complexity=workflow.metadata.get("complexity"),
            context={"workflow_id": workflow.id, "step": context.get("step")},
            user_id=workflow.user_id,
        )
        usage = {**result.usage.to_dict(), "cost": result.cost}

        elicitation = parse_elicitation(result.content)
        if elicitation is not None:
            return AgentExecutionResult(
                success=True,
                output=result.content,
                elicitation=elicitation,
                provider=result.provider,
                usage=usage,
            )

        artifact = Artifact(
            filename=step.creates or f"{step.agent_id}-output.md",
            content=result.content,
            agent_id=step.agent_id,
            step=context.get("step"),
            metadata={"role": step.role, "provider": result.provider, "cost": result.cost},
        )
        return AgentExecutionResult(
            success=True,
            output=result.content,
            artifacts=[artifact],
            provider=result.provider,
            usage=usage,
        )
