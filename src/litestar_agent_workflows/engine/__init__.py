"""Agent workflow orchestration engine.

This package drives multi-agent workflows through their lifecycle: step
execution, inter-agent messaging, checkpoints and rollback, and
human-in-the-loop elicitation.
"""

from __future__ import annotations

from litestar_agent_workflows.engine.checkpoints import CheckpointManager
from litestar_agent_workflows.engine.communicator import AgentChannel, AgentCommunicator
from litestar_agent_workflows.engine.elicitation import ElicitationController
from litestar_agent_workflows.engine.executor import StepExecutor
from litestar_agent_workflows.engine.registry import DEFAULT_AGENTS, DEFAULT_SEQUENCES, AgentRegistry, SequenceRegistry
from litestar_agent_workflows.engine.rehydrate import normalize_sequence, rehydrate
from litestar_agent_workflows.engine.runner import AIAgentRunner
from litestar_agent_workflows.engine.state import WorkflowStateStore
from litestar_agent_workflows.engine.state_machine import WorkflowConfig, WorkflowStateMachine

__all__ = [
    "DEFAULT_AGENTS",
    "DEFAULT_SEQUENCES",
    "AIAgentRunner",
    "AgentChannel",
    "AgentCommunicator",
    "AgentRegistry",
    "CheckpointManager",
    "ElicitationController",
    "SequenceRegistry",
    "StepExecutor",
    "WorkflowConfig",
    "WorkflowStateMachine",
    "WorkflowStateStore",
    "normalize_sequence",
    "rehydrate",
]
