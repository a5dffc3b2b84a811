"""REST API for agent workflows.

The controller is mounted by ``AgentWorkflowPlugin`` when ``enable_api`` is
set (the default).
"""

from __future__ import annotations

from litestar_agent_workflows.web.controllers import AgentWorkflowController
from litestar_agent_workflows.web.dto import (
    CheckpointDTO,
    CreateCheckpointDTO,
    ElicitationResponseDTO,
    InjectStepsDTO,
    MessageDTO,
    StartWorkflowDTO,
    WorkflowDetailDTO,
    WorkflowDTO,
)
from litestar_agent_workflows.web.exceptions import agent_workflows_exception_handler

__all__ = [
    "AgentWorkflowController",
    "CheckpointDTO",
    "CreateCheckpointDTO",
    "ElicitationResponseDTO",
    "InjectStepsDTO",
    "MessageDTO",
    "StartWorkflowDTO",
    "WorkflowDTO",
    "WorkflowDetailDTO",
    "agent_workflows_exception_handler",
]
