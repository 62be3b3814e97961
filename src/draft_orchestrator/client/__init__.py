"""Client-side workflow controller and its HTTP transport."""

from draft_orchestrator.client.controller import (
    ControllerStatus,
    DraftArtifacts,
    WorkflowController,
)
from draft_orchestrator.client.transport import (
    HttpWorkflowTransport,
    TransportError,
    WorkflowTransport,
)

__all__ = [
    "ControllerStatus",
    "DraftArtifacts",
    "HttpWorkflowTransport",
    "TransportError",
    "WorkflowController",
    "WorkflowTransport",
]
