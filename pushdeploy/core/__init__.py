"""Core functionality for pushdeploy."""

from pushdeploy.core.exceptions import (
    ConfigurationError,
    DeploymentInProgressError,
    DeploymentInterrupted,
    PhaseFailure,
    PushDeployError,
    TraceNotFoundError,
)
from pushdeploy.core.gateway import GatewayResponse, WebhookGateway
from pushdeploy.core.orchestrator import DeploymentOrchestrator, DeploymentRun
from pushdeploy.core.registry import ProjectRegistry
from pushdeploy.core.tracing import TraceRecorder

__all__ = [
    "PushDeployError",
    "ConfigurationError",
    "DeploymentInProgressError",
    "DeploymentInterrupted",
    "PhaseFailure",
    "TraceNotFoundError",
    "GatewayResponse",
    "WebhookGateway",
    "DeploymentOrchestrator",
    "DeploymentRun",
    "ProjectRegistry",
    "TraceRecorder",
]
