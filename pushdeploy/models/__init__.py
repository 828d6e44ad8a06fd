"""Data models for pushdeploy."""

from pushdeploy.models.deployment import (
    CommandResult,
    DeploymentAttempt,
    DeploymentPhase,
    DeploymentResult,
    DeploymentTrigger,
    HealthCheckResult,
)
from pushdeploy.models.notification import (
    ChannelResult,
    DeploymentInfo,
    NotificationEvent,
    NotificationKind,
)
from pushdeploy.models.project import ProjectConfig, ProjectSummary
from pushdeploy.models.trace import StepStatus, Trace, TraceStep
from pushdeploy.models.webhook import HeadCommit, PushEvent, Repository

__all__ = [
    # Project models
    "ProjectConfig",
    "ProjectSummary",
    # Deployment models
    "CommandResult",
    "DeploymentAttempt",
    "DeploymentPhase",
    "DeploymentResult",
    "DeploymentTrigger",
    "HealthCheckResult",
    # Notification models
    "ChannelResult",
    "DeploymentInfo",
    "NotificationEvent",
    "NotificationKind",
    # Trace models
    "StepStatus",
    "Trace",
    "TraceStep",
    # Webhook payload models
    "HeadCommit",
    "PushEvent",
    "Repository",
]
