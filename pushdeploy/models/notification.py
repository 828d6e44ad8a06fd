"""Notification data models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from pushdeploy.models.deployment import utcnow


class NotificationKind(str, Enum):
    """Severity of a notification."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class DeploymentInfo(BaseModel):
    """Deployment fields channels need for rendering."""

    project: str
    commit: str | None = None
    branch: str | None = None
    status: str | None = None
    phase: str | None = None
    trace_id: str | None = None

    production_url: str | None = None
    commit_url: str | None = None
    logs_url: str | None = None

    duration: str | None = None
    error: str | None = None


class NotificationEvent(BaseModel):
    """One message fanned out to every enabled channel."""

    title: str
    message: str
    kind: NotificationKind = NotificationKind.INFO
    deployment: DeploymentInfo
    timestamp: datetime = Field(default_factory=utcnow)


class ChannelResult(BaseModel):
    """Per-channel delivery outcome. Failures are data, never raised."""

    channel: str
    success: bool
    error: str | None = None
    method: str | None = None
