"""Deployment notifications."""

from pushdeploy.core.notifications.channels import (
    ConsoleChannel,
    DesktopChannel,
    NotificationChannel,
    WebhookChannel,
    WhatsAppChannel,
)
from pushdeploy.core.notifications.messages import (
    build_deployment_info,
    deployment_failed,
    deployment_started,
    deployment_succeeded,
    deployment_warning,
    extract_primary_link,
)
from pushdeploy.core.notifications.router import NotificationRouter
from pushdeploy.core.notifications.whatsapp import WhatsAppAPIError, WhatsAppClient

__all__ = [
    "NotificationChannel",
    "ConsoleChannel",
    "DesktopChannel",
    "WebhookChannel",
    "WhatsAppChannel",
    "NotificationRouter",
    "WhatsAppClient",
    "WhatsAppAPIError",
    "build_deployment_info",
    "deployment_started",
    "deployment_succeeded",
    "deployment_failed",
    "deployment_warning",
    "extract_primary_link",
]
