"""Dependency injection for API endpoints.

Components are built once by ``create_app`` and kept on ``app.state``.
"""

from typing import Annotated

from fastapi import Depends, Request

from pushdeploy.config import Settings
from pushdeploy.core.events import EventBus
from pushdeploy.core.gateway import WebhookGateway
from pushdeploy.core.notifications import NotificationRouter
from pushdeploy.core.registry import ProjectRegistry
from pushdeploy.core.tracing import TraceRecorder


async def get_app_settings(request: Request) -> Settings:
    """Get the settings the application was built with."""
    return request.app.state.settings


async def get_gateway(request: Request) -> WebhookGateway:
    """Get the webhook gateway."""
    return request.app.state.gateway


async def get_recorder(request: Request) -> TraceRecorder:
    """Get the trace recorder."""
    return request.app.state.recorder


async def get_notifier(request: Request) -> NotificationRouter:
    """Get the notification router."""
    return request.app.state.notifier


async def get_events(request: Request) -> EventBus:
    """Get the event bus."""
    return request.app.state.recorder.events


async def get_registry(
    gateway: Annotated[WebhookGateway, Depends(get_gateway)],
) -> ProjectRegistry:
    """Load the project registry fresh for this request."""
    return gateway.registry_loader()


# Type aliases for cleaner signatures
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
GatewayDep = Annotated[WebhookGateway, Depends(get_gateway)]
RecorderDep = Annotated[TraceRecorder, Depends(get_recorder)]
NotifierDep = Annotated[NotificationRouter, Depends(get_notifier)]
EventsDep = Annotated[EventBus, Depends(get_events)]
RegistryDep = Annotated[ProjectRegistry, Depends(get_registry)]
