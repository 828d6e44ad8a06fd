"""Health check endpoints."""

from datetime import datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel

from pushdeploy import __version__
from pushdeploy.api.deps import GatewayDep, SettingsDep
from pushdeploy.models.deployment import utcnow

router = APIRouter()


class ComponentStatus(BaseModel):
    """Readiness of the service's own sub-components."""

    webhook: str = "online"
    tracing: str = "active"
    notifications: str = "ready"
    deployment: str = "idle"


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    environment: str
    timestamp: datetime
    uptime_seconds: float
    components: ComponentStatus
    active_deployments: list[str]
    notification_channels: list[str]


class WebhookStatusResponse(BaseModel):
    """Webhook listener status."""

    service: str = "pushdeploy-webhook"
    status: str = "running"
    uptime_seconds: float
    timestamp: datetime


def _uptime(request: Request) -> float:
    return round((utcnow() - request.app.state.started_at).total_seconds(), 3)


@router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request, settings: SettingsDep, gateway: GatewayDep
) -> HealthResponse:
    """Check API health status."""
    return HealthResponse(
        version=__version__,
        environment=settings.app_env,
        timestamp=utcnow(),
        uptime_seconds=_uptime(request),
        components=ComponentStatus(
            deployment="busy" if gateway.is_busy() else "idle",
        ),
        active_deployments=gateway.active_deployments,
        notification_channels=gateway.notifier.channel_names,
    )


@router.get("/webhook/status", response_model=WebhookStatusResponse)
async def webhook_status(request: Request) -> WebhookStatusResponse:
    """Report that the webhook listener is up."""
    return WebhookStatusResponse(uptime_seconds=_uptime(request), timestamp=utcnow())
