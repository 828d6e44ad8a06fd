"""FastAPI application entry point."""

import asyncio
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable, Mapping

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from pushdeploy import __version__
from pushdeploy.api.middleware import RequestLoggingMiddleware
from pushdeploy.api.v1.router import router as v1_router
from pushdeploy.config import Settings, get_settings
from pushdeploy.core.commands import CommandRunner
from pushdeploy.core.events import EventBus
from pushdeploy.core.exceptions import (
    ConfigurationError,
    DeploymentInProgressError,
    PushDeployError,
    TraceNotFoundError,
)
from pushdeploy.core.gateway import WebhookGateway
from pushdeploy.core.health import HealthChecker
from pushdeploy.core.notifications import NotificationRouter
from pushdeploy.core.orchestrator import DeploymentOrchestrator
from pushdeploy.core.preflight import PreflightChecker
from pushdeploy.core.registry import ProjectRegistry
from pushdeploy.core.trace_repository import TraceRepository
from pushdeploy.core.tracing import TraceRecorder
from pushdeploy.models.deployment import utcnow
from pushdeploy.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

ERROR_STATUS_CODES = {
    TraceNotFoundError: status.HTTP_404_NOT_FOUND,
    DeploymentInProgressError: status.HTTP_409_CONFLICT,
    ConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings: Settings = app.state.settings

    # Startup
    configure_logging(settings)
    logger.info(
        "application.starting",
        version=__version__,
        environment=settings.app_env,
        channels=app.state.notifier.channel_names,
    )

    yield

    # Shutdown: running health polls stop and their attempts end as interrupted
    app.state.shutdown_event.set()
    logger.info("application.shutdown")


def create_app(
    settings: Settings | None = None,
    *,
    runner: CommandRunner | None = None,
    health_checker: HealthChecker | None = None,
    preflight: PreflightChecker | None = None,
    notifier: NotificationRouter | None = None,
    environment: Mapping[str, str] | None = None,
    registry_loader: Callable[[], ProjectRegistry] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Every component is built here and shared through ``app.state``. The
    keyword arguments replace individual collaborators, mainly for tests.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="pushdeploy",
        description="Webhook-driven deployments with health-gated rollback and multi-channel notifications",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )

    shutdown_event = asyncio.Event()
    recorder = TraceRecorder(TraceRepository(settings.trace_db_path), EventBus())
    notifier = notifier or NotificationRouter.from_settings(settings)
    orchestrator = DeploymentOrchestrator(
        settings,
        recorder,
        runner=runner,
        health_checker=health_checker,
        preflight=preflight,
        environment=os.environ.copy() if environment is None else environment,
        shutdown_event=shutdown_event,
    )
    gateway = WebhookGateway(
        settings, recorder, orchestrator, notifier, registry_loader=registry_loader
    )

    app.state.settings = settings
    app.state.started_at = utcnow()
    app.state.shutdown_event = shutdown_event
    app.state.recorder = recorder
    app.state.notifier = notifier
    app.state.orchestrator = orchestrator
    app.state.gateway = gateway

    app.add_middleware(RequestLoggingMiddleware)

    # Register exception handlers
    @app.exception_handler(PushDeployError)
    async def pushdeploy_error_handler(
        request: Request, exc: PushDeployError
    ) -> JSONResponse:
        """Handle application-specific errors."""
        return JSONResponse(
            status_code=ERROR_STATUS_CODES.get(
                type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR
            ),
            content={
                "success": False,
                "error": {
                    "code": type(exc).__name__.upper(),
                    "message": exc.message,
                    "details": exc.details,
                },
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected errors."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            path=request.url.path,
            exc_info=True,
        )

        message = str(exc) if settings.is_development else "An unexpected error occurred"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": {"code": "INTERNAL_ERROR", "message": message},
            },
        )

    # Include routers
    app.include_router(v1_router)

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "pushdeploy.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        timeout_graceful_shutdown=settings.shutdown_grace_seconds,
    )
