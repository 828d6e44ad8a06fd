"""Pytest configuration and fixtures."""

import json
from pathlib import Path
from typing import Any, Callable

import pytest
from httpx import ASGITransport, AsyncClient

from pushdeploy.config import Settings
from pushdeploy.core.events import EventBus
from pushdeploy.core.notifications import NotificationRouter
from pushdeploy.core.signature import sign_payload
from pushdeploy.core.trace_repository import TraceRepository
from pushdeploy.core.tracing import TraceRecorder
from pushdeploy.main import create_app
from pushdeploy.models.project import ProjectConfig

from fakes import FakeCommandRunner, FakeHealthChecker, FakePreflight, RecordingChannel

WEBHOOK_SECRET = "test-secret"

DEMO_PROJECT: dict[str, Any] = {
    "branch": "main",
    "repository": "acme/demo",
    "validate_commands": ["node --version"],
    "test_commands": ["npm test"],
    "build_commands": ["npm run build"],
    "deploy_commands": ["./deploy.sh"],
    "restart_command": "systemctl restart demo",
    "health_check_url": "http://demo.local/health",
    "production_url": "https://demo.example.com",
}


@pytest.fixture
def projects_file(tmp_path: Path) -> Path:
    """Projects configuration with a single ``demo`` project."""
    path = tmp_path / "projects.json"
    path.write_text(json.dumps({"demo": DEMO_PROJECT}), encoding="utf-8")
    return path


@pytest.fixture
def settings(tmp_path: Path, projects_file: Path) -> Settings:
    """Settings isolated from the developer's environment and tuned for speed."""
    return Settings(
        _env_file=None,
        app_env="development",
        webhook_secret=WEBHOOK_SECRET,
        projects_config_path=projects_file,
        trace_db_path=tmp_path / "traces.db",
        monitor_interval_seconds=0,
        monitor_window_seconds=0,
        monitor_required_healthy=3,
        monitor_max_attempts=5,
        notify_desktop=False,
        notification_webhook_url=None,
        whatsapp_access_token="",
        whatsapp_phone_number_id="",
        whatsapp_recipient="",
        log_directory=str(tmp_path / "logs"),
    )


@pytest.fixture
def demo_project() -> ProjectConfig:
    return ProjectConfig(name="demo", **DEMO_PROJECT)


@pytest.fixture
def recorder(settings: Settings) -> TraceRecorder:
    """Trace recorder backed by a temporary SQLite file."""
    return TraceRecorder(TraceRepository(settings.trace_db_path), EventBus())


@pytest.fixture
def runner() -> FakeCommandRunner:
    return FakeCommandRunner()


@pytest.fixture
def health_checker() -> FakeHealthChecker:
    return FakeHealthChecker()


@pytest.fixture
def preflight() -> FakePreflight:
    return FakePreflight()


@pytest.fixture
def channels() -> list[RecordingChannel]:
    """Two healthy notification channels."""
    return [RecordingChannel("console"), RecordingChannel("webhook")]


@pytest.fixture
def notifier(channels: list[RecordingChannel]) -> NotificationRouter:
    return NotificationRouter(channels, timeout=1.0)


@pytest.fixture
def app(settings, runner, health_checker, preflight, notifier):
    """Application wired to fakes for every external effect."""
    return create_app(
        settings,
        runner=runner,
        health_checker=health_checker,
        preflight=preflight,
        notifier=notifier,
        environment={"PATH": "/usr/bin"},
    )


@pytest.fixture
async def client(app) -> AsyncClient:
    """Create an async test client for the application."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_push() -> Callable[..., bytes]:
    """Build a raw push event body."""

    def _make_push(
        repository: str = "demo",
        ref: str = "refs/heads/main",
        commit: str = "abc123de",
        message: str = "Ship it",
    ) -> bytes:
        payload = {
            "ref": ref,
            "after": commit,
            "repository": {"name": repository, "full_name": f"acme/{repository}"},
            "head_commit": {
                "id": commit,
                "message": message,
                "author": {"name": "Dana", "email": "dana@example.com"},
            },
        }
        return json.dumps(payload).encode("utf-8")

    return _make_push


@pytest.fixture
def signed_headers() -> Callable[..., dict[str, str]]:
    """Headers GitHub would send for a body."""

    def _signed_headers(
        body: bytes, event: str = "push", secret: str = WEBHOOK_SECRET
    ) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-GitHub-Event": event,
            "X-GitHub-Delivery": "delivery-1",
            "X-Hub-Signature-256": sign_payload(body, secret),
        }

    return _signed_headers
