"""Test doubles for the external effects of a deployment."""

from pushdeploy.core.notifications import NotificationChannel
from pushdeploy.core.preflight import CheckOutcome, PreflightChecker
from pushdeploy.models.deployment import CommandResult, HealthCheckResult
from pushdeploy.models.notification import ChannelResult, NotificationEvent


class FakeCommandRunner:
    """Stands in for CommandRunner; every command succeeds unless told otherwise."""

    def __init__(
        self,
        exit_codes: dict[str, int] | None = None,
        outputs: dict[str, str] | None = None,
    ):
        self.exit_codes = dict(exit_codes or {})
        self.outputs = {"git rev-parse HEAD": "prev0001\n", **(outputs or {})}
        self.calls: list[tuple[str, dict[str, str] | None]] = []

    @property
    def commands(self) -> list[str]:
        return [command for command, _ in self.calls]

    async def run(self, command, cwd=None, env=None, timeout=None) -> CommandResult:
        self.calls.append((command, dict(env) if env is not None else None))
        exit_code = self.exit_codes.get(command, 0)
        return CommandResult(
            command=command,
            success=exit_code == 0,
            exit_code=exit_code,
            output=self.outputs.get(command, "" if exit_code == 0 else "boom"),
        )


class FakeHealthChecker:
    """Returns queued health outcomes, then ``default``."""

    def __init__(self, responses: list[bool] | None = None, default: bool = True):
        self.responses = list(responses or [])
        self.default = default
        self.calls: list[str] = []

    async def check(self, url: str) -> HealthCheckResult:
        self.calls.append(url)
        healthy = self.responses.pop(0) if self.responses else self.default
        return HealthCheckResult(
            url=url,
            healthy=healthy,
            status_code=200 if healthy else 503,
            error=None if healthy else "HTTP 503",
        )


class FakePreflight(PreflightChecker):
    """Real environment check; network probes are canned."""

    def __init__(self, dependency_ok: bool = True, certificate_ok: bool = True):
        super().__init__()
        self.dependency_ok = dependency_ok
        self.certificate_ok = certificate_ok

    async def check_dependency(self, url: str) -> CheckOutcome:
        return CheckOutcome(self.dependency_ok, f"{url} {'reachable' if self.dependency_ok else 'unreachable'}")

    async def check_certificate(self, url: str) -> CheckOutcome:
        return CheckOutcome(self.certificate_ok, f"certificate for {url}")


class RecordingChannel(NotificationChannel):
    """Collects events; optionally fails every delivery."""

    def __init__(self, name: str, fail: bool = False, raise_error: bool = False):
        self.name = name
        self.fail = fail
        self.raise_error = raise_error
        self.events: list[NotificationEvent] = []

    async def send(self, event: NotificationEvent) -> ChannelResult:
        self.events.append(event)
        if self.raise_error:
            raise RuntimeError(f"{self.name} exploded")
        if self.fail:
            return ChannelResult(channel=self.name, success=False, error="unavailable")
        return ChannelResult(channel=self.name, success=True)
