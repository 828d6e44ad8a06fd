"""Deployment Orchestrator.

Drives one deployment attempt through the phase state machine:

    validating -> building -> staging -> pre_production_checks
        -> applying_production -> monitoring -> succeeded

with ``rolling_back -> failed`` as the alternate path once production may
have been touched. Each phase handler does its work and returns the next
phase; hard-blocking problems are raised as ``PhaseFailure`` and turned into
the failure transition by ``transition``.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from pushdeploy.config import Settings
from pushdeploy.core.commands import CommandRunner
from pushdeploy.core.exceptions import DeploymentInterrupted, PhaseFailure
from pushdeploy.core.health import HealthChecker
from pushdeploy.core.preflight import PreflightChecker
from pushdeploy.core.tracing import TraceRecorder
from pushdeploy.models.deployment import (
    DeploymentAttempt,
    DeploymentPhase,
    DeploymentResult,
    DeploymentTrigger,
    TRANSITIONS,
)
from pushdeploy.models.project import ProjectConfig
from pushdeploy.models.trace import StepStatus
from pushdeploy.utils.logging import get_logger

DEFAULT_ROLLBACK_COMMAND = "git checkout {marker}"

# Output kept in a failed command's step detail
STEP_OUTPUT_CHARS = 1000


@dataclass
class DeploymentRun:
    """One attempt plus the inputs every phase handler needs."""

    project: ProjectConfig
    trigger: DeploymentTrigger
    trace_id: str
    attempt: DeploymentAttempt

    @property
    def phase(self) -> DeploymentPhase:
        return self.attempt.phase


class DeploymentOrchestrator:
    """Runs deployments phase by phase.

    External effects go through the injected command runner, health checker
    and preflight checker. ``environment`` is the deploy-time environment:
    it is checked for required variables and handed to every command.
    """

    def __init__(
        self,
        settings: Settings,
        recorder: TraceRecorder,
        runner: CommandRunner | None = None,
        health_checker: HealthChecker | None = None,
        preflight: PreflightChecker | None = None,
        environment: Mapping[str, str] | None = None,
        shutdown_event: asyncio.Event | None = None,
    ):
        self.settings = settings
        self.recorder = recorder
        self.runner = runner or CommandRunner(timeout=settings.command_timeout_seconds)
        self.health_checker = health_checker or HealthChecker(
            timeout=settings.health_check_timeout_seconds
        )
        self.preflight = preflight or PreflightChecker(
            timeout=settings.dependency_timeout_seconds,
            min_days_valid=settings.certificate_min_days_valid,
        )
        self.environment = dict(environment or {})
        self.shutdown_event = shutdown_event or asyncio.Event()
        self.logger = get_logger("orchestrator")

        self._handlers: dict[
            DeploymentPhase, Callable[[DeploymentRun], Awaitable[DeploymentPhase]]
        ] = {
            DeploymentPhase.VALIDATING: self._run_validation,
            DeploymentPhase.BUILDING: self._run_build,
            DeploymentPhase.STAGING: self._run_staging,
            DeploymentPhase.PRE_PRODUCTION_CHECKS: self._run_pre_production_checks,
            DeploymentPhase.APPLYING_PRODUCTION: self._run_production_apply,
            DeploymentPhase.MONITORING: self._run_monitoring,
            DeploymentPhase.ROLLING_BACK: self._run_rollback,
        }

    @property
    def monitor_attempts(self) -> int:
        """Ceiling on health polls for one monitoring window."""
        return self.settings.monitor_attempts

    def start(
        self, project: ProjectConfig, trigger: DeploymentTrigger, trace_id: str
    ) -> DeploymentRun:
        """Create the run for a new attempt, positioned at ``validating``."""
        attempt = DeploymentAttempt(
            id=trace_id,
            project=project.name,
            commit=trigger.commit,
            branch=trigger.branch or project.branch,
        )
        return DeploymentRun(project=project, trigger=trigger, trace_id=trace_id, attempt=attempt)

    async def execute(
        self, project: ProjectConfig, trigger: DeploymentTrigger, trace_id: str
    ) -> DeploymentResult:
        """Run a deployment to a terminal phase and summarize it.

        Phase failures never escape; they end the attempt as failed. A
        cancelled task is recorded as interrupted before the cancellation
        propagates.
        """
        run = self.start(project, trigger, trace_id)
        attempt = run.attempt

        self.logger.info(
            "deployment.started",
            project=project.name,
            commit=attempt.commit,
            branch=attempt.branch,
            trace_id=trace_id,
            source=trigger.source,
        )

        try:
            while not attempt.phase.is_terminal:
                attempt.advance(await self.transition(run))
        except asyncio.CancelledError:
            await self._record_cancelled(run)
            raise

        await self._finish(run)
        return DeploymentResult.from_attempt(attempt)

    async def transition(self, run: DeploymentRun) -> DeploymentPhase:
        """Perform the current phase's work and return the next phase.

        The attempt itself is not advanced; callers apply the returned phase
        with ``attempt.advance`` so illegal moves are rejected there.
        """
        phase = run.phase
        if phase.is_terminal:
            raise ValueError(f"Attempt {run.attempt.id} already finished ({phase.value})")

        await self._step(run, phase.value, StepStatus.STARTED)
        self.logger.info(
            "deployment.phase_started", phase=phase.value, trace_id=run.trace_id
        )

        try:
            if phase != DeploymentPhase.ROLLING_BACK and self.shutdown_event.is_set():
                raise DeploymentInterrupted(phase.value)
            next_phase = await self._handlers[phase](run)
        except PhaseFailure as failure:
            return await self._phase_failed(run, failure)
        except Exception as e:
            self.logger.exception(
                "deployment.phase_error", phase=phase.value, trace_id=run.trace_id
            )
            # Production may already be touched once a marker exists
            failure = PhaseFailure(
                phase.value,
                "unexpected-error",
                f"{type(e).__name__}: {e}",
                rollback=run.attempt.rollback_marker is not None,
            )
            return await self._phase_failed(run, failure)

        # A rollback only counts as completed once the service is verified healthy
        if phase == DeploymentPhase.ROLLING_BACK and not run.attempt.rollback_verified:
            status = StepStatus.FAILED
        else:
            status = StepStatus.COMPLETED
        await self._step(run, phase.value, status, {"next": next_phase.value})
        self.logger.info(
            "deployment.phase_completed",
            phase=phase.value,
            next=next_phase.value,
            trace_id=run.trace_id,
        )
        return next_phase

    async def _phase_failed(
        self, run: DeploymentRun, failure: PhaseFailure
    ) -> DeploymentPhase:
        phase = run.phase
        run.attempt.fail(failure.step, failure.reason)

        if isinstance(failure, DeploymentInterrupted):
            await self._step(
                run, "interrupted", StepStatus.FAILED, {"phase": phase.value, "error": failure.reason}
            )

        next_phase = (
            DeploymentPhase.ROLLING_BACK
            if failure.rollback and DeploymentPhase.ROLLING_BACK in TRANSITIONS[phase]
            else DeploymentPhase.FAILED
        )
        await self._step(
            run,
            phase.value,
            StepStatus.FAILED,
            {"step": failure.step, "error": failure.reason, "next": next_phase.value},
        )
        self.logger.warning(
            "deployment.phase_failed",
            phase=phase.value,
            step=failure.step,
            error=failure.reason,
            next=next_phase.value,
            trace_id=run.trace_id,
        )
        return next_phase

    async def _finish(self, run: DeploymentRun) -> None:
        attempt = run.attempt
        status = StepStatus.COMPLETED if attempt.success else StepStatus.FAILED
        detail: dict[str, Any] = {"phase": attempt.phase.value}
        if attempt.error:
            detail["error"] = attempt.error
            detail["failed_step"] = attempt.failed_step
        await self._step(run, "deployment", status, detail)

        log = self.logger.info if attempt.success else self.logger.error
        log(
            "deployment.finished",
            project=attempt.project,
            success=attempt.success,
            phase=attempt.phase.value,
            failed_step=attempt.failed_step,
            trace_id=run.trace_id,
        )

    async def _record_cancelled(self, run: DeploymentRun) -> None:
        attempt = run.attempt
        message = "Deployment task was cancelled"
        self.logger.warning(
            "deployment.cancelled", phase=attempt.phase.value, trace_id=run.trace_id
        )
        attempt.fail("interrupted", message)
        await self._step(
            run, "interrupted", StepStatus.FAILED, {"phase": attempt.phase.value, "error": message}
        )
        if not attempt.phase.is_terminal:
            attempt.advance(DeploymentPhase.FAILED)
        await self._finish(run)

    async def _step(
        self,
        run: DeploymentRun,
        name: str,
        status: StepStatus,
        detail: dict[str, Any] | None = None,
    ) -> None:
        run.attempt.record(name, status, detail)
        await self.recorder.log_step(run.trace_id, name, status, detail)

    async def _pause(self, seconds: float) -> bool:
        """Sleep unless shutdown is requested first. True means interrupted."""
        if self.shutdown_event.is_set():
            return True
        if seconds <= 0:
            return False
        try:
            await asyncio.wait_for(self.shutdown_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    def _command_env(self, **extra: str) -> dict[str, str] | None:
        if not self.environment and not extra:
            return None
        return {**self.environment, **extra}

    async def _run_commands(
        self,
        run: DeploymentRun,
        label: str,
        commands: list[str],
        env: Mapping[str, str] | None = None,
        tolerate_failures: bool = False,
        rollback: bool = False,
    ) -> int:
        """Run commands in order, one step each. Returns the tolerated failure count.

        Without ``tolerate_failures`` the first failing command raises
        ``PhaseFailure`` for the current phase.
        """
        if not commands:
            await self._step(run, label, StepStatus.SKIPPED, {"reason": "no commands configured"})
            return 0

        failures = 0
        for command in commands:
            if self.shutdown_event.is_set():
                raise DeploymentInterrupted(run.phase.value)

            result = await self.runner.run(
                command, cwd=run.project.working_directory, env=env
            )
            detail: dict[str, Any] = {
                "command": command,
                "exit_code": result.exit_code,
                "duration_ms": result.duration_ms,
            }
            if result.success:
                await self._step(run, label, StepStatus.COMPLETED, detail)
                continue

            detail["output"] = result.output[-STEP_OUTPUT_CHARS:]
            if result.timed_out:
                detail["timed_out"] = True
            if tolerate_failures:
                detail["tolerated"] = True
            await self._step(run, label, StepStatus.FAILED, detail)

            if not tolerate_failures:
                reason = "timed out" if result.timed_out else f"exited with {result.exit_code}"
                raise PhaseFailure(
                    run.phase.value, label, f"'{command}' {reason}", rollback=rollback
                )

            failures += 1
            run.attempt.tolerated_failures.append(f"{label}: {command}")
            self.logger.warning(
                "deployment.test_failure_tolerated",
                command=command,
                trace_id=run.trace_id,
            )
        return failures

    async def _run_validation(self, run: DeploymentRun) -> DeploymentPhase:
        await self._run_commands(
            run, "validate", run.project.validate_commands, env=self._command_env()
        )
        return DeploymentPhase.BUILDING

    async def _run_build(self, run: DeploymentRun) -> DeploymentPhase:
        env = self._command_env()
        await self._run_commands(
            run,
            "test",
            run.project.test_commands,
            env=env,
            tolerate_failures=self.settings.tolerate_test_failures,
        )
        await self._run_commands(run, "build", run.project.build_commands, env=env)
        return DeploymentPhase.STAGING

    async def _run_staging(self, run: DeploymentRun) -> DeploymentPhase:
        project = run.project
        env = self._command_env(DEPLOY_STAGE="staging")

        await self._run_commands(run, "staging-validate", project.validate_commands, env=env)
        await self._run_commands(
            run,
            "staging-test",
            project.test_commands,
            env=env,
            tolerate_failures=self.settings.tolerate_test_failures,
        )
        await self._run_commands(run, "staging-build", project.build_commands, env=env)
        await self._run_commands(run, "staging-deploy", project.staging_commands, env=env)

        if project.staging_url:
            await self._wait_until_healthy(run, project.staging_url, "staging-health")
        else:
            await self._step(
                run, "staging-health", StepStatus.SKIPPED, {"reason": "no staging URL configured"}
            )
        return DeploymentPhase.PRE_PRODUCTION_CHECKS

    async def _wait_until_healthy(self, run: DeploymentRun, url: str, label: str) -> None:
        """Poll until the first healthy response, within the monitoring ceiling."""
        attempts = self.monitor_attempts
        last_error = None
        for attempt_number in range(1, attempts + 1):
            if attempt_number > 1 and await self._pause(self.settings.monitor_interval_seconds):
                raise DeploymentInterrupted(run.phase.value)

            result = await self.health_checker.check(url)
            if result.healthy:
                await self._step(
                    run,
                    label,
                    StepStatus.COMPLETED,
                    {"url": url, "attempt": attempt_number, "status_code": result.status_code},
                )
                return
            last_error = result.error or f"HTTP {result.status_code}"

        await self._step(
            run, label, StepStatus.FAILED, {"url": url, "attempts": attempts, "error": last_error}
        )
        raise PhaseFailure(
            run.phase.value,
            label,
            f"{url} not healthy after {attempts} attempts: {last_error}",
            rollback=False,
        )

    async def _run_pre_production_checks(self, run: DeploymentRun) -> DeploymentPhase:
        project = run.project
        failures: list[tuple[str, str]] = []

        if project.required_env:
            outcome = self.preflight.check_environment(project.required_env, self.environment)
            await self._record_check(run, "environment-check", outcome.ok, outcome.detail, failures)
        else:
            await self._step(
                run, "environment-check", StepStatus.SKIPPED, {"reason": "no required variables"}
            )

        for url in project.dependency_urls:
            outcome = await self.preflight.check_dependency(url)
            await self._record_check(run, "dependency-check", outcome.ok, outcome.detail, failures)

        if project.production_url and project.production_url.startswith("https://"):
            outcome = await self.preflight.check_certificate(project.production_url)
            await self._record_check(run, "certificate-check", outcome.ok, outcome.detail, failures)

        if failures:
            step, detail = failures[0]
            raise PhaseFailure(run.phase.value, step, detail)
        return DeploymentPhase.APPLYING_PRODUCTION

    async def _record_check(
        self,
        run: DeploymentRun,
        name: str,
        ok: bool,
        detail: str,
        failures: list[tuple[str, str]],
    ) -> None:
        status = StepStatus.COMPLETED if ok else StepStatus.FAILED
        await self._step(run, name, status, {"detail": detail})
        if not ok:
            failures.append((name, detail))

    async def _run_production_apply(self, run: DeploymentRun) -> DeploymentPhase:
        project = run.project
        env = self._command_env()

        # The marker must exist before anything in production changes
        result = await self.runner.run(
            project.revision_command, cwd=project.working_directory, env=env
        )
        marker = result.output.strip().splitlines()[-1].strip() if result.output.strip() else ""
        if not result.success or not marker:
            error = "no revision reported" if result.success else result.output[-STEP_OUTPUT_CHARS:]
            await self._step(
                run,
                "rollback-marker",
                StepStatus.FAILED,
                {"command": project.revision_command, "error": error},
            )
            raise PhaseFailure(
                run.phase.value,
                "rollback-marker",
                f"Could not capture rollback marker: {error}",
                rollback=False,
            )

        run.attempt.rollback_marker = marker
        await self._step(run, "rollback-marker", StepStatus.COMPLETED, {"marker": marker})

        await self._run_commands(run, "deploy", project.deploy_commands, env=env, rollback=True)
        if project.restart_command:
            await self._run_commands(run, "restart", [project.restart_command], env=env, rollback=True)
        return DeploymentPhase.MONITORING

    async def _run_monitoring(self, run: DeploymentRun) -> DeploymentPhase:
        url = run.project.health_check_url
        if not url:
            await self._step(
                run, "health-check", StepStatus.SKIPPED, {"reason": "no health check URL configured"}
            )
            return DeploymentPhase.SUCCEEDED

        required = max(1, self.settings.monitor_required_healthy)
        attempts = self.monitor_attempts
        consecutive = 0

        for attempt_number in range(1, attempts + 1):
            if await self._pause(self.settings.monitor_interval_seconds):
                raise DeploymentInterrupted(run.phase.value)

            result = await self.health_checker.check(url)
            detail = {
                "url": url,
                "attempt": attempt_number,
                "status_code": result.status_code,
                "response_time_ms": result.response_time_ms,
            }
            if not result.healthy:
                detail["error"] = result.error
                await self._step(run, "health-check", StepStatus.FAILED, detail)
                raise PhaseFailure(
                    run.phase.value,
                    "health-check",
                    f"Unhealthy response from {url}: {result.error or f'HTTP {result.status_code}'}",
                )

            consecutive += 1
            detail["consecutive"] = consecutive
            await self._step(run, "health-check", StepStatus.COMPLETED, detail)
            if consecutive >= required:
                return DeploymentPhase.SUCCEEDED

        raise PhaseFailure(
            run.phase.value,
            "health-check",
            f"Only {consecutive} of {required} required healthy responses in {attempts} attempts",
        )

    async def _run_rollback(self, run: DeploymentRun) -> DeploymentPhase:
        """Best-effort restore. Always ends the attempt as failed."""
        project = run.project
        attempt = run.attempt
        marker = attempt.rollback_marker

        if not marker:
            reason = "no rollback marker captured; production was not modified"
            await self._step(run, "rollback-attempted", StepStatus.SKIPPED, {"reason": reason})
            await self._step(run, "rollback-verified", StepStatus.SKIPPED, {"reason": reason})
            return DeploymentPhase.FAILED

        env = self._command_env()
        command = (project.rollback_command or DEFAULT_ROLLBACK_COMMAND).replace("{marker}", marker)
        attempt.rollback_attempted = True
        result = await self.runner.run(command, cwd=project.working_directory, env=env)
        detail: dict[str, Any] = {"command": command, "marker": marker, "exit_code": result.exit_code}
        if not result.success:
            detail["output"] = result.output[-STEP_OUTPUT_CHARS:]
        await self._step(
            run,
            "rollback-attempted",
            StepStatus.COMPLETED if result.success else StepStatus.FAILED,
            detail,
        )
        restored = result.success

        if project.restart_command:
            restart = await self.runner.run(
                project.restart_command, cwd=project.working_directory, env=env
            )
            await self._step(
                run,
                "rollback-restart",
                StepStatus.COMPLETED if restart.success else StepStatus.FAILED,
                {"command": project.restart_command, "exit_code": restart.exit_code},
            )
            restored = restored and restart.success

        url = project.health_check_url
        if not url:
            await self._step(
                run, "rollback-verified", StepStatus.SKIPPED, {"reason": "no health check URL configured"}
            )
            return DeploymentPhase.FAILED

        health = await self.health_checker.check(url)
        attempt.rollback_verified = restored and health.healthy
        await self._step(
            run,
            "rollback-verified",
            StepStatus.COMPLETED if attempt.rollback_verified else StepStatus.FAILED,
            {"url": url, "status_code": health.status_code, "error": health.error},
        )
        self.logger.warning(
            "deployment.rolled_back",
            project=project.name,
            marker=marker,
            verified=attempt.rollback_verified,
            trace_id=run.trace_id,
        )
        return DeploymentPhase.FAILED

