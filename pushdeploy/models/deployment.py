"""Deployment data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from pushdeploy.models.trace import StepStatus, TraceStep


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeploymentPhase(str, Enum):
    """States of the deployment state machine."""

    VALIDATING = "validating"
    BUILDING = "building"
    STAGING = "staging"
    PRE_PRODUCTION_CHECKS = "pre_production_checks"
    APPLYING_PRODUCTION = "applying_production"
    MONITORING = "monitoring"
    ROLLING_BACK = "rolling_back"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DeploymentPhase.SUCCEEDED, DeploymentPhase.FAILED)


# Forward-only moves. Every running phase may fail outright (interruption).
TRANSITIONS: dict[DeploymentPhase, frozenset[DeploymentPhase]] = {
    DeploymentPhase.VALIDATING: frozenset(
        {DeploymentPhase.BUILDING, DeploymentPhase.FAILED}
    ),
    DeploymentPhase.BUILDING: frozenset(
        {DeploymentPhase.STAGING, DeploymentPhase.FAILED}
    ),
    DeploymentPhase.STAGING: frozenset(
        {DeploymentPhase.PRE_PRODUCTION_CHECKS, DeploymentPhase.FAILED}
    ),
    DeploymentPhase.PRE_PRODUCTION_CHECKS: frozenset(
        {
            DeploymentPhase.APPLYING_PRODUCTION,
            DeploymentPhase.ROLLING_BACK,
            DeploymentPhase.FAILED,
        }
    ),
    DeploymentPhase.APPLYING_PRODUCTION: frozenset(
        {
            DeploymentPhase.MONITORING,
            DeploymentPhase.ROLLING_BACK,
            DeploymentPhase.FAILED,
        }
    ),
    DeploymentPhase.MONITORING: frozenset(
        {
            DeploymentPhase.SUCCEEDED,
            DeploymentPhase.ROLLING_BACK,
            DeploymentPhase.FAILED,
        }
    ),
    DeploymentPhase.ROLLING_BACK: frozenset({DeploymentPhase.FAILED}),
    DeploymentPhase.SUCCEEDED: frozenset(),
    DeploymentPhase.FAILED: frozenset(),
}


class DeploymentTrigger(BaseModel):
    """What started a deployment."""

    source: Literal["webhook", "manual"] = "webhook"
    commit: str | None = None
    message: str | None = None
    author: str | None = None
    branch: str | None = None
    delivery_id: str | None = None


class CommandResult(BaseModel):
    """Outcome of one external command invocation."""

    command: str
    success: bool
    exit_code: int | None = None
    output: str = ""
    timed_out: bool = False
    duration_ms: int = 0


class HealthCheckResult(BaseModel):
    """Outcome of one health endpoint poll."""

    url: str
    healthy: bool
    status_code: int = 0
    response_time_ms: int = 0
    error: str | None = None


class DeploymentAttempt(BaseModel):
    """One run of the orchestrator for one trigger.

    Owned by the orchestrator while running. ``steps`` is append-only and
    ``phase`` only moves along ``TRANSITIONS``.
    """

    id: str
    project: str
    commit: str | None = None
    branch: str | None = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None

    phase: DeploymentPhase = DeploymentPhase.VALIDATING
    visited: list[DeploymentPhase] = Field(
        default_factory=lambda: [DeploymentPhase.VALIDATING]
    )
    steps: list[TraceStep] = Field(default_factory=list)
    success: bool | None = None

    rollback_marker: str | None = None
    rollback_attempted: bool = False
    rollback_verified: bool = False
    error: str | None = None
    failed_step: str | None = None
    tolerated_failures: list[str] = Field(default_factory=list)

    def record(
        self,
        name: str,
        status: StepStatus,
        detail: dict[str, Any] | None = None,
    ) -> TraceStep:
        """Append a step to the attempt's trail."""
        step = TraceStep(name=name, status=status, detail=detail, timestamp=utcnow())
        self.steps.append(step)
        return step

    def advance(self, next_phase: DeploymentPhase) -> None:
        """Move to ``next_phase``; illegal or repeated moves raise ValueError."""
        if next_phase not in TRANSITIONS[self.phase]:
            raise ValueError(
                f"Illegal phase transition: {self.phase.value} -> {next_phase.value}"
            )
        if next_phase in self.visited:
            raise ValueError(f"Phase already visited: {next_phase.value}")

        self.phase = next_phase
        self.visited.append(next_phase)

        if next_phase.is_terminal:
            self.success = next_phase == DeploymentPhase.SUCCEEDED
            self.completed_at = utcnow()

    def fail(self, step: str, error: str) -> None:
        """Remember the first hard failure of the run."""
        if self.failed_step is None:
            self.failed_step = step
            self.error = error


class DeploymentResult(BaseModel):
    """Read-only summary of a finished attempt."""

    success: bool
    attempt_id: str
    project: str
    commit: str | None = None
    branch: str | None = None
    phase: DeploymentPhase
    phases: list[DeploymentPhase] = Field(default_factory=list)

    error: str | None = None
    failed_step: str | None = None
    rollback_marker: str | None = None
    rollback_attempted: bool = False
    rollback_verified: bool = False
    tolerated_failures: list[str] = Field(default_factory=list)

    started_at: datetime
    completed_at: datetime | None = None
    duration_ms: int = 0

    @classmethod
    def from_attempt(cls, attempt: DeploymentAttempt) -> "DeploymentResult":
        """Create result from a terminal attempt."""
        duration_ms = 0
        if attempt.completed_at:
            duration_ms = int(
                (attempt.completed_at - attempt.started_at).total_seconds() * 1000
            )

        return cls(
            success=bool(attempt.success),
            attempt_id=attempt.id,
            project=attempt.project,
            commit=attempt.commit,
            branch=attempt.branch,
            phase=attempt.phase,
            phases=list(attempt.visited),
            error=attempt.error,
            failed_step=attempt.failed_step,
            rollback_marker=attempt.rollback_marker,
            rollback_attempted=attempt.rollback_attempted,
            rollback_verified=attempt.rollback_verified,
            tolerated_failures=list(attempt.tolerated_failures),
            started_at=attempt.started_at,
            completed_at=attempt.completed_at,
            duration_ms=duration_ms,
        )
