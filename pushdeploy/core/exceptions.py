"""Custom exceptions for pushdeploy."""

from typing import Any


class PushDeployError(Exception):
    """Base exception for pushdeploy."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(PushDeployError):
    """Project configuration could not be loaded."""

    def __init__(self, message: str, path: str | None = None):
        details = {}
        if path is not None:
            details["path"] = path
        super().__init__(f"Configuration error: {message}", details)


class PhaseFailure(PushDeployError):
    """A deployment phase hit a hard-blocking failure."""

    def __init__(self, phase: str, step: str, message: str, rollback: bool = True):
        super().__init__(
            f"Phase '{phase}' failed at '{step}': {message}",
            {"phase": phase, "step": step},
        )
        self.phase = phase
        self.step = step
        self.reason = message
        # False when nothing was mutated yet, so there is nothing to restore
        self.rollback = rollback


class DeploymentInterrupted(PhaseFailure):
    """Shutdown was requested while the deployment was running."""

    def __init__(self, phase: str, message: str = "Deployment interrupted by shutdown"):
        super().__init__(phase, "interrupted", message, rollback=False)


class DeploymentInProgressError(PushDeployError):
    """Another deployment for the same project is still running."""

    def __init__(self, project: str):
        super().__init__(
            f"Deployment already in progress for {project}",
            {"project": project},
        )
        self.project = project


class TraceNotFoundError(PushDeployError):
    """Trace not found."""

    def __init__(self, trace_id: str):
        super().__init__(
            f"Trace not found: {trace_id}",
            {"trace_id": trace_id},
        )
