"""Trace ledger models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class StepStatus(str, Enum):
    """Outcome of one recorded step."""

    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class TraceStep(BaseModel):
    """One append-only entry in a trace."""

    name: str
    status: StepStatus
    detail: dict[str, Any] | None = None
    timestamp: datetime


class Trace(BaseModel):
    """A recorded webhook or deployment attempt with its decision trail."""

    id: str
    kind: str
    project: str | None = None
    commit: str | None = None
    branch: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    started_at: datetime
    completed_at: datetime | None = None
    phase: str | None = None
    # None while the attempt is still running
    success: bool | None = None

    steps: list[TraceStep] = Field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None

    def steps_named(self, name: str) -> list[TraceStep]:
        """All steps recorded under ``name``, in order."""
        return [step for step in self.steps if step.name == name]
