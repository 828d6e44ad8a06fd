"""Trace recorder: the append-only ledger of webhook and deployment attempts."""

from typing import Any
from uuid import uuid4

from pushdeploy.core.events import EventBus
from pushdeploy.core.trace_repository import TraceRepository
from pushdeploy.models.deployment import utcnow
from pushdeploy.models.trace import StepStatus, Trace, TraceStep
from pushdeploy.utils.logging import get_logger


class TraceRecorder:
    """Records attempts step by step.

    Writes never raise into the caller: an unknown trace id or a storage
    error is logged and reported through the return value, so tracing can
    not abort a deployment.
    """

    def __init__(self, repository: TraceRepository, events: EventBus | None = None):
        self.repository = repository
        self.events = events or EventBus()
        self.logger = get_logger("tracing")
        # trace id -> project, for routing live events
        self._projects: dict[str, str] = {}

    async def start_trace(self, kind: str, metadata: dict[str, Any] | None = None) -> str:
        """Open a new trace and return its id."""
        metadata = dict(metadata or {})
        trace = Trace(
            id=f"{kind}-{uuid4().hex[:16]}",
            kind=kind,
            project=metadata.get("project"),
            commit=metadata.get("commit"),
            branch=metadata.get("branch"),
            metadata=metadata,
            started_at=utcnow(),
        )
        await self.repository.create(trace)
        if trace.project:
            self._projects[trace.id] = trace.project

        self.logger.info("trace.started", trace_id=trace.id, kind=kind)
        return trace.id

    async def annotate(
        self,
        trace_id: str,
        project: str | None = None,
        commit: str | None = None,
        branch: str | None = None,
    ) -> None:
        """Attach the project/commit/branch learned after the trace started."""
        try:
            await self.repository.annotate(
                trace_id, project=project, commit=commit, branch=branch
            )
        except Exception as e:
            self.logger.error("trace.annotate_failed", trace_id=trace_id, error=str(e))
            return
        if project:
            self._projects[trace_id] = project

    async def log_step(
        self,
        trace_id: str,
        name: str,
        status: StepStatus | str,
        detail: dict[str, Any] | None = None,
    ) -> bool:
        """Append a step. Returns False (and logs) when it could not be stored."""
        status = StepStatus(status)
        step = TraceStep(name=name, status=status, detail=detail, timestamp=utcnow())

        try:
            if not await self.repository.exists(trace_id):
                self.logger.warning("trace.unknown_id", trace_id=trace_id, step=name)
                return False
            await self.repository.add_step(trace_id, step)
        except Exception as e:
            self.logger.error(
                "trace.step_write_failed",
                trace_id=trace_id,
                step=name,
                error=str(e),
            )
            return False

        self.logger.debug(
            "trace.step", trace_id=trace_id, step=name, status=status.value
        )

        project = self._projects.get(trace_id)
        if project:
            await self.events.publish_step(project, trace_id, name, status.value, detail)
        return True

    async def complete_trace(
        self, trace_id: str, success: bool, phase: str | None = None
    ) -> bool:
        """Mark the trace terminal with its outcome and completion time."""
        try:
            updated = await self.repository.complete(
                trace_id, success, utcnow(), phase=phase
            )
        except Exception as e:
            self.logger.error("trace.complete_failed", trace_id=trace_id, error=str(e))
            return False

        if not updated:
            self.logger.warning("trace.unknown_id", trace_id=trace_id, step="complete")
            return False

        self.logger.info(
            "trace.completed", trace_id=trace_id, success=success, phase=phase
        )
        project = self._projects.pop(trace_id, None)
        if project:
            await self.events.publish_trace_completed(project, trace_id, success, phase)
        return True

    async def get_trace(self, trace_id: str) -> Trace | None:
        return await self.repository.get_by_id(trace_id)

    async def get_latest_trace(self) -> Trace | None:
        return await self.repository.get_latest()

    async def get_traces_for_project(self, project: str, limit: int = 50) -> list[Trace]:
        return await self.repository.list_for_project(project, limit=limit)
