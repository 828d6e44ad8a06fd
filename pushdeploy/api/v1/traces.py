"""Trace query endpoints. Read-only."""

from fastapi import APIRouter, HTTPException, Query, status

from pushdeploy.api.deps import RecorderDep
from pushdeploy.core.exceptions import TraceNotFoundError
from pushdeploy.models.trace import Trace

router = APIRouter()


@router.get("/latest", response_model=Trace)
async def get_latest_trace(recorder: RecorderDep) -> Trace:
    """The most recently started trace across all projects."""
    trace = await recorder.get_latest_trace()
    if trace is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No traces recorded yet",
        )
    return trace


@router.get("/project/{name}", response_model=list[Trace])
async def get_project_traces(
    name: str,
    recorder: RecorderDep,
    limit: int = Query(default=50, ge=1, le=500),
) -> list[Trace]:
    """Traces for one project, newest first."""
    return await recorder.get_traces_for_project(name, limit=limit)


@router.get("/{trace_id}", response_model=Trace)
async def get_trace(trace_id: str, recorder: RecorderDep) -> Trace:
    """One trace with its full step trail."""
    trace = await recorder.get_trace(trace_id)
    if trace is None:
        raise TraceNotFoundError(trace_id)
    return trace
