"""Project endpoints: listing, manual deploys and live trace events."""

import asyncio

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from pushdeploy.api.deps import EventsDep, GatewayDep, RegistryDep
from pushdeploy.core.events import Event
from pushdeploy.models.project import ProjectSummary

router = APIRouter()

# Seconds between keepalive events on an idle stream
KEEPALIVE_SECONDS = 30.0


class ProjectListResponse(BaseModel):
    """Response for listing projects."""

    projects: list[ProjectSummary]
    total: int


@router.get("", response_model=ProjectListResponse)
async def list_projects(registry: RegistryDep) -> ProjectListResponse:
    """List configured projects."""
    projects = [ProjectSummary.from_config(p) for p in registry.all()]
    return ProjectListResponse(projects=projects, total=len(projects))


@router.post(
    "/{name}/deploy",
    summary="Trigger a deployment manually",
    description="Runs the full deployment pipeline without a signed webhook. Operator use only.",
)
async def deploy_project(name: str, gateway: GatewayDep) -> JSONResponse:
    """Deploy ``name`` from its configured branch."""
    response = await gateway.trigger_manual(name)
    return JSONResponse(status_code=response.status_code, content=response.body)


@router.get("/{name}/events")
async def stream_project_events(
    name: str,
    registry: RegistryDep,
    events: EventsDep,
) -> EventSourceResponse:
    """Stream trace steps for a project using Server-Sent Events."""
    project = registry.resolve(name)
    if project is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Project not found: {name}",
        )

    async def event_generator():
        queue = events.subscribe(project.name)

        try:
            yield Event("connected", {"project": project.name}).to_payload()

            while True:
                try:
                    event: Event = await asyncio.wait_for(
                        queue.get(), timeout=KEEPALIVE_SECONDS
                    )
                    yield event.to_payload()
                except asyncio.TimeoutError:
                    yield {"event": "keepalive", "data": "{}"}

        finally:
            events.unsubscribe(project.name, queue)

    return EventSourceResponse(event_generator())
