"""Main router for API v1."""

from fastapi import APIRouter

from pushdeploy.api.v1 import health, projects, traces, webhook

router = APIRouter(prefix="/v1")

# Include sub-routers
router.include_router(health.router, tags=["health"])
router.include_router(webhook.router, prefix="/webhook", tags=["webhook"])
router.include_router(projects.router, prefix="/projects", tags=["projects"])
router.include_router(traces.router, prefix="/traces", tags=["traces"])
