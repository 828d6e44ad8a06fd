"""Inbound webhook endpoint."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from pushdeploy.api.deps import GatewayDep

router = APIRouter()


@router.post(
    "",
    summary="Receive a signed push event",
    description="Verifies the X-Hub-Signature-256 header over the raw body, then deploys the matching project.",
)
async def receive_webhook(request: Request, gateway: GatewayDep) -> JSONResponse:
    """Hand the raw body to the gateway; the signature covers the exact bytes."""
    raw_body = await request.body()
    response = await gateway.handle(raw_body, request.headers)
    return JSONResponse(status_code=response.status_code, content=response.body)
