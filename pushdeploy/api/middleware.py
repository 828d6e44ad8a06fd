"""Custom middleware for the API."""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from pushdeploy.utils.logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
)

logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with its duration.

    GitHub deliveries are correlated by their ``X-GitHub-Delivery`` id, which
    becomes the request id bound to every log line of the request.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        request_id = (
            request.headers.get("X-GitHub-Delivery")
            or request.headers.get("X-Request-ID")
            or str(time.time_ns())
        )

        clear_request_context()
        bind_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        logger.info("request.started")

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request.failed",
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000

        logger.info(
            "request.completed",
            status_code=response.status_code,
            duration_ms=round(elapsed_ms, 2),
        )
        clear_request_context()

        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"
        response.headers["X-Request-ID"] = request_id
        return response
