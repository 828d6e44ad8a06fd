"""HTTP health checks for deployed services."""

import time

import httpx

from pushdeploy.models.deployment import HealthCheckResult
from pushdeploy.utils.logging import get_logger

USER_AGENT = "pushdeploy-health-check/1.0"


class HealthChecker:
    """Polls a health endpoint; only HTTP 200 counts as healthy."""

    def __init__(
        self,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.transport = transport
        self.logger = get_logger("health")

    async def check(self, url: str) -> HealthCheckResult:
        """Poll ``url`` once. Transport errors are unhealthy results."""
        start_time = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self.transport,
                headers={"User-Agent": USER_AGENT},
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            self.logger.warning("health.unreachable", url=url, error=str(e))
            return HealthCheckResult(
                url=url,
                healthy=False,
                response_time_ms=int((time.perf_counter() - start_time) * 1000),
                error=str(e) or type(e).__name__,
            )

        response_time_ms = int((time.perf_counter() - start_time) * 1000)
        healthy = response.status_code == 200

        if healthy:
            self.logger.debug("health.ok", url=url, response_time_ms=response_time_ms)
        else:
            self.logger.warning("health.bad_status", url=url, status=response.status_code)

        return HealthCheckResult(
            url=url,
            healthy=healthy,
            status_code=response.status_code,
            response_time_ms=response_time_ms,
        )
