"""Pre-production probes: environment, downstream dependencies, TLS certificates."""

import asyncio
import ssl
import time
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import urlparse

from pushdeploy.utils.logging import get_logger

DEFAULT_PORTS = {
    "postgres": 5432,
    "postgresql": 5432,
    "mysql": 3306,
    "redis": 6379,
    "rediss": 6380,
    "mongodb": 27017,
    "amqp": 5672,
    "http": 80,
    "https": 443,
}


@dataclass
class CheckOutcome:
    """Result of one preflight probe."""

    ok: bool
    detail: str


class PreflightChecker:
    """Probes run during the pre-production checks phase."""

    def __init__(self, timeout: float = 5.0, min_days_valid: int = 7):
        self.timeout = timeout
        self.min_days_valid = min_days_valid
        self.logger = get_logger("preflight")

    def check_environment(
        self, required: list[str], environment: Mapping[str, str]
    ) -> CheckOutcome:
        """All ``required`` variables must be present and non-empty."""
        missing = [name for name in required if not environment.get(name)]
        if missing:
            return CheckOutcome(False, f"Missing environment variables: {', '.join(missing)}")
        return CheckOutcome(True, f"{len(required)} variables present")

    async def check_dependency(self, url: str) -> CheckOutcome:
        """Open (and close) a TCP connection to the dependency's host:port."""
        parsed = urlparse(url)
        host = parsed.hostname
        try:
            port = parsed.port or DEFAULT_PORTS.get(parsed.scheme)
        except ValueError as e:
            return CheckOutcome(False, f"Invalid dependency URL {url!r}: {e}")
        if not host or not port:
            return CheckOutcome(False, f"Cannot determine host/port from {url!r}")

        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            self.logger.warning("preflight.dependency_unreachable", host=host, port=port)
            return CheckOutcome(False, f"{host}:{port} unreachable: {str(e) or 'timeout'}")

        await self._close(writer)
        return CheckOutcome(True, f"{host}:{port} reachable")

    async def check_certificate(self, url: str) -> CheckOutcome:
        """Verify the TLS certificate and its remaining validity."""
        parsed = urlparse(url)
        if parsed.scheme != "https" or not parsed.hostname:
            return CheckOutcome(True, "Not an https URL, certificate check skipped")

        host = parsed.hostname
        try:
            port = parsed.port or 443
        except ValueError as e:
            return CheckOutcome(False, f"Invalid production URL {url!r}: {e}")
        context = ssl.create_default_context()

        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port, ssl=context, server_hostname=host),
                timeout=self.timeout,
            )
        except (OSError, ssl.SSLError, asyncio.TimeoutError) as e:
            return CheckOutcome(False, f"TLS handshake with {host} failed: {str(e) or 'timeout'}")

        try:
            cert = writer.get_extra_info("peercert") or {}
        finally:
            await self._close(writer)

        not_after = cert.get("notAfter")
        if not not_after:
            return CheckOutcome(False, f"No certificate expiry reported by {host}")

        days_left = int((ssl.cert_time_to_seconds(not_after) - time.time()) // 86400)
        if days_left < self.min_days_valid:
            return CheckOutcome(
                False,
                f"Certificate for {host} expires in {days_left} days "
                f"(minimum {self.min_days_valid})",
            )
        return CheckOutcome(True, f"Certificate for {host} valid for {days_left} days")

    @staticmethod
    async def _close(writer: asyncio.StreamWriter) -> None:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
