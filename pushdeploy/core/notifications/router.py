"""Fan-out of one notification to every enabled channel."""

import asyncio
import sys
from typing import TextIO

import httpx

from pushdeploy.config import Settings
from pushdeploy.core.notifications.channels import (
    ConsoleChannel,
    DesktopChannel,
    NotificationChannel,
    WebhookChannel,
    WhatsAppChannel,
)
from pushdeploy.core.notifications.whatsapp import WhatsAppClient
from pushdeploy.models.notification import ChannelResult, NotificationEvent
from pushdeploy.utils.logging import get_logger

logger = get_logger("notifications")


class NotificationRouter:
    """Sends an event to all channels concurrently.

    A slow or failing channel never delays or fails another one, and the
    caller always gets exactly one result per channel, in channel order.
    """

    def __init__(
        self,
        channels: list[NotificationChannel],
        timeout: float = 15.0,
        concurrency: int = 4,
    ):
        self.channels = list(channels)
        self.timeout = timeout
        self.concurrency = max(1, concurrency)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        stream: TextIO | None = None,
        platform: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "NotificationRouter":
        """Build the channel list from settings. Console is always enabled."""
        platform = platform or sys.platform
        channels: list[NotificationChannel] = [ConsoleChannel(stream)]

        if settings.notify_desktop:
            if DesktopChannel.is_supported(platform):
                channels.append(DesktopChannel(platform))
            else:
                logger.info("notifications.desktop_unsupported", platform=platform)

        if settings.notification_webhook_url:
            channels.append(
                WebhookChannel(
                    settings.notification_webhook_url,
                    timeout=settings.notification_timeout_seconds,
                    transport=transport,
                )
            )

        if settings.whatsapp_enabled:
            client = WhatsAppClient(
                access_token=settings.whatsapp_access_token,
                phone_number_id=settings.whatsapp_phone_number_id,
                api_version=settings.whatsapp_api_version,
                base_url=settings.whatsapp_base_url,
                timeout=settings.notification_timeout_seconds,
                transport=transport,
            )
            channels.append(
                WhatsAppChannel(
                    client,
                    settings.whatsapp_recipient,
                    language=settings.whatsapp_template_language,
                )
            )

        router = cls(
            channels,
            timeout=settings.notification_timeout_seconds,
            concurrency=settings.notification_concurrency,
        )
        logger.info("notifications.configured", channels=router.channel_names)
        return router

    @property
    def channel_names(self) -> list[str]:
        return [channel.name for channel in self.channels]

    async def _send_one(
        self,
        channel: NotificationChannel,
        event: NotificationEvent,
        semaphore: asyncio.Semaphore,
    ) -> ChannelResult:
        async with semaphore:
            return await asyncio.wait_for(channel.send(event), timeout=self.timeout)

    async def send(self, event: NotificationEvent) -> list[ChannelResult]:
        """Deliver ``event`` everywhere and collect per-channel outcomes."""
        if not self.channels:
            return []

        semaphore = asyncio.Semaphore(self.concurrency)
        outcomes = await asyncio.gather(
            *(self._send_one(channel, event, semaphore) for channel in self.channels),
            return_exceptions=True,
        )

        results: list[ChannelResult] = []
        for channel, outcome in zip(self.channels, outcomes):
            if isinstance(outcome, ChannelResult):
                results.append(outcome)
                continue

            if isinstance(outcome, asyncio.TimeoutError):
                error = f"timed out after {self.timeout} seconds"
            else:
                error = str(outcome) or type(outcome).__name__
            logger.error(
                "notifications.channel_failed", channel=channel.name, error=error
            )
            results.append(ChannelResult(channel=channel.name, success=False, error=error))

        delivered = sum(1 for r in results if r.success)
        logger.info(
            "notifications.sent",
            title=event.title,
            delivered=delivered,
            total=len(results),
        )
        return results
