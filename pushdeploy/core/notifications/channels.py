"""Notification channel implementations."""

import asyncio
import sys
from abc import ABC, abstractmethod
from typing import TextIO

import httpx

from pushdeploy.core.notifications.messages import extract_primary_link
from pushdeploy.core.notifications.whatsapp import WhatsAppClient
from pushdeploy.models.notification import (
    ChannelResult,
    NotificationEvent,
    NotificationKind,
)
from pushdeploy.utils.logging import get_logger

logger = get_logger("notifications")


class NotificationChannel(ABC):
    """Abstract base class for notification channels.

    ``send`` reports delivery problems in the returned ``ChannelResult``;
    the router also converts anything a channel raises into a failed result.
    """

    name: str = "channel"

    @abstractmethod
    async def send(self, event: NotificationEvent) -> ChannelResult:
        """Deliver one event."""
        pass


class ConsoleChannel(NotificationChannel):
    """Prints the notification to a text stream. Always enabled."""

    name = "console"

    EMOJIS = {
        NotificationKind.INFO: "📘",
        NotificationKind.SUCCESS: "🟢",
        NotificationKind.ERROR: "🔴",
        NotificationKind.WARNING: "🟡",
    }

    def __init__(self, stream: TextIO | None = None):
        self.stream = stream

    async def send(self, event: NotificationEvent) -> ChannelResult:
        stream = self.stream or sys.stdout
        emoji = self.EMOJIS.get(event.kind, "📄")
        body = event.message.replace("\n", "\n   ")

        print(f"\n📢 {emoji} {event.title}", file=stream)
        print(f"🕐 {event.timestamp.isoformat()}", file=stream)
        print(f"📝 {body}\n", file=stream)
        return ChannelResult(channel=self.name, success=True)


class DesktopChannel(NotificationChannel):
    """Native desktop notification via notify-send (Linux) or osascript (macOS).

    Notifications are sent at critical urgency so focus modes do not hide
    them, and errors play a different sound from every other kind.
    """

    name = "desktop"

    SUPPORTED_PLATFORMS = ("linux", "darwin")

    SOUNDS = {
        "linux": {"success": "complete", "error": "dialog-error"},
        "darwin": {"success": "Hero", "error": "Basso"},
    }

    def __init__(self, platform: str | None = None, expire_seconds: int = 20):
        self.platform = platform or sys.platform
        self.expire_seconds = expire_seconds

    @classmethod
    def is_supported(cls, platform: str) -> bool:
        return platform.startswith(cls.SUPPORTED_PLATFORMS)

    def _platform_key(self) -> str:
        return "darwin" if self.platform.startswith("darwin") else "linux"

    def sound_for(self, kind: NotificationKind) -> str:
        """Error events get the urgent cue; everything else the success cue."""
        sounds = self.SOUNDS[self._platform_key()]
        if NotificationKind(kind) == NotificationKind.ERROR:
            return sounds["error"]
        return sounds["success"]

    def build_command(self, event: NotificationEvent) -> list[str]:
        """argv for the platform's notifier."""
        sound = self.sound_for(event.kind)
        message = event.message
        link = extract_primary_link(event.deployment, event.kind)
        if link and link not in message:
            message = f"{message}\n{link}"

        if self._platform_key() == "darwin":
            script = (
                f"display notification {_applescript_quote(message)} "
                f"with title {_applescript_quote(event.title)} "
                f"sound name {_applescript_quote(sound)}"
            )
            return ["osascript", "-e", script]

        return [
            "notify-send",
            "--urgency=critical",
            "--app-name=pushdeploy",
            f"--expire-time={self.expire_seconds * 1000}",
            f"--hint=string:sound-name:{sound}",
            event.title,
            message,
        ]

    async def _launch(self, argv: list[str]) -> tuple[int, str]:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise
        return process.returncode, stderr.decode(errors="replace") if stderr else ""

    async def send(self, event: NotificationEvent) -> ChannelResult:
        try:
            returncode, stderr = await self._launch(self.build_command(event))
        except OSError as e:
            logger.error("notifications.desktop_failed", error=str(e))
            return ChannelResult(channel=self.name, success=False, error=str(e))

        if returncode != 0:
            error = stderr.strip() or f"notifier exited with code {returncode}"
            logger.error("notifications.desktop_failed", error=error)
            return ChannelResult(channel=self.name, success=False, error=error)

        return ChannelResult(channel=self.name, success=True)


def _applescript_quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class WebhookChannel(NotificationChannel):
    """POSTs a fixed-shape JSON payload to an outbound webhook URL."""

    name = "webhook"

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    def build_payload(self, event: NotificationEvent) -> dict:
        deployment = event.deployment
        return {
            "title": event.title,
            "message": event.message,
            "kind": event.kind.value,
            "timestamp": event.timestamp.isoformat(),
            "deployment": {
                "project": deployment.project,
                "commit": deployment.commit,
                "branch": deployment.branch,
                "status": deployment.status,
                "phase": deployment.phase,
            },
        }

    async def send(self, event: NotificationEvent) -> ChannelResult:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post(self.url, json=self.build_payload(event))
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("notifications.webhook_failed", url=self.url, error=str(e))
            return ChannelResult(channel=self.name, success=False, error=str(e))

        logger.info("notifications.webhook_sent", title=event.title)
        return ChannelResult(channel=self.name, success=True)


class WhatsAppChannel(NotificationChannel):
    """Template message first, free-text fallback on any template failure.

    The fallback carries the same project, commit and branch as the
    template parameters; its outcome is the channel's outcome.
    """

    name = "whatsapp"

    TEMPLATES = {
        NotificationKind.SUCCESS: "cicd_deployment_success",
        NotificationKind.ERROR: "cicd_deployment_failed",
        NotificationKind.WARNING: "cicd_deployment_warning",
        NotificationKind.INFO: "cicd_deployment_started",
    }

    def __init__(self, client: WhatsAppClient, recipient: str, language: str = "es"):
        self.client = client
        self.recipient = recipient
        self.language = language

    def template_for(self, kind: NotificationKind) -> str:
        return self.TEMPLATES.get(NotificationKind(kind), "cicd_general_notification")

    def template_parameters(self, event: NotificationEvent) -> list[str]:
        deployment = event.deployment
        return [
            deployment.project or "Unknown",
            deployment.commit or "Unknown",
            deployment.branch or "Unknown",
            event.timestamp.strftime("%d/%m/%Y %H:%M:%S"),
        ]

    def fallback_text(self, event: NotificationEvent) -> str:
        deployment = event.deployment
        return (
            f"{event.title}\n\n{event.message}\n\n"
            f"📊 Project: {deployment.project or 'Unknown'}\n"
            f"🔗 Commit: {deployment.commit or 'Unknown'}\n"
            f"🌿 Branch: {deployment.branch or 'Unknown'}"
        )

    async def send(self, event: NotificationEvent) -> ChannelResult:
        template = self.template_for(event.kind)
        try:
            message_id = await self.client.send_template(
                self.recipient,
                template,
                self.language,
                self.template_parameters(event),
            )
            logger.info(
                "notifications.whatsapp_template_sent",
                template=template,
                message_id=message_id,
            )
            return ChannelResult(channel=self.name, success=True, method="template")
        except Exception as template_error:
            logger.warning(
                "notifications.whatsapp_template_failed",
                template=template,
                error=str(template_error),
            )

        try:
            message_id = await self.client.send_text(
                self.recipient, self.fallback_text(event)
            )
        except Exception as e:
            logger.error("notifications.whatsapp_failed", error=str(e))
            return ChannelResult(
                channel=self.name, success=False, method="fallback", error=str(e)
            )

        logger.info("notifications.whatsapp_fallback_sent", message_id=message_id)
        return ChannelResult(channel=self.name, success=True, method="fallback")
