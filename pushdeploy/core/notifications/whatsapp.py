"""WhatsApp Business (Graph API) client."""

from typing import Any

import httpx

from pushdeploy.core.exceptions import PushDeployError
from pushdeploy.utils.logging import get_logger

logger = get_logger("whatsapp")


class WhatsAppAPIError(PushDeployError):
    """The Graph API rejected a request."""

    def __init__(self, message: str, status_code: int | None = None):
        details = {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(f"WhatsApp API error: {message}", details)
        self.status_code = status_code


def _clean_phone_number(to: str) -> str:
    return to.replace("@c.us", "").replace("+", "").strip()


class WhatsAppClient:
    """Minimal Graph API client for text and template messages."""

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_version: str = "v21.0",
        base_url: str = "https://graph.facebook.com",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not access_token:
            raise ValueError("WhatsApp access token is required")
        if not phone_number_id:
            raise ValueError("WhatsApp phone number id is required")

        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.api_version = api_version
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def build_api_url(self, endpoint: str) -> str:
        return f"{self.base_url}/{self.api_version}/{endpoint}"

    async def _post_message(self, payload: dict[str, Any]) -> str | None:
        """POST to the messages endpoint and return the message id."""
        url = self.build_api_url(f"{self.phone_number_id}/messages")
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {self.access_token}"},
            )

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.status_code >= 400:
            error = data.get("error")
            if isinstance(error, dict):
                message = error.get("message") or "Unknown error"
            else:
                message = str(error or "Unknown error")
            logger.error(
                "whatsapp.request_failed",
                status_code=response.status_code,
                error=message,
            )
            raise WhatsAppAPIError(message, response.status_code)

        messages = data.get("messages")
        if isinstance(messages, list) and messages and isinstance(messages[0], dict):
            return messages[0].get("id")
        return None

    async def send_text(self, to: str, body: str) -> str | None:
        """Send a free-form text message."""
        payload: dict[str, Any] = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": _clean_phone_number(to),
            "type": "text",
            "text": {"body": body},
        }
        if "http://" in body or "https://" in body:
            payload["text"]["preview_url"] = True

        message_id = await self._post_message(payload)
        logger.debug("whatsapp.text_sent", message_id=message_id)
        return message_id

    async def send_template(
        self,
        to: str,
        template_name: str,
        language: str = "es",
        parameters: list[str] | None = None,
    ) -> str | None:
        """Send a pre-approved template message."""
        template: dict[str, Any] = {
            "name": template_name,
            "language": {"code": language},
        }
        if parameters:
            template["components"] = [
                {
                    "type": "body",
                    "parameters": [{"type": "text", "text": p} for p in parameters],
                }
            ]

        message_id = await self._post_message(
            {
                "messaging_product": "whatsapp",
                "recipient_type": "individual",
                "to": _clean_phone_number(to),
                "type": "template",
                "template": template,
            }
        )
        logger.debug(
            "whatsapp.template_sent", template=template_name, message_id=message_id
        )
        return message_id
