"""Client for the WhatsApp Business Cloud API template-message endpoint."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ..core.logging import get_logger

logger = get_logger(__name__)

PROVIDER_NAME = "meta"


@dataclass
class ProviderResponse:
    """HTTP outcome of a provider call; body is ``{}`` when it is not JSON."""
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class WhatsAppClient:
    """Sends template messages through the Graph API.

    A fresh ``httpx.AsyncClient`` is opened per call; pass ``transport`` to
    route requests elsewhere (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str = "https://graph.facebook.com",
        api_version: str = "v20.0",
        timeout: float = 15.0,
        default_language: str = "en_US",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout = timeout
        self.default_language = default_language
        self._transport = transport

    def messages_url(self, phone_number_id: str) -> str:
        return f"{self.base_url}/{self.api_version}/{quote(phone_number_id, safe='')}/messages"

    async def send_template(
        self,
        access_token: str,
        phone_number_id: str,
        to: str,
        template: str,
        language: Optional[str] = None,
    ) -> ProviderResponse:
        """POST a template message. Non-2xx responses are returned, not raised.

        Raises:
            httpx.HTTPError: the request could not be completed
        """
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "template",
            "template": {
                "name": template,
                "language": {"code": (language or "").strip() or self.default_language},
            },
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {access_token}",
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(self.messages_url(phone_number_id), json=payload, headers=headers)

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"data": body}

        logger.debug(f"WhatsApp template '{template}' send returned {response.status_code}")
        return ProviderResponse(status_code=response.status_code, body=body)
