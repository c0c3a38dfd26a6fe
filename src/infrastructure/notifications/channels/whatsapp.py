# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""WhatsApp channel using the academy's messaging gateway.

The gateway exposes a small HTTP API in front of a WhatsApp Web session:
- POST /send-message  {"number": ..., "message": ...}
- GET  /status

HTTP and network failures are mapped to ErrorKinds so that transient
problems (timeouts, 429, 502-504) are retried and permanent ones
(401/403, 400) are not.

Configuration (via environment variables):
- WHATSAPP_API_URL: Gateway base URL
- WHATSAPP_API_TOKEN: Bearer token
- WHATSAPP_TIMEOUT: Request timeout in seconds
"""

from typing import Any

import httpx

from src.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
)
from src.infrastructure.notifications.errors import ErrorKind, classify_exception

SEND_PATH = "/send-message"
STATUS_PATH = "/status"


def kind_for_status(status_code: int) -> ErrorKind:
    """Map a gateway HTTP status code to an ErrorKind."""
    if status_code in (401, 403):
        return ErrorKind.AUTH_ERROR
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code == 503:
        return ErrorKind.SERVICE_UNAVAILABLE
    if status_code in (502, 504):
        return ErrorKind.TEMPORARY_UNAVAILABLE
    if status_code == 408:
        return ErrorKind.TIMEOUT
    if status_code in (400, 404, 422):
        return ErrorKind.VALIDATION_ERROR
    if status_code >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.UNKNOWN


class WhatsAppChannel(BaseChannel):
    """WhatsApp delivery through the messaging gateway.

    Example:
        >>> channel = WhatsAppChannel("http://localhost:3002", api_token="secret")
        >>> await channel.send("+584241234567", "Hola")
        True
    """

    def __init__(
        self,
        api_url: str,
        api_token: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the channel.

        Args:
            api_url: Gateway base URL.
            api_token: Bearer token; no Authorization header when empty.
            timeout: Request timeout in seconds.
            transport: Custom httpx transport (tests use httpx.MockTransport).
        """
        super().__init__()
        self.api_url = api_url.rstrip("/")
        self._api_token = api_token
        self.timeout = timeout
        self._transport = transport

    @property
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        return ChannelType.WHATSAPP

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    @staticmethod
    def gateway_number(phone: str) -> str:
        """Gateway expects digits only, country code first."""
        return "".join(ch for ch in phone if ch.isdigit())

    async def deliver(self, phone: str, text: str) -> ChannelResult:
        """Send a message through the gateway.

        Args:
            phone: Normalized destination phone (+58...).
            text: Message body.

        Returns:
            ChannelResult; failures carry a classified error_kind.
        """
        payload = {"number": self.gateway_number(phone), "message": text}

        try:
            async with self._client() as client:
                response = await client.post(SEND_PATH, headers=self._headers(), json=payload)
        except httpx.HTTPError as e:
            kind = classify_exception(e)
            self.logger.warning("Gateway request failed for %s: %s", phone, e)
            return self.create_failure_result(str(e) or e.__class__.__name__, kind)

        body = self._json(response)

        if response.status_code == 200 and body.get("success", True):
            self.logger.debug("Message sent to %s", phone)
            return self.create_success_result(
                message_id=body.get("messageId"),
                metadata={"to": body.get("to", payload["number"])},
            )

        error = body.get("error") or body.get("message") or response.text or "Gateway error"
        kind = kind_for_status(response.status_code)
        if response.status_code == 200:
            # Gateway answered but refused this recipient
            kind = ErrorKind.REJECTED

        self.logger.warning(
            "Gateway refused message to %s (%d): %s",
            phone,
            response.status_code,
            error,
        )
        return self.create_failure_result(
            error,
            kind,
            metadata={"status_code": response.status_code},
        )

    async def check_status(self) -> dict[str, Any]:
        """Query the gateway session status.

        Returns:
            Gateway status document, or {"status": "unreachable", "error": ...}.
        """
        try:
            async with self._client() as client:
                response = await client.get(STATUS_PATH, headers=self._headers())
        except httpx.HTTPError as e:
            return {"status": "unreachable", "error": str(e)}

        body = self._json(response)
        if response.status_code != 200:
            return {"status": "error", "error": body.get("error") or response.text}
        return body

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
