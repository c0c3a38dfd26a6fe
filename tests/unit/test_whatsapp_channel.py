# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the WhatsApp gateway channel."""

import json

import httpx
import pytest

from src.infrastructure.notifications import (
    ChannelType,
    DeliveryError,
    DeliveryStatus,
    ErrorKind,
    WhatsAppChannel,
)
from src.infrastructure.notifications.channels import kind_for_status

API_URL = "http://gateway.test/"
PHONE = "+584241234567"


def make_channel(handler, token: str = "secret") -> WhatsAppChannel:
    return WhatsAppChannel(API_URL, api_token=token, transport=httpx.MockTransport(handler))


class TestDeliver:
    """Tests for deliver and send."""

    @pytest.mark.asyncio
    async def test_success(self) -> None:
        """Test the request shape and a successful response."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"success": True, "messageId": "wamid-1"})

        result = await make_channel(handler).deliver(PHONE, "Hola")

        assert result.status == DeliveryStatus.SENT
        assert result.channel == ChannelType.WHATSAPP
        assert result.message_id == "wamid-1"
        assert result.metadata == {"to": "584241234567"}

        request = requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://gateway.test/send-message"
        assert request.headers["Authorization"] == "Bearer secret"
        assert json.loads(request.content) == {"number": "584241234567", "message": "Hola"}

    @pytest.mark.asyncio
    async def test_no_token_no_authorization(self) -> None:
        """Test an empty token sends no Authorization header."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"success": True})

        assert await make_channel(handler, token="").send(PHONE, "Hola") is True
        assert "Authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_unauthorized(self) -> None:
        """Test a 401 is an authentication failure."""
        channel = make_channel(lambda request: httpx.Response(401, json={"error": "invalid token"}))

        result = await channel.deliver(PHONE, "Hola")

        assert result.status == DeliveryStatus.FAILED
        assert result.error_kind == ErrorKind.AUTH_ERROR
        assert result.error_message == "invalid token"
        assert result.metadata == {"status_code": 401}

    @pytest.mark.asyncio
    async def test_unavailable_is_retryable(self) -> None:
        """Test a 503 raises a retryable delivery error from send."""
        channel = make_channel(lambda request: httpx.Response(503, text="WhatsApp not ready"))

        with pytest.raises(DeliveryError) as excinfo:
            await channel.send(PHONE, "Hola")

        assert excinfo.value.kind == ErrorKind.SERVICE_UNAVAILABLE
        assert excinfo.value.retryable is True
        assert excinfo.value.message == "WhatsApp not ready"

    @pytest.mark.asyncio
    async def test_refused_recipient(self) -> None:
        """Test a 200 answer with success false is a rejection."""
        channel = make_channel(
            lambda request: httpx.Response(200, json={"success": False, "error": "not on WhatsApp"})
        )

        result = await channel.deliver(PHONE, "Hola")

        assert result.error_kind == ErrorKind.REJECTED
        assert result.error_message == "not on WhatsApp"

    @pytest.mark.asyncio
    async def test_network_failure(self) -> None:
        """Test connection errors are classified, not raised."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await make_channel(handler).deliver(PHONE, "Hola")

        assert result.status == DeliveryStatus.FAILED
        assert result.error_kind == ErrorKind.NETWORK_ERROR
        assert result.error_message == "connection refused"

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        """Test read timeouts are classified as timeouts."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        result = await make_channel(handler).deliver(PHONE, "Hola")

        assert result.error_kind == ErrorKind.TIMEOUT

    def test_result_to_dict(self) -> None:
        """Test results serialize enum values."""
        result = make_channel(lambda request: httpx.Response(200)).create_failure_result(
            "boom", ErrorKind.SERVER_ERROR
        )

        data = result.to_dict()

        assert data["channel"] == "whatsapp"
        assert data["status"] == "failed"
        assert data["error_kind"] == "SERVER_ERROR"


class TestCheckStatus:
    """Tests for check_status."""

    @pytest.mark.asyncio
    async def test_status_document(self) -> None:
        """Test the gateway document is returned as is."""
        channel = make_channel(
            lambda request: httpx.Response(200, json={"status": "ready", "phone": "584120000000"})
        )

        assert await channel.check_status() == {"status": "ready", "phone": "584120000000"}

    @pytest.mark.asyncio
    async def test_status_error(self) -> None:
        """Test a non-200 answer is reported as an error."""
        channel = make_channel(lambda request: httpx.Response(500, json={"error": "session lost"}))

        assert await channel.check_status() == {"status": "error", "error": "session lost"}

    @pytest.mark.asyncio
    async def test_unreachable(self) -> None:
        """Test a network failure is reported as unreachable."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        status = await make_channel(handler).check_status()

        assert status["status"] == "unreachable"


@pytest.mark.parametrize(
    "status_code,kind",
    [
        (400, ErrorKind.VALIDATION_ERROR),
        (401, ErrorKind.AUTH_ERROR),
        (403, ErrorKind.AUTH_ERROR),
        (408, ErrorKind.TIMEOUT),
        (429, ErrorKind.RATE_LIMITED),
        (500, ErrorKind.SERVER_ERROR),
        (502, ErrorKind.TEMPORARY_UNAVAILABLE),
        (503, ErrorKind.SERVICE_UNAVAILABLE),
        (504, ErrorKind.TEMPORARY_UNAVAILABLE),
        (302, ErrorKind.UNKNOWN),
    ],
)
def test_kind_for_status(status_code: int, kind: ErrorKind) -> None:
    """Test gateway status codes map to error kinds."""
    assert kind_for_status(status_code) == kind
