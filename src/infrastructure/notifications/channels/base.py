# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base classes for message transports.

A transport delivers one text message to one phone. The notification
core only depends on the MessageTransport protocol:

    async def send(phone: str, text: str) -> bool

A transport returns True when the message was accepted. Failures are
raised as DeliveryError with a classified ErrorKind so the retry
manager can decide whether another attempt is worthwhile.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from src.infrastructure.notifications.errors import DeliveryError, ErrorKind
from src.utils.datetime import utc_now


class ChannelType(str, Enum):
    """Available transport types."""

    WHATSAPP = "whatsapp"


class DeliveryStatus(str, Enum):
    """Delivery status for a channel."""

    SENT = "sent"
    FAILED = "failed"


@runtime_checkable
class MessageTransport(Protocol):
    """Anything that can deliver a text message to a phone."""

    async def send(self, phone: str, text: str) -> bool:
        ...


@dataclass
class ChannelResult:
    """Result of a channel send operation.

    Attributes:
        channel: Which channel was used.
        status: Delivery status.
        message_id: External message ID (if available).
        error_message: Error message if failed.
        error_kind: Classified failure kind if failed.
        sent_at: When the attempt finished.
        metadata: Additional result metadata.
    """

    channel: ChannelType
    status: DeliveryStatus
    message_id: str | None = None
    error_message: str | None = None
    error_kind: ErrorKind | None = None
    sent_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "channel": self.channel.value,
            "status": self.status.value,
            "message_id": self.message_id,
            "error_message": self.error_message,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "metadata": self.metadata,
        }


class BaseChannel(ABC):
    """Abstract base class for message channels.

    Subclasses implement deliver(), which reports failures as results.
    send() adapts deliver() to the MessageTransport protocol by raising
    DeliveryError for failed results.

    Attributes:
        channel_type: The type of this channel.
    """

    def __init__(self) -> None:
        """Initialize the channel."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    @abstractmethod
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        ...

    @abstractmethod
    async def deliver(self, phone: str, text: str) -> ChannelResult:
        """Deliver a message through this channel.

        Args:
            phone: Normalized destination phone.
            text: Message body.

        Returns:
            ChannelResult with delivery status.
        """
        ...

    async def send(self, phone: str, text: str) -> bool:
        """Deliver a message, raising on failure.

        Raises:
            DeliveryError: If the channel could not deliver the message.
        """
        result = await self.deliver(phone, text)
        if result.status == DeliveryStatus.SENT:
            return True
        raise DeliveryError(
            result.error_kind or ErrorKind.UNKNOWN,
            result.error_message or "Delivery failed",
        )

    def create_success_result(
        self,
        message_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ChannelResult:
        """Create a successful channel result."""
        return ChannelResult(
            channel=self.channel_type,
            status=DeliveryStatus.SENT,
            message_id=message_id,
            sent_at=utc_now(),
            metadata=metadata or {},
        )

    def create_failure_result(
        self,
        error_message: str,
        error_kind: ErrorKind = ErrorKind.UNKNOWN,
        metadata: dict[str, Any] | None = None,
    ) -> ChannelResult:
        """Create a failed channel result.

        Args:
            error_message: Error description.
            error_kind: Classified failure kind.
            metadata: Additional metadata.

        Returns:
            ChannelResult with FAILED status.
        """
        return ChannelResult(
            channel=self.channel_type,
            status=DeliveryStatus.FAILED,
            error_message=error_message,
            error_kind=error_kind,
            sent_at=utc_now(),
            metadata=metadata or {},
        )
