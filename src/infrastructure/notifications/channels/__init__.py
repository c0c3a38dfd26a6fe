# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Message transports.

Available channels:
- WhatsAppChannel: Delivery through the academy's WhatsApp gateway
"""

from src.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    DeliveryStatus,
    MessageTransport,
)
from src.infrastructure.notifications.channels.whatsapp import WhatsAppChannel, kind_for_status

__all__ = [
    "BaseChannel",
    "ChannelResult",
    "ChannelType",
    "DeliveryStatus",
    "MessageTransport",
    "WhatsAppChannel",
    "kind_for_status",
]
