"""Outbound message delivery interface."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass
class DeliveryReceipt:
    """Value object returned by a sender after accepting a message."""

    channel: str
    reference: str | None = None


class MessageSender(Protocol):
    """Delivers a text message to a phone number.

    Implementations raise ``DeliveryError`` when the provider rejects
    the message or cannot be reached.
    """

    @property
    def configured(self) -> bool: ...

    async def send(self, identity: str, text: str) -> DeliveryReceipt: ...


class OfflineSender:
    """Sender used when no SMS provider is configured.

    Nothing leaves the process; the intended message is written to the
    log so developers can complete the flow locally.
    """

    configured = False

    async def send(self, identity: str, text: str) -> DeliveryReceipt:
        logger.warning("[OFFLINE] SMS not sent to %s: %s", identity, text)
        return DeliveryReceipt(channel="offline")
