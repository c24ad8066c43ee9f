"""Data models for the application."""

from src.models.connection import Connection, ConnectionStatus, WebhookSettings
from src.models.message import (
    InboundEvent,
    InboundEventKind,
    MediaDescriptor,
    MediaType,
    Message,
    MessageOrigin,
    MessageStatus,
    OutboundSendRequest,
    SendContext,
    SendResult,
)
from src.models.provider import ProviderActionLog, ProviderConfig, ProviderName

__all__ = [
    # Connection
    "Connection",
    "ConnectionStatus",
    "WebhookSettings",
    # Provider
    "ProviderActionLog",
    "ProviderConfig",
    "ProviderName",
    # Message
    "InboundEvent",
    "InboundEventKind",
    "MediaDescriptor",
    "MediaType",
    "Message",
    "MessageOrigin",
    "MessageStatus",
    "OutboundSendRequest",
    "SendContext",
    "SendResult",
]
