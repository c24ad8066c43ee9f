"""Message models: stored records, inbound events and outbound requests."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.models.provider import ProviderName


class MessageStatus(str, Enum):
    """Canonical delivery status of a message."""

    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class MediaType(str, Enum):
    """Kind of media attachment."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"


class MessageOrigin(str, Enum):
    """Who produced an outbound message."""

    MANUAL = "manual"  # Sent by a human agent
    AUTOMATIC = "automatic"  # Sent by an AI agent or automation


class Message(BaseModel):
    """Message record as stored by the platform."""

    id: str = Field(..., description="Unique message identifier")
    workspace_id: str = Field(..., description="Workspace ID")
    conversation_id: str | None = None

    content: str = ""
    message_type: str = "text"
    sender_type: str = "agent"  # contact, agent, system
    origin: MessageOrigin = MessageOrigin.MANUAL

    # Correlation ids
    external_id: str | None = None  # Caller-supplied idempotency id
    provider_msg_id: str | None = None  # Id assigned by the provider on send

    # Status
    status: str = MessageStatus.SENDING.value
    delivered_at: datetime | None = None
    read_at: datetime | None = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    metadata: dict[str, Any] = Field(default_factory=dict)


# ==================== Inbound ====================


class InboundEventKind(str, Enum):
    """Canonical kind of an inbound provider event."""

    MESSAGE = "message"
    STATUS = "status"
    MEDIA = "media"
    CONNECTION = "connection"


class MediaDescriptor(BaseModel):
    """Media attached to an inbound event."""

    media_type: MediaType
    url: str | None = None
    mime_type: str = "application/octet-stream"
    file_name: str | None = None
    content: bytes | None = None  # Filled once downloaded or decoded


class InboundEvent(BaseModel):
    """Provider webhook normalized into one shape."""

    kind: InboundEventKind
    provider: ProviderName
    instance: str = Field(..., description="Instance identifier as sent by the provider")
    event_type: str = "UNKNOWN"

    external_id: str | None = None
    status: str | None = None  # Normalized status
    raw_status: Any = None

    contact_phone: str | None = None
    from_me: bool = False
    from_api: bool = False

    media: MediaDescriptor | None = None

    # Connection lifecycle events
    connection_state: str | None = None
    connection_phone: str | None = None

    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_status(self) -> bool:
        return self.kind == InboundEventKind.STATUS


# ==================== Outbound ====================


class SendContext(BaseModel):
    """Identifies which connection/instance to send through."""

    model_config = ConfigDict(extra="allow")

    instance: str | None = None


class OutboundSendRequest(BaseModel):
    """Canonical send intent."""

    model_config = ConfigDict(populate_by_name=True)

    workspace_id: str = Field(..., alias="workspaceId")
    to: str = Field(..., min_length=1)

    text: str | None = None
    media_url: str | None = Field(default=None, alias="mediaUrl")
    media_type: MediaType | None = Field(default=None, alias="mediaType")
    caption: str | None = None
    file_name: str | None = Field(default=None, alias="fileName")
    mime_type: str | None = Field(default=None, alias="mimeType")

    context: SendContext = Field(default_factory=SendContext)

    # Correlation with the stored message record
    message_id: str | None = Field(default=None, alias="messageId")
    external_id: str | None = Field(default=None, alias="externalId")

    @model_validator(mode="after")
    def _require_content(self) -> "OutboundSendRequest":
        if not self.text and not self.media_url:
            raise ValueError("Either text or mediaUrl is required")
        if self.media_url and self.media_type is None:
            raise ValueError("mediaType is required when mediaUrl is set")
        return self

    @property
    def is_media(self) -> bool:
        return bool(self.media_url)


class SendResult(BaseModel):
    """Outcome of a dispatch attempt."""

    model_config = ConfigDict(populate_by_name=True)

    ok: bool
    provider_msg_id: str | None = Field(default=None, alias="providerMsgId")
    error: str | None = None
    failover_from: ProviderName | None = Field(default=None, alias="failoverFrom")
    provider: ProviderName | None = None
