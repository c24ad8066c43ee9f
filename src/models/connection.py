"""Connection models - a workspace's registered WhatsApp channel."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ConnectionStatus(str, Enum):
    """Lifecycle status of a connection."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    DELETED = "deleted"


class Connection(BaseModel):
    """A workspace's messaging channel bound to a provider instance."""

    id: str = Field(..., description="Unique connection identifier")
    workspace_id: str = Field(..., description="Workspace that owns this connection")
    instance_name: str = Field(..., description="Human-readable provider instance name")

    status: ConnectionStatus = ConnectionStatus.CONNECTING
    provider_id: str | None = None
    phone_number: str | None = None

    # Opaque provider data (Z-API instanceId/token, Evolution hash, ...)
    metadata: dict[str, Any] = Field(default_factory=dict)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    last_activity_at: datetime | None = None

    @property
    def instance_id(self) -> str | None:
        """Provider-assigned instance id, when the provider issued one."""
        value = self.metadata.get("instanceId") or self.metadata.get("id") or self.metadata.get("instance_id")
        return str(value) if value else None

    @property
    def instance_token(self) -> str | None:
        """Provider-assigned instance token."""
        return (
            self.metadata.get("token")
            or self.metadata.get("instanceToken")
            or self.metadata.get("instance_token")
        )

    def matches_instance(self, identifier: str) -> bool:
        """Check whether a webhook instance identifier refers to this connection."""
        return identifier == self.instance_name or (
            self.instance_id is not None and identifier == self.instance_id
        )


class WebhookSettings(BaseModel):
    """Downstream automation endpoint configured for a workspace."""

    workspace_id: str
    webhook_url: str
    webhook_secret: str | None = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)
