"""Provider configuration models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ProviderName(str, Enum):
    """Supported WhatsApp provider families."""

    EVOLUTION = "evolution"
    ZAPI = "zapi"


class ProviderConfig(BaseModel):
    """Per-workspace provider selection and credentials.

    At most one config is active per workspace. Activation goes through
    ``StorageBackend.activate_provider_config`` so the switch is atomic.
    """

    id: str = Field(..., description="Unique provider config identifier")
    workspace_id: str = Field(..., description="Workspace this config belongs to")
    provider: ProviderName

    is_active: bool = False
    enable_fallback: bool = False

    # Credentials
    base_url: str | None = None
    token: str | None = None
    client_token: str | None = None

    # Provider-level downstream webhook (n8n)
    forward_url: str | None = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def has_credentials(self) -> bool:
        """Check whether the config carries what its provider needs to send."""
        if self.provider == ProviderName.EVOLUTION:
            return bool(self.base_url and self.token)
        return bool(self.token)


class ProviderActionLog(BaseModel):
    """Audit record for a single provider call."""

    workspace_id: str
    provider: ProviderName
    action: str
    result: str  # success, error
    response_time_ms: int | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)
