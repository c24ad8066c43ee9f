"""Admin endpoints for workspace provider, connection and webhook configuration."""

from datetime import datetime
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from src.api.dependencies import ConnectionServiceDep, ProviderServiceDep, StorageDep
from src.models import Connection, ConnectionStatus, ProviderConfig, ProviderName, WebhookSettings
from src.services.providers import normalize_webhook_url

logger = structlog.get_logger()

router = APIRouter(prefix="/admin/workspaces/{workspace_id}", tags=["Admin"])


# ==================== Pydantic Schemas ====================


class ProviderCreate(BaseModel):
    """Schema for creating a provider config."""

    provider: ProviderName
    is_active: bool = False
    enable_fallback: bool = False
    base_url: str | None = None
    token: str | None = None
    client_token: str | None = None
    forward_url: str | None = None


class ProviderUpdate(BaseModel):
    """Schema for updating a provider config."""

    is_active: bool | None = None
    enable_fallback: bool | None = None
    base_url: str | None = None
    token: str | None = None
    client_token: str | None = None
    forward_url: str | None = None


class ProviderResponse(BaseModel):
    """Response schema for a provider config. Credentials are never echoed."""

    id: str
    workspace_id: str
    provider: ProviderName
    is_active: bool
    enable_fallback: bool
    base_url: str | None
    forward_url: str | None
    has_token: bool
    has_client_token: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_config(cls, config: ProviderConfig) -> "ProviderResponse":
        return cls(
            id=config.id,
            workspace_id=config.workspace_id,
            provider=config.provider,
            is_active=config.is_active,
            enable_fallback=config.enable_fallback,
            base_url=config.base_url,
            forward_url=config.forward_url,
            has_token=bool(config.token),
            has_client_token=bool(config.client_token),
            created_at=config.created_at,
            updated_at=config.updated_at,
        )


class ProviderTestResponse(BaseModel):
    """Result of a provider credentials test."""

    ok: bool
    message: str


class ConnectionCreate(BaseModel):
    """Schema for registering a connection."""

    instance_name: str
    provider_id: str | None = None
    phone_number: str | None = None
    metadata: dict[str, Any] = {}


class ConnectionResponse(BaseModel):
    """Response schema for a connection."""

    id: str
    workspace_id: str
    instance_name: str
    status: ConnectionStatus
    provider_id: str | None
    phone_number: str | None
    last_activity_at: datetime | None
    created_at: datetime


class WebhookSettingsUpdate(BaseModel):
    """Schema for the workspace downstream webhook."""

    webhook_url: str
    webhook_secret: str | None = None


class WebhookSettingsResponse(BaseModel):
    """Response schema for the workspace downstream webhook."""

    workspace_id: str
    webhook_url: str
    has_secret: bool
    updated_at: datetime


def _webhook_response(webhook_settings: WebhookSettings) -> WebhookSettingsResponse:
    return WebhookSettingsResponse(
        workspace_id=webhook_settings.workspace_id,
        webhook_url=webhook_settings.webhook_url,
        has_secret=bool(webhook_settings.webhook_secret),
        updated_at=webhook_settings.updated_at,
    )


# ==================== Provider Endpoints ====================


@router.get("/providers", response_model=list[ProviderResponse])
async def list_providers(
    workspace_id: str,
    service: ProviderServiceDep,
) -> list[ProviderResponse]:
    """List provider configs, active first."""
    return [ProviderResponse.from_config(c) for c in await service.list_configs(workspace_id)]


@router.post("/providers", response_model=ProviderResponse, status_code=status.HTTP_201_CREATED)
async def create_provider(
    workspace_id: str,
    data: ProviderCreate,
    service: ProviderServiceDep,
) -> ProviderResponse:
    """Create a provider config."""
    fields = data.model_dump(exclude={"provider"})
    config = await service.create(workspace_id, data.provider, fields)
    return ProviderResponse.from_config(config)


@router.patch("/providers/{provider_id}", response_model=ProviderResponse)
async def update_provider(
    workspace_id: str,
    provider_id: str,
    data: ProviderUpdate,
    service: ProviderServiceDep,
) -> ProviderResponse:
    """Update a provider config."""
    config = await service.update(workspace_id, provider_id, data.model_dump(exclude_unset=True))
    return ProviderResponse.from_config(config)


@router.delete("/providers/{provider_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_provider(
    workspace_id: str,
    provider_id: str,
    service: ProviderServiceDep,
) -> None:
    """Delete a provider config with no bound connections."""
    await service.delete(workspace_id, provider_id)


@router.post("/providers/{provider_id}/activate", response_model=ProviderResponse)
async def activate_provider(
    workspace_id: str,
    provider_id: str,
    service: ProviderServiceDep,
) -> ProviderResponse:
    """Make a provider config the workspace's only active one."""
    config = await service.activate(workspace_id, provider_id)
    return ProviderResponse.from_config(config)


@router.post("/providers/{provider_id}/test", response_model=ProviderTestResponse)
async def test_provider(
    workspace_id: str,
    provider_id: str,
    service: ProviderServiceDep,
) -> ProviderTestResponse:
    """Check a provider config's credentials against the provider."""
    result = await service.test(workspace_id, provider_id)
    return ProviderTestResponse(ok=result.ok, message=result.message)


# ==================== Connection Endpoints ====================


@router.get("/connections", response_model=list[ConnectionResponse])
async def list_connections(
    workspace_id: str,
    service: ConnectionServiceDep,
    include_deleted: bool = False,
) -> list[Connection]:
    """List the workspace's connections."""
    return await service.list_connections(workspace_id, include_deleted=include_deleted)


@router.post("/connections", response_model=ConnectionResponse, status_code=status.HTTP_201_CREATED)
async def create_connection(
    workspace_id: str,
    data: ConnectionCreate,
    service: ConnectionServiceDep,
) -> Connection:
    """Register a connection for a provider instance."""
    return await service.register(
        workspace_id,
        data.instance_name,
        provider_id=data.provider_id,
        phone_number=data.phone_number,
        metadata=data.metadata,
    )


@router.get("/connections/{connection_id}", response_model=ConnectionResponse)
async def get_connection(
    workspace_id: str,
    connection_id: str,
    service: ConnectionServiceDep,
) -> Connection:
    """Get a connection."""
    return await service.get(workspace_id, connection_id)


@router.delete("/connections/{connection_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_connection(
    workspace_id: str,
    connection_id: str,
    service: ConnectionServiceDep,
) -> None:
    """Mark a connection deleted."""
    await service.delete(workspace_id, connection_id)


@router.post("/connections/{connection_id}/sync", response_model=ConnectionResponse)
async def sync_connection(
    workspace_id: str,
    connection_id: str,
    service: ConnectionServiceDep,
) -> Connection:
    """Reconcile a connection's status with its provider."""
    return await service.sync_status(workspace_id, connection_id)


# ==================== Webhook Settings Endpoints ====================


@router.get("/webhook", response_model=WebhookSettingsResponse)
async def get_webhook_settings(
    workspace_id: str,
    storage: StorageDep,
) -> WebhookSettingsResponse:
    """Get the workspace's downstream webhook."""
    webhook_settings = await storage.get_webhook_settings(workspace_id)
    if not webhook_settings:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No webhook configured for workspace: {workspace_id}",
        )
    return _webhook_response(webhook_settings)


@router.put("/webhook", response_model=WebhookSettingsResponse)
async def put_webhook_settings(
    workspace_id: str,
    data: WebhookSettingsUpdate,
    storage: StorageDep,
) -> WebhookSettingsResponse:
    """Set the workspace's downstream webhook, keeping the existing secret unless replaced."""
    existing = await storage.get_webhook_settings(workspace_id)
    secret = data.webhook_secret or (existing.webhook_secret if existing else None)

    webhook_settings = await storage.save_webhook_settings(
        WebhookSettings(
            workspace_id=workspace_id,
            webhook_url=normalize_webhook_url(data.webhook_url),
            webhook_secret=secret,
        )
    )

    logger.info("Updated workspace webhook", workspace_id=workspace_id)

    return _webhook_response(webhook_settings)
