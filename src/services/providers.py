"""Provider configuration management for workspaces."""

import uuid
from typing import Any

import httpx
import structlog

from src.core.exceptions import ProviderConfigNotFound, ProviderInUse
from src.models import ConnectionStatus, ProviderConfig, ProviderName, WebhookSettings
from src.services.channels import ProviderCheck, get_provider_adapter
from src.storage.base import StorageBackend

logger = structlog.get_logger()


def normalize_webhook_url(url: str) -> str:
    """n8n test URLs only work while the editor listens; use the production path."""
    trimmed = url.strip()
    return trimmed.replace("/test/", "/webhook/") if "/test/" in trimmed else trimmed


class ProviderConfigService:
    """CRUD and activation for a workspace's provider configs."""

    def __init__(self, storage: StorageBackend, http_client: httpx.AsyncClient) -> None:
        self.storage = storage
        self.http = http_client

    async def list_configs(self, workspace_id: str) -> list[ProviderConfig]:
        return await self.storage.list_provider_configs(workspace_id)

    async def get(self, workspace_id: str, provider_id: str) -> ProviderConfig:
        config = await self.storage.get_provider_config(provider_id)
        if not config or config.workspace_id != workspace_id:
            raise ProviderConfigNotFound(provider_id)
        return config

    async def create(
        self,
        workspace_id: str,
        provider: ProviderName,
        data: dict[str, Any],
    ) -> ProviderConfig:
        """Create a provider config, activating it when ``is_active`` is set."""
        is_active = bool(data.pop("is_active", False))
        config = ProviderConfig(
            id=str(uuid.uuid4()),
            workspace_id=workspace_id,
            provider=provider,
            **data,
        )
        await self.storage.save_provider_config(config)
        logger.info("Provider config created", workspace_id=workspace_id, provider=provider.value)

        if is_active:
            config = await self.storage.activate_provider_config(workspace_id, config.id)
        await self._sync_webhook(config)
        return config

    async def update(
        self,
        workspace_id: str,
        provider_id: str,
        data: dict[str, Any],
    ) -> ProviderConfig:
        """Apply a partial update.

        ``is_active=True`` goes through the transactional activation;
        ``is_active=False`` simply deactivates this config.
        """
        config = await self.get(workspace_id, provider_id)
        is_active = data.pop("is_active", None)

        for field_name, value in data.items():
            setattr(config, field_name, value)
        if is_active is False:
            config.is_active = False
        await self.storage.save_provider_config(config)

        if is_active:
            config = await self.storage.activate_provider_config(workspace_id, provider_id)

        logger.info("Provider config updated", provider_id=provider_id, fields=sorted(data))
        await self._sync_webhook(config)
        return config

    async def delete(self, workspace_id: str, provider_id: str) -> None:
        """Delete a config that no connection is bound to.

        Raises:
            ProviderInUse: When connections still reference the config
        """
        await self.get(workspace_id, provider_id)

        bound = [
            c for c in await self.storage.list_connections(workspace_id, provider_id=provider_id)
            if c.status != ConnectionStatus.DELETED
        ]
        if bound:
            raise ProviderInUse(provider_id)

        await self.storage.delete_provider_config(provider_id)
        logger.info("Provider config deleted", provider_id=provider_id)

    async def activate(self, workspace_id: str, provider_id: str) -> ProviderConfig:
        """Make ``provider_id`` the only active config of the workspace."""
        config = await self.storage.activate_provider_config(workspace_id, provider_id)
        logger.info("Provider activated", workspace_id=workspace_id, provider=config.provider.value)
        await self._sync_webhook(config)
        return config

    async def test(self, workspace_id: str, provider_id: str) -> ProviderCheck:
        """Check the config's credentials against the provider."""
        config = await self.get(workspace_id, provider_id)
        adapter = get_provider_adapter(config, self.http)
        result = await adapter.test_connection()
        logger.info("Provider connection tested", provider_id=provider_id, ok=result.ok)
        return result

    async def _sync_webhook(self, config: ProviderConfig) -> None:
        """Mirror a provider's forward URL into the workspace webhook settings."""
        if not config.forward_url:
            return

        existing = await self.storage.get_webhook_settings(config.workspace_id)
        await self.storage.save_webhook_settings(
            WebhookSettings(
                workspace_id=config.workspace_id,
                webhook_url=normalize_webhook_url(config.forward_url),
                webhook_secret=(existing.webhook_secret if existing else None) or str(uuid.uuid4()),
            )
        )
        logger.info("Workspace webhook synced", workspace_id=config.workspace_id)
