"""Connection registry and status reconciliation."""

import uuid
from typing import Any

import httpx
import structlog

from src.core.exceptions import ConnectionNotFound, ProviderConfigNotFound
from src.models import Connection, ConnectionStatus
from src.services.channels import get_provider_adapter
from src.storage.base import StorageBackend

logger = structlog.get_logger()


class ConnectionService:
    """Register, list and reconcile a workspace's connections."""

    def __init__(self, storage: StorageBackend, http_client: httpx.AsyncClient) -> None:
        self.storage = storage
        self.http = http_client

    async def register(
        self,
        workspace_id: str,
        instance_name: str,
        provider_id: str | None = None,
        phone_number: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Connection:
        """Register a connection, bound to the given or the active provider."""
        if provider_id:
            config = await self.storage.get_provider_config(provider_id)
            if not config or config.workspace_id != workspace_id:
                raise ProviderConfigNotFound(provider_id)
        else:
            active = await self.storage.get_active_provider_config(workspace_id)
            provider_id = active.id if active else None

        connection = Connection(
            id=str(uuid.uuid4()),
            workspace_id=workspace_id,
            instance_name=instance_name,
            provider_id=provider_id,
            phone_number=phone_number,
            metadata=metadata or {},
        )
        await self.storage.save_connection(connection)
        logger.info(
            "Connection registered",
            connection_id=connection.id,
            workspace_id=workspace_id,
            instance_name=instance_name,
        )
        return connection

    async def list_connections(self, workspace_id: str, include_deleted: bool = False) -> list[Connection]:
        connections = await self.storage.list_connections(workspace_id)
        if include_deleted:
            return connections
        return [c for c in connections if c.status != ConnectionStatus.DELETED]

    async def get(self, workspace_id: str, connection_id: str) -> Connection:
        connection = await self.storage.get_connection(connection_id)
        if not connection or connection.workspace_id != workspace_id:
            raise ConnectionNotFound(connection_id)
        return connection

    async def delete(self, workspace_id: str, connection_id: str) -> Connection:
        """Mark a connection deleted; it no longer resolves webhooks."""
        connection = await self.get(workspace_id, connection_id)
        connection.status = ConnectionStatus.DELETED
        await self.storage.save_connection(connection)
        logger.info("Connection deleted", connection_id=connection_id)
        return connection

    async def sync_status(self, workspace_id: str, connection_id: str) -> Connection:
        """Reconcile the stored status with the provider's view of the instance."""
        connection = await self.get(workspace_id, connection_id)
        if not connection.provider_id:
            logger.warning("Connection has no provider bound", connection_id=connection_id)
            return connection

        config = await self.storage.get_provider_config(connection.provider_id)
        if not config:
            raise ProviderConfigNotFound(connection.provider_id)

        adapter = get_provider_adapter(config, self.http)
        try:
            status = await adapter.fetch_connection_state(connection)
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Connection status check failed", connection_id=connection_id, error=str(e))
            return connection

        if status != connection.status:
            logger.info(
                "Connection status changed",
                connection_id=connection_id,
                old=connection.status.value,
                new=status.value,
            )
            connection.status = status
        await self.storage.save_connection(connection)
        return connection
