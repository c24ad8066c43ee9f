"""In-memory storage backend for development and testing."""

import asyncio
from datetime import datetime

from src.core.exceptions import ProviderConfigNotFound
from src.models import (
    Connection,
    ConnectionStatus,
    Message,
    ProviderActionLog,
    ProviderConfig,
    ProviderName,
    WebhookSettings,
)
from src.storage.base import StorageBackend


class InMemoryStorage(StorageBackend):
    """In-memory storage implementation for development."""

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._provider_configs: dict[str, ProviderConfig] = {}
        self._webhook_settings: dict[str, WebhookSettings] = {}
        self._messages: dict[str, Message] = {}
        self._provider_logs: list[ProviderActionLog] = []
        self._lock = asyncio.Lock()

    # ==================== Connection Operations ====================

    async def get_connection(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    async def find_connection_by_instance(self, identifier: str) -> Connection | None:
        for conn in self._connections.values():
            if conn.status != ConnectionStatus.DELETED and conn.matches_instance(identifier):
                return conn
        return None

    async def save_connection(self, connection: Connection) -> Connection:
        connection.updated_at = datetime.utcnow()
        self._connections[connection.id] = connection
        return connection

    async def list_connections(
        self,
        workspace_id: str,
        provider_id: str | None = None,
    ) -> list[Connection]:
        conns = [c for c in self._connections.values() if c.workspace_id == workspace_id]
        if provider_id:
            conns = [c for c in conns if c.provider_id == provider_id]
        conns.sort(key=lambda x: x.created_at)
        return conns

    # ==================== Provider Config Operations ====================

    async def get_provider_config(self, provider_id: str) -> ProviderConfig | None:
        return self._provider_configs.get(provider_id)

    async def get_active_provider_config(self, workspace_id: str) -> ProviderConfig | None:
        for config in self._provider_configs.values():
            if config.workspace_id == workspace_id and config.is_active:
                return config
        return None

    async def get_alternate_provider_config(
        self,
        workspace_id: str,
        exclude: ProviderName,
    ) -> ProviderConfig | None:
        for config in await self.list_provider_configs(workspace_id):
            if config.provider != exclude and config.has_credentials:
                return config
        return None

    async def list_provider_configs(self, workspace_id: str) -> list[ProviderConfig]:
        configs = [c for c in self._provider_configs.values() if c.workspace_id == workspace_id]
        configs.sort(key=lambda x: x.created_at, reverse=True)
        configs.sort(key=lambda x: x.is_active, reverse=True)
        return configs

    async def save_provider_config(self, config: ProviderConfig) -> ProviderConfig:
        config.updated_at = datetime.utcnow()
        self._provider_configs[config.id] = config
        return config

    async def delete_provider_config(self, provider_id: str) -> bool:
        if provider_id in self._provider_configs:
            del self._provider_configs[provider_id]
            return True
        return False

    async def activate_provider_config(
        self,
        workspace_id: str,
        provider_id: str,
    ) -> ProviderConfig:
        async with self._lock:
            target = self._provider_configs.get(provider_id)
            if not target or target.workspace_id != workspace_id:
                raise ProviderConfigNotFound(provider_id)

            now = datetime.utcnow()
            for config in self._provider_configs.values():
                if config.workspace_id != workspace_id:
                    continue
                is_target = config.id == provider_id
                if config.is_active != is_target:
                    config.is_active = is_target
                    config.updated_at = now
            return target

    # ==================== Webhook Settings ====================

    async def get_webhook_settings(self, workspace_id: str) -> WebhookSettings | None:
        return self._webhook_settings.get(workspace_id)

    async def save_webhook_settings(self, webhook_settings: WebhookSettings) -> WebhookSettings:
        webhook_settings.updated_at = datetime.utcnow()
        self._webhook_settings[webhook_settings.workspace_id] = webhook_settings
        return webhook_settings

    # ==================== Message Operations ====================

    async def get_message(self, message_id: str) -> Message | None:
        return self._messages.get(message_id)

    async def save_message(self, message: Message) -> Message:
        message.updated_at = datetime.utcnow()
        self._messages[message.id] = message
        return message

    async def get_message_by_external_id(
        self,
        workspace_id: str,
        external_id: str,
    ) -> Message | None:
        return self._newest_message(
            m for m in self._messages.values()
            if m.workspace_id == workspace_id and m.external_id == external_id
        )

    async def get_message_by_provider_id(
        self,
        workspace_id: str,
        provider_msg_id: str,
    ) -> Message | None:
        return self._newest_message(
            m for m in self._messages.values()
            if m.workspace_id == workspace_id and m.provider_msg_id == provider_msg_id
        )

    @staticmethod
    def _newest_message(messages) -> Message | None:
        return max(messages, key=lambda m: m.created_at, default=None)

    # ==================== Provider Logs ====================

    async def log_provider_action(self, log: ProviderActionLog) -> None:
        self._provider_logs.append(log)

    # ==================== Health Check ====================

    async def health_check(self) -> bool:
        return True

    # ==================== Development Helpers ====================

    @property
    def provider_logs(self) -> list[ProviderActionLog]:
        """Recorded provider calls (for testing)."""
        return list(self._provider_logs)

    async def clear_all(self) -> None:
        """Clear all data (for testing)."""
        self._connections.clear()
        self._provider_configs.clear()
        self._webhook_settings.clear()
        self._messages.clear()
        self._provider_logs.clear()

    async def seed_demo_workspace(self) -> Connection:
        """Create a demo workspace with an Evolution provider and one connection."""
        provider = await self.save_provider_config(
            ProviderConfig(
                id="demo-evolution",
                workspace_id="demo",
                provider=ProviderName.EVOLUTION,
                is_active=True,
                base_url="http://localhost:8080",
                token="demo-token",
            )
        )
        return await self.save_connection(
            Connection(
                id="demo-connection",
                workspace_id="demo",
                instance_name="demo",
                status=ConnectionStatus.CONNECTED,
                provider_id=provider.id,
            )
        )
