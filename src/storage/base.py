"""Abstract base class for storage backends."""

from abc import ABC, abstractmethod

from src.models import (
    Connection,
    Message,
    ProviderActionLog,
    ProviderConfig,
    ProviderName,
    WebhookSettings,
)


class StorageBackend(ABC):
    """Abstract storage backend interface.

    One instance is constructed per process and injected into the webhook
    normalizer, the dispatch router and the admin services.
    """

    # ==================== Connection Operations ====================

    @abstractmethod
    async def get_connection(self, connection_id: str) -> Connection | None:
        """Get a connection by ID."""
        ...

    @abstractmethod
    async def find_connection_by_instance(self, identifier: str) -> Connection | None:
        """Find a live connection by instance name or provider instance id."""
        ...

    @abstractmethod
    async def save_connection(self, connection: Connection) -> Connection:
        """Save or update a connection."""
        ...

    @abstractmethod
    async def list_connections(
        self,
        workspace_id: str,
        provider_id: str | None = None,
    ) -> list[Connection]:
        """List connections for a workspace, optionally bound to a provider."""
        ...

    # ==================== Provider Config Operations ====================

    @abstractmethod
    async def get_provider_config(self, provider_id: str) -> ProviderConfig | None:
        """Get a provider config by ID."""
        ...

    @abstractmethod
    async def get_active_provider_config(self, workspace_id: str) -> ProviderConfig | None:
        """Get the workspace's active provider config."""
        ...

    @abstractmethod
    async def get_alternate_provider_config(
        self,
        workspace_id: str,
        exclude: ProviderName,
    ) -> ProviderConfig | None:
        """Get a workspace config with credentials for a provider family other than ``exclude``."""
        ...

    @abstractmethod
    async def list_provider_configs(self, workspace_id: str) -> list[ProviderConfig]:
        """List provider configs, active first, newest first."""
        ...

    @abstractmethod
    async def save_provider_config(self, config: ProviderConfig) -> ProviderConfig:
        """Save or update a provider config without touching other configs."""
        ...

    @abstractmethod
    async def delete_provider_config(self, provider_id: str) -> bool:
        """Delete a provider config."""
        ...

    @abstractmethod
    async def activate_provider_config(
        self,
        workspace_id: str,
        provider_id: str,
    ) -> ProviderConfig:
        """Atomically make ``provider_id`` the only active config of the workspace.

        Raises:
            ProviderConfigNotFound: if the config does not exist in the workspace
        """
        ...

    # ==================== Webhook Settings ====================

    @abstractmethod
    async def get_webhook_settings(self, workspace_id: str) -> WebhookSettings | None:
        """Get the workspace's downstream webhook settings."""
        ...

    @abstractmethod
    async def save_webhook_settings(self, webhook_settings: WebhookSettings) -> WebhookSettings:
        """Save the workspace's downstream webhook settings."""
        ...

    # ==================== Message Operations ====================

    @abstractmethod
    async def get_message(self, message_id: str) -> Message | None:
        """Get a message by ID."""
        ...

    @abstractmethod
    async def save_message(self, message: Message) -> Message:
        """Save a message."""
        ...

    @abstractmethod
    async def get_message_by_external_id(
        self,
        workspace_id: str,
        external_id: str,
    ) -> Message | None:
        """Get the newest message of a workspace with the given external id."""
        ...

    @abstractmethod
    async def get_message_by_provider_id(
        self,
        workspace_id: str,
        provider_msg_id: str,
    ) -> Message | None:
        """Get the newest message of a workspace with the given provider message id."""
        ...

    # ==================== Provider Logs ====================

    @abstractmethod
    async def log_provider_action(self, log: ProviderActionLog) -> None:
        """Record a provider call."""
        ...

    # ==================== Health Check ====================

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if storage is healthy."""
        ...
