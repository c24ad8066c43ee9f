"""Firestore storage backend for production."""

import os
from datetime import datetime
from typing import Any

import structlog

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

logger = structlog.get_logger()


class FirestoreStorage(StorageBackend):
    """Firestore storage implementation for production.

    Collection structure:
    - connections/{connection_id}
    - provider_configs/{provider_id}
    - webhook_settings/{workspace_id}
    - messages/{message_id}
    - provider_logs/{auto_id}
    """

    def __init__(self, project_id: str | None = None) -> None:
        self._project_id = project_id
        self._db = None
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        """Lazy initialization of Firestore client."""
        if self._initialized:
            return

        try:
            from google.cloud import firestore

            # Check if using emulator
            if os.environ.get("FIRESTORE_EMULATOR_HOST"):
                logger.info("Using Firestore emulator")

            self._db = firestore.AsyncClient(project=self._project_id)
            self._initialized = True
            logger.info("Firestore client initialized", project=self._project_id)
        except Exception as e:
            logger.error("Failed to initialize Firestore", error=str(e))
            raise

    @staticmethod
    async def _first(query) -> dict[str, Any] | None:
        docs = await query.limit(1).get()
        for doc in docs:
            return doc.to_dict()
        return None

    # ==================== Connection Operations ====================

    async def get_connection(self, connection_id: str) -> Connection | None:
        await self._ensure_initialized()
        doc = await self._db.collection("connections").document(connection_id).get()
        if not doc.exists:
            return None
        return Connection(**doc.to_dict())

    async def find_connection_by_instance(self, identifier: str) -> Connection | None:
        await self._ensure_initialized()
        collection = self._db.collection("connections")

        # Providers send either the instance name or their own instance id
        for field in ("instance_name", "metadata.instanceId", "metadata.id"):
            docs = await collection.where(field, "==", identifier).get()
            for doc in docs:
                data = doc.to_dict()
                if data.get("status") != ConnectionStatus.DELETED.value:
                    return Connection(**data)
        return None

    async def save_connection(self, connection: Connection) -> Connection:
        await self._ensure_initialized()
        connection.updated_at = datetime.utcnow()
        await self._db.collection("connections").document(connection.id).set(
            connection.model_dump(mode="json")
        )
        return connection

    async def list_connections(
        self,
        workspace_id: str,
        provider_id: str | None = None,
    ) -> list[Connection]:
        await self._ensure_initialized()

        query = self._db.collection("connections").where("workspace_id", "==", workspace_id)
        if provider_id:
            query = query.where("provider_id", "==", provider_id)

        docs = await query.order_by("created_at").get()
        return [Connection(**doc.to_dict()) for doc in docs]

    # ==================== Provider Config Operations ====================

    async def get_provider_config(self, provider_id: str) -> ProviderConfig | None:
        await self._ensure_initialized()
        doc = await self._db.collection("provider_configs").document(provider_id).get()
        if not doc.exists:
            return None
        return ProviderConfig(**doc.to_dict())

    async def get_active_provider_config(self, workspace_id: str) -> ProviderConfig | None:
        await self._ensure_initialized()
        query = (
            self._db.collection("provider_configs")
            .where("workspace_id", "==", workspace_id)
            .where("is_active", "==", True)
        )
        data = await self._first(query)
        return ProviderConfig(**data) if data else None

    async def get_alternate_provider_config(
        self,
        workspace_id: str,
        exclude: ProviderName,
    ) -> ProviderConfig | None:
        await self._ensure_initialized()
        query = (
            self._db.collection("provider_configs")
            .where("workspace_id", "==", workspace_id)
            .where("provider", "!=", exclude.value)
        )
        for doc in await query.get():
            config = ProviderConfig(**doc.to_dict())
            if config.has_credentials:
                return config
        return None

    async def list_provider_configs(self, workspace_id: str) -> list[ProviderConfig]:
        await self._ensure_initialized()
        query = (
            self._db.collection("provider_configs")
            .where("workspace_id", "==", workspace_id)
            .order_by("is_active", direction="DESCENDING")
            .order_by("created_at", direction="DESCENDING")
        )
        docs = await query.get()
        return [ProviderConfig(**doc.to_dict()) for doc in docs]

    async def save_provider_config(self, config: ProviderConfig) -> ProviderConfig:
        await self._ensure_initialized()
        config.updated_at = datetime.utcnow()
        await self._db.collection("provider_configs").document(config.id).set(
            config.model_dump(mode="json")
        )
        return config

    async def delete_provider_config(self, provider_id: str) -> bool:
        await self._ensure_initialized()
        await self._db.collection("provider_configs").document(provider_id).delete()
        return True

    async def activate_provider_config(
        self,
        workspace_id: str,
        provider_id: str,
    ) -> ProviderConfig:
        await self._ensure_initialized()
        from google.cloud import firestore

        collection = self._db.collection("provider_configs")

        @firestore.async_transactional
        async def _activate(transaction) -> ProviderConfig:
            target_ref = collection.document(provider_id)
            snapshot = await target_ref.get(transaction=transaction)
            if not snapshot.exists or snapshot.to_dict().get("workspace_id") != workspace_id:
                raise ProviderConfigNotFound(provider_id)

            # All reads before any write
            query = collection.where("workspace_id", "==", workspace_id)
            siblings = [doc async for doc in query.stream(transaction=transaction)]

            now = datetime.utcnow().isoformat()
            for doc in siblings:
                transaction.update(
                    doc.reference,
                    {"is_active": doc.id == provider_id, "updated_at": now},
                )

            data = snapshot.to_dict()
            data.update(is_active=True, updated_at=now)
            return ProviderConfig(**data)

        config = await _activate(self._db.transaction())
        logger.info("Provider config activated", workspace_id=workspace_id, provider_id=provider_id)
        return config

    # ==================== Webhook Settings ====================

    async def get_webhook_settings(self, workspace_id: str) -> WebhookSettings | None:
        await self._ensure_initialized()
        doc = await self._db.collection("webhook_settings").document(workspace_id).get()
        if not doc.exists:
            return None
        return WebhookSettings(**doc.to_dict())

    async def save_webhook_settings(self, webhook_settings: WebhookSettings) -> WebhookSettings:
        await self._ensure_initialized()
        webhook_settings.updated_at = datetime.utcnow()
        await self._db.collection("webhook_settings").document(webhook_settings.workspace_id).set(
            webhook_settings.model_dump(mode="json")
        )
        return webhook_settings

    # ==================== Message Operations ====================

    async def get_message(self, message_id: str) -> Message | None:
        await self._ensure_initialized()
        doc = await self._db.collection("messages").document(message_id).get()
        if not doc.exists:
            return None
        return Message(**doc.to_dict())

    async def save_message(self, message: Message) -> Message:
        await self._ensure_initialized()
        message.updated_at = datetime.utcnow()
        await self._db.collection("messages").document(message.id).set(
            message.model_dump(mode="json")
        )
        return message

    async def _newest_message(self, workspace_id: str, field: str, value: str) -> Message | None:
        await self._ensure_initialized()
        query = (
            self._db.collection("messages")
            .where("workspace_id", "==", workspace_id)
            .where(field, "==", value)
            .order_by("created_at", direction="DESCENDING")
        )
        data = await self._first(query)
        return Message(**data) if data else None

    async def get_message_by_external_id(
        self,
        workspace_id: str,
        external_id: str,
    ) -> Message | None:
        return await self._newest_message(workspace_id, "external_id", external_id)

    async def get_message_by_provider_id(
        self,
        workspace_id: str,
        provider_msg_id: str,
    ) -> Message | None:
        return await self._newest_message(workspace_id, "provider_msg_id", provider_msg_id)

    # ==================== Provider Logs ====================

    async def log_provider_action(self, log: ProviderActionLog) -> None:
        await self._ensure_initialized()
        await self._db.collection("provider_logs").add(log.model_dump(mode="json"))

    # ==================== Health Check ====================

    async def health_check(self) -> bool:
        try:
            await self._ensure_initialized()
            # Simple health check - try to access a collection
            await self._db.collection("_health").document("check").get()
            return True
        except Exception as e:
            logger.error("Firestore health check failed", error=str(e))
            return False
