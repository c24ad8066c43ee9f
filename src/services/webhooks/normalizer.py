"""Webhook normalizer - provider webhook in, canonical event out."""

import base64
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx
import structlog

from src.core.exceptions import ConnectionNotFound
from src.models import (
    Connection,
    ConnectionStatus,
    InboundEvent,
    Message,
    MessageOrigin,
    MessageStatus,
    ProviderConfig,
    ProviderName,
)
from src.services.resolution import ForwardContext, forward_token_chain, forward_url_chain
from src.services.webhooks.forwarder import EventForwarder
from src.services.webhooks.media import MediaDownloader
from src.services.webhooks.parsers import parse_payload
from src.storage.base import StorageBackend

logger = structlog.get_logger()

# Ordered delivery progression; statuses outside it always apply
STATUS_RANK = {
    MessageStatus.SENDING.value: 0,
    MessageStatus.SENT.value: 1,
    MessageStatus.DELIVERED.value: 2,
    MessageStatus.READ.value: 3,
}

# message_origin values in the forward payload
ORIGIN_SYSTEM = "system"
ORIGIN_AI_AGENT = "ai_agent"
ORIGIN_OUTSIDE = "external_outside_system"
ORIGIN_UNKNOWN = "unknown"

# Echoes of our own sends: acknowledged, never forwarded
IGNORE_SYSTEM_DELIVERY = "system_delivery_callback"
IGNORE_SYSTEM_RECEIVED_FROM_API = "system_received_callback_from_api"


@dataclass
class WebhookOutcome:
    """A resolved webhook, ready to be acknowledged and forwarded."""

    request_id: str
    event: InboundEvent
    connection: Connection
    payload: dict[str, Any] = field(default_factory=dict)
    forward_url: str | None = None
    forward_token: str | None = None
    status_updated: bool = False
    ignored_reason: str | None = None

    @property
    def ignored(self) -> bool:
        return self.ignored_reason is not None


class WebhookNormalizer:
    """Resolve, normalize and forward provider webhooks.

    ``process`` does everything the provider must wait for (connection
    resolution, media download, status persistence). ``forward`` is meant to
    run after the provider has been acknowledged.
    """

    def __init__(
        self,
        storage: StorageBackend,
        http_client: httpx.AsyncClient,
        downloader: MediaDownloader | None = None,
        forwarder: EventForwarder | None = None,
    ) -> None:
        self.storage = storage
        self.downloader = downloader or MediaDownloader(http_client)
        self.forwarder = forwarder or EventForwarder(http_client)

    async def process(self, provider: ProviderName, payload: dict[str, Any]) -> WebhookOutcome:
        """Normalize one webhook.

        Args:
            provider: Provider family the webhook came from
            payload: Raw JSON body

        Returns:
            WebhookOutcome with the forward payload and target

        Raises:
            InvalidWebhookPayload: No instance identifier in the payload
            ConnectionNotFound: No live connection matches the instance
        """
        request_id = uuid.uuid4().hex[:12]
        log = logger.bind(request_id=request_id, provider=provider.value)

        event = parse_payload(provider, payload)
        log = log.bind(instance=event.instance, event_type=event.event_type, kind=event.kind.value)

        connection = await self.storage.find_connection_by_instance(event.instance)
        if not connection:
            log.warning("Connection not found for webhook")
            raise ConnectionNotFound(event.instance)

        log = log.bind(connection_id=connection.id, workspace_id=connection.workspace_id)
        log.info("Webhook received")

        provider_config = None
        if connection.provider_id:
            provider_config = await self.storage.get_provider_config(connection.provider_id)

        if event.media and event.media.content is None and event.media.url:
            event.media.content = await self.downloader.download(event.media.url)

        message = await self._find_message(connection.workspace_id, event.external_id)

        status_updated = False
        if event.is_status and event.status:
            if message:
                status_updated = await self._apply_status(message, event.status)
            else:
                log.warning("No stored message for status callback", external_id=event.external_id)

        await self._touch_connection(connection, event)

        context = ForwardContext(
            event=event,
            connection=connection,
            webhook_settings=await self.storage.get_webhook_settings(connection.workspace_id),
            provider_config=provider_config,
        )
        forward_url = await forward_url_chain.resolve(context)
        forward_token = await forward_token_chain.resolve(context)
        log.debug("Forward target resolved", url_source=forward_url.source, token_source=forward_token.source)

        forward_payload = self.build_forward_payload(event, connection, provider_config, message)
        ignored_reason = self.echo_reason(event, forward_payload)
        if ignored_reason:
            log.info("Ignoring echo of a system message", reason=ignored_reason)

        return WebhookOutcome(
            request_id=request_id,
            event=event,
            connection=connection,
            payload=forward_payload,
            forward_url=forward_url.value,
            forward_token=forward_token.value,
            status_updated=status_updated,
            ignored_reason=ignored_reason,
        )

    async def forward(self, outcome: WebhookOutcome) -> bool:
        """Forward a processed webhook downstream."""
        if outcome.ignored:
            return False

        if not outcome.forward_url:
            logger.warning(
                "No forward URL configured",
                request_id=outcome.request_id,
                workspace_id=outcome.connection.workspace_id,
            )
            return False

        return await self.forwarder.forward(
            outcome.forward_url,
            outcome.payload,
            token=outcome.forward_token,
        )

    # ==================== Correlation ====================

    async def _find_message(self, workspace_id: str, external_id: str | None) -> Message | None:
        """Find the stored message a provider message id refers to."""
        if not external_id:
            return None
        message = await self.storage.get_message_by_provider_id(workspace_id, external_id)
        if message is None:
            message = await self.storage.get_message_by_external_id(workspace_id, external_id)
        return message

    async def _apply_status(self, message: Message, status: str) -> bool:
        """Apply a normalized status to a stored message.

        Returns:
            False when the status would move the message backwards
        """
        current = STATUS_RANK.get(message.status)
        incoming = STATUS_RANK.get(status)
        if current is not None and incoming is not None and incoming < current:
            logger.info(
                "Ignoring status regression",
                message_id=message.id,
                current=message.status,
                incoming=status,
            )
            return False

        now = datetime.utcnow()
        message.status = status
        if status == MessageStatus.DELIVERED.value and message.delivered_at is None:
            message.delivered_at = now
        if status == MessageStatus.READ.value and message.read_at is None:
            message.read_at = now

        await self.storage.save_message(message)
        logger.info("Message status updated", message_id=message.id, status=status)
        return True

    async def _touch_connection(self, connection: Connection, event: InboundEvent) -> None:
        connection.last_activity_at = datetime.utcnow()
        if event.connection_state:
            connection.status = ConnectionStatus(event.connection_state)
            if event.connection_phone:
                connection.phone_number = event.connection_phone
            logger.info(
                "Connection state changed",
                connection_id=connection.id,
                status=connection.status.value,
            )
        await self.storage.save_connection(connection)

    # ==================== Forward Payload ====================

    @staticmethod
    def message_origin(event: InboundEvent, message: Message | None) -> str:
        """Classify where the message behind an event came from."""
        if not event.external_id:
            return ORIGIN_UNKNOWN
        if message is None:
            return ORIGIN_OUTSIDE
        if message.origin == MessageOrigin.AUTOMATIC:
            return ORIGIN_AI_AGENT
        return ORIGIN_SYSTEM

    @staticmethod
    def echo_reason(event: InboundEvent, payload: dict[str, Any]) -> str | None:
        """Return why an event must not be forwarded, or None to forward it.

        Delivery callbacks for system messages, and received callbacks the
        provider flags as sent through its API, are our own sends coming back.
        """
        if not payload.get("is_system_message"):
            return None

        names = (event.event_type, event.raw.get("type"), event.raw.get("event"))
        if "DeliveryCallback" in names:
            return IGNORE_SYSTEM_DELIVERY
        if "ReceivedCallback" in names and event.from_api:
            return IGNORE_SYSTEM_RECEIVED_FROM_API
        return None

    def build_forward_payload(
        self,
        event: InboundEvent,
        connection: Connection,
        provider_config: ProviderConfig | None,
        message: Message | None,
    ) -> dict[str, Any]:
        """Build the body POSTed to the downstream automation endpoint."""
        webhook_data = dict(event.raw)
        if event.status is not None:
            webhook_data["status"] = event.status

        origin = self.message_origin(event, message)

        payload: dict[str, Any] = {
            "event_type": event.event_type,
            "provider": event.provider.value,
            "instance_name": connection.instance_name,
            "instance_token": connection.instance_token,
            "client_token": provider_config.client_token if provider_config else None,
            "workspace_id": connection.workspace_id,
            "connection_id": connection.id,
            "external_id": event.external_id,
            "status": event.status,
            "timestamp": datetime.utcnow().isoformat(),
            "webhook_data": webhook_data,
            "contact_phone": event.contact_phone,
            "message_origin": origin,
            "is_ai_agent": origin == ORIGIN_AI_AGENT,
            "is_system_message": origin == ORIGIN_SYSTEM,
        }

        if event.connection_state:
            payload["connection_state"] = event.connection_state

        if event.media:
            media = event.media
            payload["media"] = {
                "base64": base64.b64encode(media.content).decode("ascii") if media.content else None,
                "fileName": media.file_name,
                "mimeType": media.mime_type,
                "mediaUrl": media.url,
                "mediaType": media.media_type.value,
            }

        return payload
