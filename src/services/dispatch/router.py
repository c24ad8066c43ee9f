"""Dispatch router - send one outbound message through the workspace's provider."""

import time

import httpx
import structlog

from src.models import (
    Connection,
    MessageStatus,
    OutboundSendRequest,
    ProviderActionLog,
    ProviderConfig,
    SendResult,
)
from src.services.channels import get_provider_adapter
from src.services.dispatch.media import MediaPreprocessor
from src.storage.base import StorageBackend

logger = structlog.get_logger()

PROVIDER_NOT_CONFIGURED = "PROVIDER_NOT_CONFIGURED"


class DispatchRouter:
    """Route outbound sends to the active provider, with one optional fallback.

    The router never deduplicates: two identical requests produce two sends.
    """

    def __init__(
        self,
        storage: StorageBackend,
        http_client: httpx.AsyncClient,
        preprocessor: MediaPreprocessor | None = None,
    ) -> None:
        self.storage = storage
        self.http = http_client
        self.preprocessor = preprocessor or MediaPreprocessor(http_client)

    async def dispatch(self, request: OutboundSendRequest) -> SendResult:
        """Send a message.

        Args:
            request: Canonical send request

        Returns:
            SendResult describing which provider served the request
        """
        log = logger.bind(workspace_id=request.workspace_id, to=request.to)

        config = await self.storage.get_active_provider_config(request.workspace_id)
        if config is None or not config.has_credentials:
            log.warning(
                "No usable provider configured",
                reason="no_active_provider" if config is None else "missing_credentials",
            )
            return SendResult(ok=False, error=PROVIDER_NOT_CONFIGURED)

        connection = None
        if request.context.instance:
            connection = await self.storage.find_connection_by_instance(request.context.instance)
            if connection and connection.workspace_id != request.workspace_id:
                log.warning(
                    "Instance belongs to another workspace",
                    instance=request.context.instance,
                    owner_workspace_id=connection.workspace_id,
                )
                connection = None

        media_url = await self.preprocessor.prepare(request) if request.is_media else None

        result = await self._attempt(config, request, connection, media_url)

        if not result.ok and config.enable_fallback:
            fallback_config = await self.storage.get_alternate_provider_config(
                request.workspace_id,
                exclude=config.provider,
            )
            if fallback_config and fallback_config.has_credentials:
                log.warning(
                    "Primary provider failed, trying fallback",
                    primary=config.provider.value,
                    fallback=fallback_config.provider.value,
                    error=result.error,
                )
                fallback_result = await self._attempt(
                    fallback_config,
                    request,
                    connection,
                    media_url,
                    is_fallback=True,
                )
                if fallback_result.ok:
                    fallback_result.failover_from = config.provider
                    result = fallback_result
            else:
                log.warning("Fallback enabled but no alternate provider configured")

        if result.ok:
            await self._record_provider_id(request, result)
        else:
            log.error("Message dispatch failed", provider=config.provider.value, error=result.error)

        return result

    async def _attempt(
        self,
        config: ProviderConfig,
        request: OutboundSendRequest,
        connection: Connection | None,
        media_url: str | None,
        is_fallback: bool = False,
    ) -> SendResult:
        """Run one provider send and log it."""
        adapter = get_provider_adapter(config, self.http)

        start = time.perf_counter()
        result = await adapter.send(request, connection, media_url=media_url)
        elapsed_ms = int((time.perf_counter() - start) * 1000)

        await self._log_action(config, request, result, elapsed_ms, is_fallback)
        return result

    async def _log_action(
        self,
        config: ProviderConfig,
        request: OutboundSendRequest,
        result: SendResult,
        elapsed_ms: int,
        is_fallback: bool,
    ) -> None:
        log = ProviderActionLog(
            workspace_id=request.workspace_id,
            provider=config.provider,
            action="send_media" if request.is_media else "send_message",
            result="success" if result.ok else "error",
            response_time_ms=elapsed_ms,
            error_message=result.error,
            metadata={
                "is_fallback": is_fallback,
                "provider_msg_id": result.provider_msg_id,
                "message_id": request.message_id,
            },
        )
        try:
            await self.storage.log_provider_action(log)
        except Exception as e:
            logger.warning("Failed to write provider action log", error=str(e))

    async def _record_provider_id(self, request: OutboundSendRequest, result: SendResult) -> None:
        """Store the provider message id so later status callbacks correlate."""
        if not result.provider_msg_id:
            return

        message = None
        if request.external_id:
            message = await self.storage.get_message_by_external_id(request.workspace_id, request.external_id)
        if message is None and request.message_id:
            candidate = await self.storage.get_message(request.message_id)
            if candidate and candidate.workspace_id == request.workspace_id:
                message = candidate

        if message is None:
            logger.info(
                "No stored message to correlate",
                workspace_id=request.workspace_id,
                provider_msg_id=result.provider_msg_id,
            )
            return

        message.provider_msg_id = result.provider_msg_id
        # A status callback may already have moved the message further
        if message.status not in (MessageStatus.DELIVERED.value, MessageStatus.READ.value):
            message.status = MessageStatus.SENT.value
        await self.storage.save_message(message)
        logger.info("Stored provider message id", message_id=message.id, provider_msg_id=result.provider_msg_id)
