"""Abstract base class for WhatsApp provider adapters."""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from src.core.config import settings
from src.models import (
    Connection,
    ConnectionStatus,
    OutboundSendRequest,
    ProviderConfig,
    ProviderName,
    SendResult,
)

logger = structlog.get_logger()


@dataclass
class ProviderCheck:
    """Result of a provider credentials check."""

    ok: bool
    message: str = ""


def sanitize_phone(raw: str) -> str:
    """Strip everything but digits from a phone-number-shaped string."""
    return re.sub(r"\D", "", raw or "")


class ProviderAdapter(ABC):
    """Abstract base class for provider adapters.

    Each provider family (Evolution, Z-API) builds its own request shapes
    but reports outcomes through the same ``SendResult``.
    """

    name: ProviderName

    def __init__(
        self,
        config: ProviderConfig,
        http_client: httpx.AsyncClient,
        timeout: float | None = None,
    ) -> None:
        self.config = config
        self.http = http_client
        self.timeout = timeout or settings.provider_send_timeout_seconds

    @abstractmethod
    async def send_text(
        self,
        request: OutboundSendRequest,
        connection: Connection | None = None,
    ) -> SendResult:
        """Send a text message."""
        ...

    @abstractmethod
    async def send_media(
        self,
        request: OutboundSendRequest,
        media_url: str,
        connection: Connection | None = None,
    ) -> SendResult:
        """Send a media message from a provider-reachable URL."""
        ...

    @abstractmethod
    async def test_connection(self) -> ProviderCheck:
        """Check that the configured credentials are accepted."""
        ...

    @abstractmethod
    async def fetch_connection_state(self, connection: Connection) -> ConnectionStatus:
        """Ask the provider for the live state of a connection's instance."""
        ...

    @abstractmethod
    def _extract_message_id(self, data: dict[str, Any]) -> str | None:
        """Pull the provider-assigned message id out of a send response."""
        ...

    async def send(
        self,
        request: OutboundSendRequest,
        connection: Connection | None = None,
        media_url: str | None = None,
    ) -> SendResult:
        """Send text or media depending on the request."""
        if request.is_media:
            return await self.send_media(request, media_url or request.media_url, connection)
        return await self.send_text(request, connection)

    def failure(self, error: str) -> SendResult:
        return SendResult(ok=False, error=error, provider=self.name)

    async def _post(self, url: str, payload: dict[str, Any], headers: dict[str, str]) -> SendResult:
        """POST a send request and interpret the provider response."""
        try:
            response = await self.http.post(url, json=payload, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.error("Provider request failed", provider=self.name.value, error=str(e))
            return self.failure(str(e) or e.__class__.__name__)

        return self._interpret(response)

    def _interpret(self, response: httpx.Response) -> SendResult:
        """Turn an HTTP response into a SendResult.

        Non-2xx responses and 2xx bodies carrying an error flag are failures.
        """
        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError):
            data = {}
        if not isinstance(data, dict):
            data = {"data": data}

        body_error = bool(data.get("error")) or str(data.get("status", "")).lower() == "error"
        if not response.is_success or body_error:
            logger.warning(
                "Provider rejected message",
                provider=self.name.value,
                status_code=response.status_code,
                body=response.text[:500],
            )
            return self.failure(response.text or f"HTTP {response.status_code}")

        provider_msg_id = self._extract_message_id(data)
        logger.info("Provider accepted message", provider=self.name.value, provider_msg_id=provider_msg_id)
        return SendResult(ok=True, provider_msg_id=provider_msg_id, provider=self.name)
