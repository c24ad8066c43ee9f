"""Z-API channel adapter."""

from pathlib import PurePosixPath
from typing import Any
from urllib.parse import urlparse

import httpx
import structlog

from src.core.config import settings
from src.models import (
    Connection,
    ConnectionStatus,
    MediaType,
    OutboundSendRequest,
    ProviderName,
    SendResult,
)
from src.services.channels.base import ProviderAdapter, ProviderCheck, sanitize_phone

logger = structlog.get_logger()

MEDIA_ENDPOINTS = {
    MediaType.IMAGE: "send-image",
    MediaType.VIDEO: "send-video",
    MediaType.AUDIO: "send-audio",
    MediaType.DOCUMENT: "send-document",
}


def _document_extension(file_name: str | None, media_url: str) -> str:
    """Z-API wants the document extension in the endpoint path."""
    for candidate in (file_name, urlparse(media_url).path):
        suffix = PurePosixPath(candidate or "").suffix.lstrip(".")
        if suffix:
            return suffix.lower()
    return "pdf"


class ZapiAdapter(ProviderAdapter):
    """Z-API adapter.

    Instance operations live under
    ``{base}/instances/{instance_id}/token/{instance_token}/...`` and are
    authenticated with the account ``Client-Token`` header. Instance id and
    token come from the connection metadata.
    """

    name = ProviderName.ZAPI

    @property
    def base_url(self) -> str:
        url = self.config.base_url or settings.zapi_default_base_url
        # Integrator URLs point at instance creation, not at instance operations
        if "/instances/integrator" in url:
            url = url.split("/instances/integrator")[0]
        return url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        return {
            "Client-Token": self.config.client_token or self.config.token or "",
            "Content-Type": "application/json",
        }

    def _instance_url(self, connection: Connection | None) -> str | None:
        if not connection or not connection.instance_id or not connection.instance_token:
            return None
        return f"{self.base_url}/instances/{connection.instance_id}/token/{connection.instance_token}"

    def _extract_message_id(self, data: dict[str, Any]) -> str | None:
        return data.get("messageId") or data.get("id") or data.get("zaapId")

    async def send_text(
        self,
        request: OutboundSendRequest,
        connection: Connection | None = None,
    ) -> SendResult:
        instance_url = self._instance_url(connection)
        if not instance_url:
            return self.failure("ZAPI_INSTANCE_CREDENTIALS_MISSING")

        return await self._post(
            f"{instance_url}/send-text",
            {"phone": sanitize_phone(request.to), "message": request.text or ""},
            self._headers(),
        )

    async def send_media(
        self,
        request: OutboundSendRequest,
        media_url: str,
        connection: Connection | None = None,
    ) -> SendResult:
        instance_url = self._instance_url(connection)
        if not instance_url:
            return self.failure("ZAPI_INSTANCE_CREDENTIALS_MISSING")

        media_type = request.media_type
        endpoint = MEDIA_ENDPOINTS[media_type]
        payload: dict[str, Any] = {"phone": sanitize_phone(request.to), media_type.value: media_url}

        caption = request.caption or request.text
        if caption and media_type != MediaType.AUDIO:
            payload["caption"] = caption
        if media_type == MediaType.DOCUMENT:
            endpoint = f"{endpoint}/{_document_extension(request.file_name, media_url)}"
            if request.file_name:
                payload["fileName"] = request.file_name

        logger.info("Sending Z-API media", media_type=media_type.value, endpoint=endpoint)
        return await self._post(f"{instance_url}/{endpoint}", payload, self._headers())

    async def test_connection(self) -> ProviderCheck:
        url = (self.config.base_url or settings.zapi_default_base_url).rstrip("/")
        try:
            response = await self.http.get(
                f"{url}/ping",
                headers=self._headers(),
                timeout=settings.provider_status_timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.error("Z-API connection test failed", error=str(e))
            return ProviderCheck(ok=False, message=str(e))

        if response.is_success:
            return ProviderCheck(ok=True, message="Connection established")
        return ProviderCheck(
            ok=False,
            message=f"HTTP {response.status_code}. Check that the Client-Token is correct.",
        )

    async def fetch_connection_state(self, connection: Connection) -> ConnectionStatus:
        instance_url = self._instance_url(connection)
        if not instance_url:
            logger.warning("Z-API instance credentials missing", connection_id=connection.id)
            return ConnectionStatus.DISCONNECTED

        response = await self.http.get(
            f"{instance_url}/status",
            headers=self._headers(),
            timeout=settings.provider_status_timeout_seconds,
        )
        response.raise_for_status()

        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected status response: {response.text[:200]}")
        session = data.get("session")
        connected = (
            data.get("connected") is True
            or data.get("state") == "CONNECTED"
            or (isinstance(session, dict) and session.get("connected") is True)
        )
        return ConnectionStatus.CONNECTED if connected else ConnectionStatus.DISCONNECTED
