"""Evolution API channel adapter."""

from typing import Any

import httpx
import structlog

from src.core.config import settings
from src.models import Connection, ConnectionStatus, OutboundSendRequest, ProviderName, SendResult
from src.services.channels.base import ProviderAdapter, ProviderCheck, sanitize_phone

logger = structlog.get_logger()

# Evolution instance states
CONNECTION_STATES = {
    "open": ConnectionStatus.CONNECTED,
    "connecting": ConnectionStatus.CONNECTING,
    "close": ConnectionStatus.DISCONNECTED,
}


class EvolutionAdapter(ProviderAdapter):
    """Evolution API adapter.

    Messages are sent per instance:
    - POST {base_url}/message/sendText/{instance}
    - POST {base_url}/message/sendMedia/{instance}

    Authentication uses the ``apikey`` header.
    """

    name = ProviderName.EVOLUTION

    @property
    def base_url(self) -> str:
        return (self.config.base_url or "").rstrip("/")

    def _headers(self) -> dict[str, str]:
        return {"apikey": self.config.token or "", "Content-Type": "application/json"}

    @staticmethod
    def _instance(request: OutboundSendRequest, connection: Connection | None) -> str | None:
        return request.context.instance or (connection.instance_name if connection else None)

    def _extract_message_id(self, data: dict[str, Any]) -> str | None:
        key = data.get("key") or {}
        return key.get("id") or data.get("messageId")

    async def send_text(
        self,
        request: OutboundSendRequest,
        connection: Connection | None = None,
    ) -> SendResult:
        instance = self._instance(request, connection)
        if not instance:
            return self.failure("INSTANCE_REQUIRED")

        logger.info("Sending Evolution text", instance=instance)
        return await self._post(
            f"{self.base_url}/message/sendText/{instance}",
            {"number": sanitize_phone(request.to), "text": request.text or ""},
            self._headers(),
        )

    async def send_media(
        self,
        request: OutboundSendRequest,
        media_url: str,
        connection: Connection | None = None,
    ) -> SendResult:
        instance = self._instance(request, connection)
        if not instance:
            return self.failure("INSTANCE_REQUIRED")

        payload: dict[str, Any] = {
            "number": sanitize_phone(request.to),
            "mediatype": request.media_type.value,
            "media": media_url,
        }
        caption = request.caption or request.text
        if caption:
            payload["caption"] = caption
        if request.file_name:
            payload["fileName"] = request.file_name
        if request.mime_type:
            payload["mimetype"] = request.mime_type

        logger.info("Sending Evolution media", instance=instance, media_type=request.media_type.value)
        return await self._post(f"{self.base_url}/message/sendMedia/{instance}", payload, self._headers())

    async def test_connection(self) -> ProviderCheck:
        try:
            response = await self.http.get(
                f"{self.base_url}/instance/fetchInstances",
                headers=self._headers(),
                timeout=settings.provider_status_timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.error("Evolution connection test failed", error=str(e))
            return ProviderCheck(ok=False, message=str(e))

        if response.is_success:
            return ProviderCheck(ok=True, message="Connection established")
        return ProviderCheck(ok=False, message=f"HTTP {response.status_code}")

    async def fetch_connection_state(self, connection: Connection) -> ConnectionStatus:
        response = await self.http.get(
            f"{self.base_url}/instance/connectionState/{connection.instance_name}",
            headers=self._headers(),
            timeout=settings.provider_status_timeout_seconds,
        )
        response.raise_for_status()

        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected status response: {response.text[:200]}")
        instance = data.get("instance")
        state = (instance.get("state") if isinstance(instance, dict) else None) or data.get("state")
        return CONNECTION_STATES.get(str(state).lower(), ConnectionStatus.DISCONNECTED)
