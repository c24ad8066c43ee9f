"""Outbound media pre-processing.

Files uploaded to the platform's own object storage are not always
reachable by the providers. Those URLs are handed to the media processor,
which re-publishes them and returns a provider-reachable URL.
"""

from typing import Any

import httpx
import structlog

from src.core.config import settings
from src.models import OutboundSendRequest

logger = structlog.get_logger()


class MediaPreprocessor:
    """Turn internal storage URLs into provider-reachable URLs (best effort)."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        processor_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.http = http_client
        self.processor_url = settings.media_processor_url if processor_url is None else processor_url
        self.token = settings.media_processor_token if token is None else token
        self.timeout = timeout or settings.media_processor_timeout_seconds

    def needs_processing(self, url: str | None) -> bool:
        return bool(url) and settings.storage_public_marker in url

    async def prepare(self, request: OutboundSendRequest) -> str | None:
        """Return the media URL to send, falling back to the original on any failure."""
        url = request.media_url
        if not self.needs_processing(url):
            return url

        if not self.processor_url:
            logger.warning("Media processor not configured, sending original URL", url=url)
            return url

        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        body = {
            "messageId": request.external_id or request.message_id,
            "fileUrl": url,
            "fileName": request.file_name,
            "mimeType": request.mime_type,
            "direction": "outbound",
        }

        try:
            response = await self.http.post(
                self.processor_url,
                json=body,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            data: Any = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Media processing failed, sending original URL", url=url, error=str(e))
            return url

        if not isinstance(data, dict):
            data = {}
        processed = data.get("fileUrl") or (data.get("data") or {}).get("publicUrl")
        if not processed:
            logger.warning("Media processor returned no URL, sending original URL", url=url)
            return url

        logger.info("Media processed", original=url, processed=processed)
        return processed
