"""Downstream forwarding of normalized webhook events."""

from typing import Any

import httpx
import structlog

from src.core.config import settings

logger = structlog.get_logger()


class EventForwarder:
    """POST normalized events to a workspace's automation endpoint (n8n).

    Forwarding is fire-and-forget: the outcome is logged and never raised.
    """

    def __init__(self, http_client: httpx.AsyncClient, timeout: float | None = None) -> None:
        self.http = http_client
        self.timeout = timeout or settings.forward_timeout_seconds

    async def forward(
        self,
        url: str,
        payload: dict[str, Any],
        token: str | None = None,
    ) -> bool:
        """Send one event downstream.

        Args:
            url: Downstream webhook URL
            payload: Forward payload
            token: Optional bearer token for the downstream endpoint

        Returns:
            True when the endpoint answered 2xx
        """
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self.http.post(url, json=payload, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.error("Forward request failed", url=url, error=str(e) or e.__class__.__name__)
            return False

        if not response.is_success:
            logger.error(
                "Forward rejected by downstream",
                url=url,
                status_code=response.status_code,
                body=response.text[:500],
            )
            return False

        logger.info("Event forwarded", url=url, status_code=response.status_code)
        return True
