"""Inbound media download with bounded retries."""

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from src.core.config import settings

logger = structlog.get_logger()


class MediaDownloader:
    """Fetch media binaries referenced by provider webhooks.

    Each download is retried with a linear backoff (``backoff`` x attempt).
    Exhausting the attempts returns ``None`` so the event can still be
    forwarded without its attachment.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        attempts: int | None = None,
        timeout: float | None = None,
        backoff: float | None = None,
    ) -> None:
        self.http = http_client
        self.attempts = attempts or settings.media_download_attempts
        self.timeout = timeout or settings.media_download_timeout_seconds
        self.backoff = settings.media_download_backoff_seconds if backoff is None else backoff

    async def download(self, url: str) -> bytes | None:
        """Download ``url``, returning its body or ``None`` after the last failed attempt."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_incrementing(start=self.backoff, increment=self.backoff),
            retry=retry_if_exception_type(httpx.HTTPError),
            before_sleep=self._log_retry,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    response = await self.http.get(url, timeout=self.timeout, follow_redirects=True)
                    response.raise_for_status()
        except RetryError as e:
            logger.error(
                "Media download failed",
                url=url,
                attempts=self.attempts,
                error=str(e.last_attempt.exception()),
            )
            return None
        except httpx.InvalidURL as e:
            logger.error("Media URL is malformed", url=url, error=str(e))
            return None

        logger.info("Media downloaded", url=url, size=len(response.content))
        return response.content

    @staticmethod
    def _log_retry(retry_state) -> None:
        logger.warning(
            "Media download attempt failed",
            attempt=retry_state.attempt_number,
            error=str(retry_state.outcome.exception()),
        )
