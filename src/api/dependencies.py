"""FastAPI dependencies for dependency injection."""

from typing import Annotated

import httpx
from fastapi import Depends

from src.core.config import settings
from src.services.connections import ConnectionService
from src.services.dispatch import DispatchRouter
from src.services.providers import ProviderConfigService
from src.services.webhooks import WebhookNormalizer
from src.storage.base import StorageBackend
from src.storage.memory import InMemoryStorage


# Storage singleton
_storage: StorageBackend | None = None

# HTTP client singleton, shared by every outbound call
_http_client: httpx.AsyncClient | None = None


def get_storage() -> StorageBackend:
    """Get the storage backend singleton.

    Uses in-memory storage for development, Firestore for production.
    """
    global _storage
    if _storage is None:
        if settings.is_production and settings.gcp_project_id:
            from src.storage.firestore import FirestoreStorage
            _storage = FirestoreStorage(project_id=settings.gcp_project_id)
        else:
            _storage = InMemoryStorage()
    return _storage


def get_http_client() -> httpx.AsyncClient:
    """Get the shared HTTP client.

    Timeouts are passed per call; the client-level default only guards
    calls that forget one.
    """
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(timeout=settings.media_download_timeout_seconds)
    return _http_client


async def close_http_client() -> None:
    """Close the shared HTTP client (application shutdown)."""
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


# Type aliases for cleaner dependency injection
StorageDep = Annotated[StorageBackend, Depends(get_storage)]
HttpClientDep = Annotated[httpx.AsyncClient, Depends(get_http_client)]


def get_normalizer(storage: StorageDep, http_client: HttpClientDep) -> WebhookNormalizer:
    """Get webhook normalizer with storage and HTTP client."""
    return WebhookNormalizer(storage, http_client)


def get_dispatch_router(storage: StorageDep, http_client: HttpClientDep) -> DispatchRouter:
    """Get dispatch router with storage and HTTP client."""
    return DispatchRouter(storage, http_client)


def get_provider_service(storage: StorageDep, http_client: HttpClientDep) -> ProviderConfigService:
    return ProviderConfigService(storage, http_client)


def get_connection_service(storage: StorageDep, http_client: HttpClientDep) -> ConnectionService:
    return ConnectionService(storage, http_client)


NormalizerDep = Annotated[WebhookNormalizer, Depends(get_normalizer)]
DispatchDep = Annotated[DispatchRouter, Depends(get_dispatch_router)]
ProviderServiceDep = Annotated[ProviderConfigService, Depends(get_provider_service)]
ConnectionServiceDep = Annotated[ConnectionService, Depends(get_connection_service)]
