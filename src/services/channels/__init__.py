"""Provider adapters for the supported WhatsApp APIs."""

import httpx

from src.models import ProviderConfig, ProviderName
from src.services.channels.base import ProviderAdapter, ProviderCheck, sanitize_phone
from src.services.channels.evolution import EvolutionAdapter
from src.services.channels.zapi import ZapiAdapter

ADAPTERS: dict[ProviderName, type[ProviderAdapter]] = {
    ProviderName.EVOLUTION: EvolutionAdapter,
    ProviderName.ZAPI: ZapiAdapter,
}


def get_provider_adapter(
    config: ProviderConfig,
    http_client: httpx.AsyncClient,
    timeout: float | None = None,
) -> ProviderAdapter:
    """Build the adapter matching a provider config."""
    return ADAPTERS[config.provider](config, http_client, timeout=timeout)


__all__ = [
    "EvolutionAdapter",
    "ProviderAdapter",
    "ProviderCheck",
    "ZapiAdapter",
    "get_provider_adapter",
    "sanitize_phone",
]
