"""Inbound webhook normalization."""

from src.services.webhooks.forwarder import EventForwarder
from src.services.webhooks.media import MediaDownloader
from src.services.webhooks.normalizer import WebhookNormalizer, WebhookOutcome
from src.services.webhooks.parsers import (
    normalize_ack,
    normalize_status,
    parse_evolution_payload,
    parse_payload,
    parse_zapi_payload,
)

__all__ = [
    "EventForwarder",
    "MediaDownloader",
    "WebhookNormalizer",
    "WebhookOutcome",
    "normalize_ack",
    "normalize_status",
    "parse_evolution_payload",
    "parse_payload",
    "parse_zapi_payload",
]
