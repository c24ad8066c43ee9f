"""Core module - configuration and utilities."""

from src.core.config import settings
from src.core.exceptions import (
    AppException,
    ConnectionNotFound,
    InvalidWebhookPayload,
    ProviderConfigNotFound,
    ProviderInUse,
)

__all__ = [
    "settings",
    "AppException",
    "ConnectionNotFound",
    "InvalidWebhookPayload",
    "ProviderConfigNotFound",
    "ProviderInUse",
]
