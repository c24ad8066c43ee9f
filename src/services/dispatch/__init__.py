"""Outbound message dispatch."""

from src.services.dispatch.media import MediaPreprocessor
from src.services.dispatch.router import PROVIDER_NOT_CONFIGURED, DispatchRouter

__all__ = ["DispatchRouter", "MediaPreprocessor", "PROVIDER_NOT_CONFIGURED"]
