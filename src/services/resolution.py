"""Ordered lookup chains for configuration values.

A chain is a list of resolvers tried in sequence; the first one that yields
a non-empty value wins. Resolvers may be sync or async and receive the same
context object.
"""

import inspect
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

from src.core.config import settings
from src.models import Connection, InboundEvent, ProviderConfig, WebhookSettings

logger = structlog.get_logger()

C = TypeVar("C")
T = TypeVar("T")

# Returns the value, None, or an awaitable of either
Resolver = Callable[[Any], Any]


@dataclass
class Resolved(Generic[T]):
    """A resolved value tagged with the resolver that produced it."""

    value: T | None
    source: str | None = None


class ResolverChain(Generic[C, T]):
    """First non-empty wins over an ordered list of named resolvers."""

    def __init__(self, resolvers: Sequence[tuple[str, Resolver]]) -> None:
        self.resolvers = list(resolvers)

    async def resolve(self, context: C) -> Resolved[T]:
        for source, resolver in self.resolvers:
            value = resolver(context)
            if inspect.isawaitable(value):
                value = await value
            if value:
                logger.debug("Resolved value", source=source)
                return Resolved(value=value, source=source)
        return Resolved(value=None)


# ==================== Forward Target ====================


@dataclass
class ForwardContext:
    """What is known about an inbound event when choosing where to forward it."""

    event: InboundEvent
    connection: Connection
    webhook_settings: WebhookSettings | None = None
    provider_config: ProviderConfig | None = None


def _status_url(ctx: ForwardContext) -> str | None:
    return settings.status_forward_url if ctx.event.is_status else None


def _workspace_url(ctx: ForwardContext) -> str | None:
    return ctx.webhook_settings.webhook_url if ctx.webhook_settings else None


def _provider_url(ctx: ForwardContext) -> str | None:
    return ctx.provider_config.forward_url if ctx.provider_config else None


def _default_url(ctx: ForwardContext) -> str | None:
    return settings.default_forward_url


def _workspace_token(ctx: ForwardContext) -> str | None:
    return ctx.webhook_settings.webhook_secret if ctx.webhook_settings else None


def _default_token(ctx: ForwardContext) -> str | None:
    return settings.default_forward_token


forward_url_chain: ResolverChain[ForwardContext, str] = ResolverChain(
    [
        ("status_forward_url", _status_url),
        ("workspace_webhook", _workspace_url),
        ("provider_forward_url", _provider_url),
        ("default_forward_url", _default_url),
    ]
)

forward_token_chain: ResolverChain[ForwardContext, str] = ResolverChain(
    [
        ("workspace_secret", _workspace_token),
        ("default_forward_token", _default_token),
    ]
)
