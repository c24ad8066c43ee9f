"""Provider webhook parsing.

Each provider posts its own JSON shape. The functions here are the single
boundary where those shapes are inspected; everything downstream works on
``InboundEvent``.
"""

import base64
import binascii
import re
import time
from typing import Any

import structlog

from src.core.exceptions import InvalidWebhookPayload
from src.models import (
    ConnectionStatus,
    InboundEvent,
    InboundEventKind,
    MediaDescriptor,
    MediaType,
    MessageStatus,
    ProviderName,
)

logger = structlog.get_logger()

# Provider status tokens, looked up upper-cased
STATUS_TABLE: dict[str, MessageStatus] = {
    "PENDING": MessageStatus.SENDING,
    "SENDING": MessageStatus.SENDING,
    "SENT": MessageStatus.SENT,
    "SERVER_ACK": MessageStatus.SENT,
    "DELIVERED": MessageStatus.DELIVERED,
    "RECEIVED": MessageStatus.DELIVERED,
    "DELIVERY_ACK": MessageStatus.DELIVERED,
    "READ": MessageStatus.READ,
    "READ_BY_ME": MessageStatus.READ,
    "PLAYED": MessageStatus.READ,
    "FAILED": MessageStatus.FAILED,
    "ERROR": MessageStatus.FAILED,
}

# Evolution numeric ack levels
ACK_LEVELS: dict[int, MessageStatus] = {
    -1: MessageStatus.FAILED,
    0: MessageStatus.SENDING,
    1: MessageStatus.SENT,
    2: MessageStatus.DELIVERED,
    3: MessageStatus.READ,
    4: MessageStatus.READ,
}

ZAPI_INSTANCE_KEYS = ("instanceName", "instance", "instanceId")
EVOLUTION_INSTANCE_KEYS = ("instance", "instanceName")

ZAPI_STATUS_EVENTS = {"MessageStatusCallback", "DeliveryCallback"}
ZAPI_CONNECTION_EVENTS = {
    "ConnectedCallback": ConnectionStatus.CONNECTED,
    "DisconnectedCallback": ConnectionStatus.DISCONNECTED,
}

EVOLUTION_CONNECTION_STATES = {
    "open": ConnectionStatus.CONNECTED,
    "connecting": ConnectionStatus.CONNECTING,
    "close": ConnectionStatus.DISCONNECTED,
}

# (default MIME type, default file extension)
MEDIA_DEFAULTS: dict[MediaType, tuple[str, str | None]] = {
    MediaType.IMAGE: ("image/jpeg", "jpg"),
    MediaType.VIDEO: ("video/mp4", "mp4"),
    MediaType.AUDIO: ("audio/ogg", "ogg"),
    MediaType.DOCUMENT: ("application/octet-stream", None),
}

JID_SUFFIX = re.compile(r"@(s\.whatsapp\.net|lid|g\.us|broadcast|c\.us)$")


# ==================== Shared helpers ====================


def normalize_status(raw: Any) -> str | None:
    """Map a provider status token to a canonical status.

    Unknown tokens pass through lowercased.
    """
    if raw is None:
        return None
    token = str(raw)
    if not token:
        return None
    mapped = STATUS_TABLE.get(token.upper())
    return mapped.value if mapped else token.lower()


def normalize_ack(ack: Any) -> str | None:
    """Map an Evolution numeric ack level to a canonical status."""
    if ack is None or isinstance(ack, bool):
        return None
    try:
        level = int(ack)
    except (TypeError, ValueError):
        return normalize_status(ack)
    mapped = ACK_LEVELS.get(level)
    return mapped.value if mapped else str(level)


def extract_instance(payload: dict[str, Any], keys: tuple[str, ...]) -> str:
    """Return the first instance identifier found under ``keys``.

    Raises:
        InvalidWebhookPayload: When none of the aliases is present
    """
    for key in keys:
        value = payload.get(key)
        if isinstance(value, dict):
            value = value.get("instanceName") or value.get("name")
        if value:
            return str(value)
    raise InvalidWebhookPayload(
        "No instance identifier in webhook payload",
        code="INSTANCE_REQUIRED",
    )


def phone_from_jid(jid: Any) -> str | None:
    """Strip the WhatsApp JID suffix, skipping groups and broadcasts."""
    if not jid or not isinstance(jid, str):
        return None
    if jid.endswith("@g.us") or jid.endswith("@broadcast"):
        return None
    phone = JID_SUFFIX.sub("", jid).split(":")[0]
    return phone or None


def _zapi_phone(raw: Any) -> str | None:
    if not raw:
        return None
    value = str(raw)
    if "@c.us" in value or "@s.whatsapp.net" in value:
        return re.sub(r"\D", "", value)
    if re.fullmatch(r"\d{8,15}", value):
        return value
    return None


def _default_file_name(media_type: MediaType) -> str:
    stamp = int(time.time() * 1000)
    extension = MEDIA_DEFAULTS[media_type][1]
    return f"{media_type.value}-{stamp}.{extension}" if extension else f"{media_type.value}-{stamp}"


def _truthy(value: Any) -> bool:
    return value is True or str(value).lower() == "true"


# ==================== Z-API ====================


def _zapi_media(payload: dict[str, Any]) -> MediaDescriptor | None:
    for media_type in MediaType:
        block = payload.get(media_type.value)
        if not isinstance(block, dict):
            continue
        return MediaDescriptor(
            media_type=media_type,
            url=block.get("downloadUrl") or block.get(f"{media_type.value}Url"),
            mime_type=block.get("mimeType") or MEDIA_DEFAULTS[media_type][0],
            file_name=block.get("fileName") or _default_file_name(media_type),
        )
    return None


def _is_zapi_status(payload: dict[str, Any]) -> bool:
    # Message payloads may carry a status too; only callbacks or ids+status count
    if payload.get("type") in ZAPI_STATUS_EVENTS or payload.get("event") in ZAPI_STATUS_EVENTS:
        return True
    ids = payload.get("ids")
    return isinstance(ids, list) and len(ids) > 0 and bool(payload.get("status"))


def parse_zapi_payload(payload: dict[str, Any]) -> InboundEvent:
    """Parse a Z-API webhook body into an InboundEvent."""
    instance = extract_instance(payload, ZAPI_INSTANCE_KEYS)
    event_type = payload.get("event") or payload.get("type") or "UNKNOWN"

    ids = payload.get("ids") if isinstance(payload.get("ids"), list) else []
    external_id = payload.get("messageId") or payload.get("id") or (ids[0] if ids else None)

    raw_status = payload.get("status")
    status = normalize_status(raw_status) if isinstance(raw_status, str) else raw_status

    media = _zapi_media(payload)
    connection_state = ZAPI_CONNECTION_EVENTS.get(payload.get("type") or payload.get("event"))

    if _is_zapi_status(payload):
        kind = InboundEventKind.STATUS
    elif connection_state:
        kind = InboundEventKind.CONNECTION
    elif media:
        kind = InboundEventKind.MEDIA
    else:
        kind = InboundEventKind.MESSAGE

    return InboundEvent(
        kind=kind,
        provider=ProviderName.ZAPI,
        instance=instance,
        event_type=str(event_type),
        external_id=str(external_id) if external_id else None,
        status=status if status is None else str(status),
        raw_status=raw_status,
        contact_phone=_zapi_phone(payload.get("phone")),
        from_me=_truthy(payload.get("fromMe")),
        from_api=_truthy(payload.get("fromApi")) or _truthy(payload.get("from_api")),
        media=media,
        connection_state=connection_state.value if connection_state else None,
        connection_phone=_zapi_phone(payload.get("phone")) if connection_state else None,
        raw=payload,
    )


# ==================== Evolution ====================


def normalize_event_name(event: Any) -> str:
    """Evolution sends both ``messages.update`` and ``MESSAGES_UPDATE``."""
    return str(event or "").upper().replace(".", "_") or "UNKNOWN"


def _evolution_media(data: dict[str, Any]) -> MediaDescriptor | None:
    message = data.get("message")
    if not isinstance(message, dict):
        return None

    for media_type in MediaType:
        block = message.get(f"{media_type.value}Message")
        if not isinstance(block, dict):
            continue

        content = None
        encoded = message.get("base64")
        if encoded:
            try:
                content = base64.b64decode(encoded)
            except (binascii.Error, ValueError):
                logger.warning("Invalid base64 media in Evolution payload", media_type=media_type.value)

        return MediaDescriptor(
            media_type=media_type,
            url=data.get("mediaUrl") or message.get("mediaUrl"),
            mime_type=block.get("mimetype") or MEDIA_DEFAULTS[media_type][0],
            file_name=block.get("fileName") or _default_file_name(media_type),
            content=content,
        )
    return None


def parse_evolution_payload(payload: dict[str, Any]) -> InboundEvent:
    """Parse an Evolution API webhook body into an InboundEvent."""
    instance = extract_instance(payload, EVOLUTION_INSTANCE_KEYS)
    event_type = normalize_event_name(payload.get("event"))

    data = payload.get("data")
    if not isinstance(data, dict):
        data = {}
    key = data.get("key") if isinstance(data.get("key"), dict) else {}

    external_id = data.get("keyId") or data.get("messageId") or key.get("id")
    raw_status = data.get("status")
    ack = data.get("ack")

    status = normalize_status(raw_status)
    if status is None:
        status = normalize_ack(ack)

    connection_state = None
    connection_phone = None
    media = None

    if event_type == "MESSAGES_UPDATE" and (raw_status or ack is not None):
        kind = InboundEventKind.STATUS
    elif event_type == "CONNECTION_UPDATE":
        kind = InboundEventKind.CONNECTION
        state = EVOLUTION_CONNECTION_STATES.get(str(data.get("state", "")).lower())
        connection_state = state.value if state else None
        connection_phone = phone_from_jid(data.get("owner") or data.get("wuid"))
    else:
        media = _evolution_media(data)
        kind = InboundEventKind.MEDIA if media else InboundEventKind.MESSAGE

    return InboundEvent(
        kind=kind,
        provider=ProviderName.EVOLUTION,
        instance=instance,
        event_type=event_type,
        external_id=str(external_id) if external_id else None,
        status=status,
        raw_status=raw_status if raw_status is not None else ack,
        contact_phone=phone_from_jid(key.get("remoteJid") or data.get("remoteJid")),
        from_me=key.get("fromMe") is True,
        from_api=_truthy(data.get("fromApi")),
        media=media,
        connection_state=connection_state,
        connection_phone=connection_phone,
        raw=payload,
    )


PARSERS = {
    ProviderName.ZAPI: parse_zapi_payload,
    ProviderName.EVOLUTION: parse_evolution_payload,
}


def parse_payload(provider: ProviderName, payload: dict[str, Any]) -> InboundEvent:
    """Parse a webhook body for the given provider family."""
    if not isinstance(payload, dict):
        raise InvalidWebhookPayload("Webhook body must be a JSON object")
    return PARSERS[provider](payload)
