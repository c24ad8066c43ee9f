"""Tests for the dispatch router and provider adapters."""

import json
from datetime import datetime

import httpx
import pytest

from src.core.config import settings
from src.models import Message, OutboundSendRequest, ProviderConfig, ProviderName
from src.services.dispatch import DispatchRouter

EVOLUTION_TEXT = "evolution.test/message/sendText/shop1"
EVOLUTION_MEDIA = "evolution.test/message/sendMedia/shop1"
ZAPI_TEXT = "zapi.test/instances/3C0FFEE/token/inst-token/send-text"


@pytest.fixture
def router(storage, http_client):
    return DispatchRouter(storage, http_client)


def text_request(**overrides) -> OutboundSendRequest:
    data = {"workspaceId": "ws-1", "to": "+55 (11) 99999-0000", "text": "hi", "context": {"instance": "shop1"}}
    data.update(overrides)
    return OutboundSendRequest(**data)


@pytest.mark.asyncio
async def test_not_configured_makes_no_call(storage, router, upstream):
    """Test a workspace without an active provider gets PROVIDER_NOT_CONFIGURED."""
    result = await router.dispatch(OutboundSendRequest(workspaceId="T", to="+15550001111", text="hi"))

    assert result.ok is False
    assert result.error == "PROVIDER_NOT_CONFIGURED"
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_missing_credentials_is_not_configured(storage, workspace, router, upstream):
    """Test an active config without credentials is treated as not configured."""
    workspace["evolution"].token = None

    result = await router.dispatch(text_request())

    assert result.error == "PROVIDER_NOT_CONFIGURED"
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_evolution_text_send(storage, workspace, router, upstream):
    """Test the Evolution request shape and message id extraction."""
    upstream.on("POST", EVOLUTION_TEXT, httpx.Response(201, json={"key": {"id": "EVO1"}, "status": "PENDING"}))

    result = await router.dispatch(text_request())

    assert result.ok is True
    assert result.provider_msg_id == "EVO1"
    assert result.provider == ProviderName.EVOLUTION
    assert result.failover_from is None

    request = upstream.calls(EVOLUTION_TEXT)[0]
    assert request.headers["apikey"] == "evo-key"
    assert json.loads(request.content) == {"number": "5511999990000", "text": "hi"}


@pytest.mark.asyncio
async def test_error_flag_in_2xx_is_failure(storage, workspace, router, upstream):
    """Test a 2xx body carrying an error flag fails with the raw body."""
    upstream.on("POST", EVOLUTION_TEXT, httpx.Response(200, json={"error": True, "message": "number not on WhatsApp"}))

    result = await router.dispatch(text_request())

    assert result.ok is False
    assert "number not on WhatsApp" in result.error


@pytest.mark.asyncio
async def test_fallback_disabled_no_secondary_call(storage, workspace, router, upstream):
    """Test a failing primary without fallback makes no secondary call."""
    upstream.on("POST", EVOLUTION_TEXT, httpx.Response(500, text="instance offline"))

    result = await router.dispatch(text_request())

    assert result.ok is False
    assert result.error == "instance offline"
    assert upstream.calls("zapi.test") == []


@pytest.mark.asyncio
async def test_fallback_success_sets_failover_from(storage, workspace, router, upstream):
    """Test exactly one secondary attempt and failoverFrom on success."""
    workspace["evolution"].enable_fallback = True
    upstream.on("POST", EVOLUTION_TEXT, httpx.Response(500, text="instance offline"))
    upstream.on("POST", ZAPI_TEXT, httpx.Response(200, json={"zaapId": "Z1", "messageId": "ZMSG1"}))

    result = await router.dispatch(text_request())

    assert result.ok is True
    assert result.provider == ProviderName.ZAPI
    assert result.failover_from == ProviderName.EVOLUTION
    assert result.provider_msg_id == "ZMSG1"

    zapi_calls = upstream.calls(ZAPI_TEXT)
    assert len(zapi_calls) == 1
    assert zapi_calls[0].headers["Client-Token"] == "zapi-client"
    assert json.loads(zapi_calls[0].content) == {"phone": "5511999990000", "message": "hi"}


@pytest.mark.asyncio
async def test_fallback_failure_returns_primary_result(storage, workspace, router, upstream):
    """Test the primary failure is reported when the fallback fails too."""
    workspace["evolution"].enable_fallback = True
    upstream.on("POST", EVOLUTION_TEXT, httpx.Response(500, text="instance offline"))
    upstream.on("POST", ZAPI_TEXT, httpx.Response(400, text="zapi rejected"))

    result = await router.dispatch(text_request())

    assert result.ok is False
    assert result.provider == ProviderName.EVOLUTION
    assert result.error == "instance offline"
    assert len(upstream.calls(ZAPI_TEXT)) == 1


@pytest.mark.asyncio
async def test_transport_error_is_failure(storage, workspace, router, upstream):
    """Test a timeout is reported as a failed result."""
    upstream.on("POST", EVOLUTION_TEXT, httpx.ReadTimeout("timed out"))

    result = await router.dispatch(text_request())

    assert result.ok is False
    assert result.error == "timed out"


@pytest.mark.asyncio
async def test_every_attempt_is_logged(storage, workspace, router, upstream):
    """Test provider action logs record the primary and fallback attempts."""
    workspace["evolution"].enable_fallback = True
    upstream.on("POST", EVOLUTION_TEXT, httpx.Response(500, text="down"))
    upstream.on("POST", ZAPI_TEXT, httpx.Response(200, json={"messageId": "Z"}))

    await router.dispatch(text_request())

    logs = storage.provider_logs
    assert [(log.provider, log.result) for log in logs] == [
        (ProviderName.EVOLUTION, "error"),
        (ProviderName.ZAPI, "success"),
    ]
    assert logs[1].metadata["is_fallback"] is True


@pytest.mark.asyncio
async def test_provider_id_stored_by_external_id(storage, workspace, router, upstream):
    """Test the provider message id is persisted on the message matched by externalId."""
    await storage.save_message(Message(id="msg-1", workspace_id="ws-1", external_id="client-42"))
    upstream.on("POST", EVOLUTION_TEXT, httpx.Response(200, json={"key": {"id": "EVO42"}}))

    await router.dispatch(text_request(externalId="client-42", messageId="other"))

    message = await storage.get_message("msg-1")
    assert message.provider_msg_id == "EVO42"
    assert message.status == "sent"


@pytest.mark.asyncio
async def test_provider_id_stored_by_message_id(storage, workspace, router, upstream):
    """Test the local message id is used when no externalId is supplied."""
    await storage.save_message(Message(id="msg-7", workspace_id="ws-1"))
    upstream.on("POST", EVOLUTION_TEXT, httpx.Response(200, json={"messageId": "EVO7"}))

    await router.dispatch(text_request(messageId="msg-7"))

    assert (await storage.get_message("msg-7")).provider_msg_id == "EVO7"


@pytest.mark.asyncio
async def test_no_deduplication(storage, workspace, router, upstream):
    """Test the same request twice produces two provider sends."""
    upstream.on("POST", EVOLUTION_TEXT, httpx.Response(200, json={"key": {"id": "E"}}))

    await router.dispatch(text_request(externalId="same"))
    await router.dispatch(text_request(externalId="same"))

    assert len(upstream.calls(EVOLUTION_TEXT)) == 2


@pytest.mark.asyncio
async def test_media_from_storage_is_preprocessed(storage, workspace, router, upstream, monkeypatch):
    """Test storage URLs are replaced by the processed URL."""
    monkeypatch.setattr(settings, "media_processor_url", "http://media.test/process")
    upstream.on("POST", "media.test/process", httpx.Response(200, json={"data": {"publicUrl": "http://cdn.test/p.jpg"}}))
    upstream.on("POST", EVOLUTION_MEDIA, httpx.Response(200, json={"key": {"id": "M1"}}))

    original = "http://files.test/storage/v1/object/public/uploads/p.jpg"
    result = await router.dispatch(
        text_request(text=None, mediaUrl=original, mediaType="image", caption="look", externalId="ext-m")
    )

    assert result.ok is True
    processor_body = json.loads(upstream.calls("media.test/process")[0].content)
    assert processor_body["fileUrl"] == original
    assert processor_body["direction"] == "outbound"
    assert processor_body["messageId"] == "ext-m"

    send_body = json.loads(upstream.calls(EVOLUTION_MEDIA)[0].content)
    assert send_body["media"] == "http://cdn.test/p.jpg"
    assert send_body["mediatype"] == "image"
    assert send_body["caption"] == "look"


@pytest.mark.asyncio
async def test_media_preprocess_failure_keeps_original_url(storage, workspace, router, upstream, monkeypatch):
    """Test a failing media processor falls back to the original URL."""
    monkeypatch.setattr(settings, "media_processor_url", "http://media.test/process")
    upstream.on("POST", "media.test/process", httpx.Response(500))
    upstream.on("POST", EVOLUTION_MEDIA, httpx.Response(200, json={"key": {"id": "M2"}}))

    original = "http://files.test/storage/v1/object/public/uploads/doc.pdf"
    result = await router.dispatch(
        text_request(text=None, mediaUrl=original, mediaType="document", fileName="doc.pdf")
    )

    assert result.ok is True
    send_body = json.loads(upstream.calls(EVOLUTION_MEDIA)[0].content)
    assert send_body["media"] == original
    assert send_body["fileName"] == "doc.pdf"


@pytest.mark.asyncio
async def test_external_media_url_not_preprocessed(storage, workspace, router, upstream, monkeypatch):
    """Test provider-reachable URLs skip the media processor."""
    monkeypatch.setattr(settings, "media_processor_url", "http://media.test/process")
    upstream.on("POST", EVOLUTION_MEDIA, httpx.Response(200, json={"key": {"id": "M3"}}))

    await router.dispatch(text_request(text=None, mediaUrl="http://cdn.test/a.mp4", mediaType="video"))

    assert upstream.calls("media.test") == []


@pytest.mark.asyncio
async def test_zapi_document_endpoint(storage, workspace, router, upstream):
    """Test Z-API documents are sent to send-document/{extension}."""
    await storage.activate_provider_config("ws-1", "zapi")
    endpoint = "zapi.test/instances/3C0FFEE/token/inst-token/send-document/pdf"
    upstream.on("POST", endpoint, httpx.Response(200, json={"messageId": "D1"}))

    result = await router.dispatch(
        text_request(text=None, mediaUrl="http://cdn.test/files/report.pdf", mediaType="document", fileName="report.pdf")
    )

    assert result.ok is True
    body = json.loads(upstream.calls(endpoint)[0].content)
    assert body["document"] == "http://cdn.test/files/report.pdf"
    assert body["fileName"] == "report.pdf"


@pytest.mark.asyncio
async def test_zapi_without_instance_credentials(storage, workspace, router, upstream):
    """Test Z-API sends fail fast when the connection has no instance credentials."""
    await storage.activate_provider_config("ws-1", "zapi")
    workspace["connection"].metadata = {}

    result = await router.dispatch(text_request())

    assert result.ok is False
    assert result.error == "ZAPI_INSTANCE_CREDENTIALS_MISSING"
    assert upstream.requests == []


def test_send_request_requires_content():
    """Test a request needs text or media."""
    with pytest.raises(ValueError):
        OutboundSendRequest(workspaceId="ws-1", to="+15550001111")

    with pytest.raises(ValueError):
        OutboundSendRequest(workspaceId="ws-1", to="+15550001111", mediaUrl="http://cdn.test/a.jpg")


@pytest.mark.asyncio
async def test_instance_of_other_workspace_is_not_used(storage, workspace, router, upstream):
    """Test a workspace cannot send through another workspace's instance credentials."""
    await storage.save_provider_config(
        ProviderConfig(
            id="zapi-b",
            workspace_id="ws-B",
            provider=ProviderName.ZAPI,
            is_active=True,
            base_url="http://zapi.test",
            token="b-account",
        )
    )

    result = await router.dispatch(
        OutboundSendRequest(workspaceId="ws-B", to="+15550001111", text="hi", context={"instance": "shop1"})
    )

    assert result.ok is False
    assert result.error == "ZAPI_INSTANCE_CREDENTIALS_MISSING"
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_fallback_skips_alternate_without_credentials(storage, workspace, router, upstream):
    """Test the fallback picks an alternate config that has credentials."""
    workspace["evolution"].enable_fallback = True
    workspace["zapi"].created_at = datetime(2020, 1, 1)
    await storage.save_provider_config(
        ProviderConfig(id="zapi-empty", workspace_id="ws-1", provider=ProviderName.ZAPI, base_url="http://zapi.test")
    )
    upstream.on("POST", EVOLUTION_TEXT, httpx.Response(500, text="down"))
    upstream.on("POST", ZAPI_TEXT, httpx.Response(200, json={"messageId": "Z9"}))

    result = await router.dispatch(text_request())

    assert result.ok is True
    assert result.provider == ProviderName.ZAPI
    assert result.provider_msg_id == "Z9"
