"""Tests for the HTTP endpoints."""

import json

import httpx
import pytest

from src.models import Message

FORWARD_URL = "http://n8n.test/webhook/events"


# ==================== Webhooks ====================


@pytest.mark.asyncio
async def test_status_callback_end_to_end(client, storage, workspace, upstream):
    """Test a Z-API delivered callback marks the stored message and is acknowledged."""
    await storage.save_message(Message(id="msg-1", workspace_id="ws-1", external_id="abc123", status="sent"))

    response = await client.post(
        "/webhooks/zapi",
        json={"instanceName": "shop1", "event": "MessageStatusCallback", "ids": ["abc123"], "status": "DELIVERED"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["id"]

    message = await storage.get_message("msg-1")
    assert message.status == "delivered"
    assert message.delivered_at is not None

    # Background forward ran after the response
    forwarded = json.loads(upstream.calls(FORWARD_URL)[0].content)
    assert forwarded["status"] == "delivered"
    assert forwarded["external_id"] == "abc123"


@pytest.mark.asyncio
async def test_webhook_unknown_connection(client, workspace, upstream):
    """Test unknown instances get a 404 and nothing is forwarded."""
    response = await client.post("/webhooks/zapi", json={"instanceName": "ghost", "type": "ReceivedCallback"})

    assert response.status_code == 404
    assert response.json()["success"] is False
    assert response.json()["error"] == "CONNECTION_NOT_FOUND"
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_webhook_missing_instance(client, workspace):
    """Test payloads without an instance identifier get a 400."""
    response = await client.post("/webhooks/evolution", json={"event": "messages.upsert", "data": {}})

    assert response.status_code == 400
    assert response.json()["error"] == "INSTANCE_REQUIRED"


@pytest.mark.asyncio
async def test_webhook_forward_failure_still_acknowledged(client, workspace, upstream):
    """Test downstream failures never change the provider's 200."""
    upstream.on("POST", FORWARD_URL, httpx.Response(500, text="n8n down"))

    response = await client.post(
        "/webhooks/evolution",
        json={
            "instance": "shop1",
            "event": "messages.upsert",
            "data": {"key": {"id": "K1", "remoteJid": "5511988887777@s.whatsapp.net"}, "message": {"conversation": "oi"}},
        },
    )

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert len(upstream.calls(FORWARD_URL)) == 1


@pytest.mark.asyncio
async def test_webhook_cors_headers(client, workspace):
    """Test webhook responses allow any origin."""
    response = await client.post(
        "/webhooks/zapi",
        json={"instanceName": "shop1", "type": "ReceivedCallback"},
        headers={"Origin": "https://provider.example"},
    )

    assert response.headers["access-control-allow-origin"] == "*"


# ==================== Dispatch ====================


@pytest.mark.asyncio
async def test_send_without_provider(client, upstream):
    """Test dispatch without an active provider returns PROVIDER_NOT_CONFIGURED."""
    response = await client.post("/messages/send", json={"workspaceId": "T", "to": "+15550001111", "text": "hi"})

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "PROVIDER_NOT_CONFIGURED"}
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_send_success(client, workspace, upstream):
    """Test a successful send returns the provider message id."""
    upstream.on("POST", "evolution.test/message/sendText/shop1", httpx.Response(200, json={"key": {"id": "EVO1"}}))

    response = await client.post(
        "/messages/send",
        json={"workspaceId": "ws-1", "to": "5511999990000", "text": "hi", "context": {"instance": "shop1"}},
    )

    assert response.status_code == 200
    assert response.json() == {"ok": True, "providerMsgId": "EVO1", "provider": "evolution"}


@pytest.mark.asyncio
async def test_send_with_failover(client, workspace, upstream):
    """Test failoverFrom is exposed when the fallback provider served the send."""
    workspace["evolution"].enable_fallback = True
    upstream.on("POST", "evolution.test", httpx.Response(503, text="unavailable"))
    upstream.on("POST", "zapi.test", httpx.Response(200, json={"messageId": "Z1"}))

    response = await client.post(
        "/messages/send",
        json={"workspaceId": "ws-1", "to": "5511999990000", "text": "hi", "context": {"instance": "shop1"}},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["failoverFrom"] == "evolution"
    assert data["provider"] == "zapi"


@pytest.mark.asyncio
async def test_send_provider_failure(client, workspace, upstream):
    """Test provider failures map to 502."""
    upstream.on("POST", "evolution.test", httpx.Response(400, text="bad number"))

    response = await client.post(
        "/messages/send",
        json={"workspaceId": "ws-1", "to": "123", "text": "hi", "context": {"instance": "shop1"}},
    )

    assert response.status_code == 502
    assert response.json()["error"] == "bad number"


@pytest.mark.asyncio
async def test_send_validation(client):
    """Test requests without content are rejected."""
    response = await client.post("/messages/send", json={"workspaceId": "ws-1", "to": "123"})
    assert response.status_code == 422


# ==================== Admin ====================


@pytest.mark.asyncio
async def test_admin_provider_lifecycle(client, storage, workspace):
    """Test creating, activating and listing provider configs."""
    response = await client.post(
        "/admin/workspaces/ws-1/providers",
        json={"provider": "zapi", "token": "t", "client_token": "c", "forward_url": "https://n8n.test/test/z"},
    )
    assert response.status_code == 201
    created = response.json()
    assert created["has_token"] is True
    assert "token" not in created

    response = await client.post(f"/admin/workspaces/ws-1/providers/{created['id']}/activate")
    assert response.status_code == 200
    assert response.json()["is_active"] is True

    response = await client.get("/admin/workspaces/ws-1/providers")
    active = [p["id"] for p in response.json() if p["is_active"]]
    assert active == [created["id"]]

    response = await client.get("/admin/workspaces/ws-1/webhook")
    assert response.json()["webhook_url"] == "https://n8n.test/webhook/z"


@pytest.mark.asyncio
async def test_admin_delete_bound_provider(client, workspace):
    """Test deleting a provider with connections is a conflict."""
    response = await client.delete("/admin/workspaces/ws-1/providers/evo")

    assert response.status_code == 409
    assert response.json()["error"] == "PROVIDER_IN_USE"


@pytest.mark.asyncio
async def test_admin_unknown_provider(client, workspace):
    """Test unknown provider ids are 404."""
    response = await client.post("/admin/workspaces/ws-1/providers/nope/activate")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_admin_connections(client, workspace):
    """Test registering and deleting connections."""
    response = await client.post(
        "/admin/workspaces/ws-1/connections",
        json={"instance_name": "shop2", "metadata": {"instanceId": "ABC"}},
    )
    assert response.status_code == 201
    connection_id = response.json()["id"]
    assert response.json()["provider_id"] == "evo"

    response = await client.delete(f"/admin/workspaces/ws-1/connections/{connection_id}")
    assert response.status_code == 204

    response = await client.get("/admin/workspaces/ws-1/connections")
    assert [c["id"] for c in response.json()] == ["conn-1"]


@pytest.mark.asyncio
async def test_webhook_system_echo_ignored(client, storage, workspace, upstream):
    """Test echoes of system messages are acknowledged as ignored."""
    await storage.save_message(Message(id="msg-9", workspace_id="ws-1", external_id="sys-9", status="sent"))

    response = await client.post(
        "/webhooks/zapi",
        json={"instanceName": "shop1", "type": "DeliveryCallback", "messageId": "sys-9"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["ignored"] is True
    assert data["reason"] == "system_delivery_callback"
    assert upstream.calls(FORWARD_URL) == []


@pytest.mark.asyncio
async def test_webhook_malformed_media_url(client, workspace, upstream):
    """Test a malformed media URL still acknowledges and forwards the event."""
    response = await client.post(
        "/webhooks/zapi",
        json={"instanceName": "shop1", "type": "ReceivedCallback", "image": {"imageUrl": "https://[::1/a.jpg"}},
    )

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert len(upstream.calls(FORWARD_URL)) == 1
