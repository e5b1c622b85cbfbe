from __future__ import annotations

import asyncio

import httpx
import pytest

from agent_bridge import DISPATCH_REJECTED_REPLY, DISPATCH_TRANSPORT_FAILURE_REPLY, TIMEOUT_REPLY


def _send(client, conversation_id: str, content: str, **extra):
    body = {"conversationId": conversation_id, "content": content, "isFromUser": True, **extra}
    return client.post("/api/messages", json=body)


def test_user_message_gets_agent_reply(client, agent, conversation):
    agent.reply = "Patient list: Ada Lovelace, Grace Hopper"

    response = _send(client, conversation["id"], "Who is on my list today?")

    assert response.status_code == 200
    payload = response.json()
    assert payload["userMessage"]["content"] == "Who is on my list today?"
    assert payload["aiMessage"]["content"] == "Patient list: Ada Lovelace, Grace Hopper"
    assert payload["aiMessage"]["isFromUser"] is False
    assert agent.last_payload["conversation_id"] == conversation["id"]
    assert agent.last_payload["callback_url"] == "https://care.example.test/api/agentforce/callback"

    transcript = client.get(f"/api/messages/{conversation['id']}").json()
    assert [m["isFromUser"] for m in transcript] == [True, False]
    assert agent.correlator.pending_count == 0


def test_audio_message_forwards_public_audio_url(client, agent, conversation):
    response = _send(
        client,
        conversation["id"],
        "Voice note",
        messageType="audio",
        audioUrl="/objects/uploads/4f9c",
    )

    assert response.status_code == 200
    assert response.json()["userMessage"]["audioUrl"] == "/objects/uploads/4f9c"
    sent = agent.last_payload
    assert sent["message_type"] == "audio"
    assert sent["content"] == "Audio message: https://care.example.test/objects/uploads/4f9c"
    assert sent["audio_url"] == "https://care.example.test/objects/uploads/4f9c"


def test_agent_error_flag_becomes_apology(client, agent, conversation):
    agent.reply = None
    agent.error = True

    response = _send(client, conversation["id"], "hello")

    assert response.json()["aiMessage"]["content"].startswith("I apologize")


def test_rejected_webhook_is_answered_immediately(client, agent, conversation):
    agent.reply = None
    agent.status_code = 500

    response = _send(client, conversation["id"], "hello")

    assert response.status_code == 200
    assert response.json()["aiMessage"]["content"] == DISPATCH_REJECTED_REPLY


def test_unreachable_agent_is_answered_immediately(client, agent, conversation):
    agent.raise_error = httpx.ConnectError("connection refused")

    response = _send(client, conversation["id"], "hello")

    assert response.json()["aiMessage"]["content"] == DISPATCH_TRANSPORT_FAILURE_REPLY


def test_silent_agent_times_out(client, backend_module, agent, monkeypatch, conversation):
    agent.reply = None
    correlator = agent.build_correlator(backend_module.container.settings, timeout_seconds=0.05)
    monkeypatch.setattr(backend_module.container, "correlator", correlator)

    response = _send(client, conversation["id"], "hello")

    assert response.json()["aiMessage"]["content"] == TIMEOUT_REPLY
    assert correlator.pending_count == 0


def test_callback_requires_message_id(client):
    response = client.post("/api/agentforce/callback", json={"response": "orphan"})
    assert response.status_code == 400
    assert response.json()["detail"] == "message_id is required"


def test_callback_for_unknown_message_is_not_found(client):
    response = client.post("/api/agentforce/callback", json={"message_id": "msg_unknown", "response": "hi"})
    assert response.status_code == 404
    assert response.json()["detail"] == "Message not found or already processed"


@pytest.mark.asyncio
async def test_callback_endpoint_completes_waiting_message(backend_module, agent, monkeypatch):
    agent.reply = None
    store = backend_module.container.store
    user = store.create_user(email="async@example.com", password="secret123", full_name="Async Nurse")
    conversation = store.create_conversation(user_id=user["id"], title="Night shift")

    transport = httpx.ASGITransport(app=backend_module.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as api:
        pending_post = asyncio.create_task(
            api.post(
                "/api/messages",
                json={"conversationId": conversation["id"], "content": "Any vitals alerts?", "isFromUser": True},
            )
        )
        for _ in range(500):
            if agent.payloads:
                break
            await asyncio.sleep(0.01)
        message_id = agent.last_payload["message_id"]
        assert agent.correlator.is_pending(message_id)

        callback = await api.post(
            "/api/agentforce/callback",
            json={"message_id": message_id, "response": "No alerts overnight."},
        )
        assert callback.status_code == 200
        assert callback.json() == {"success": True}

        response = await pending_post
        assert response.status_code == 200
        assert response.json()["aiMessage"]["content"] == "No alerts overnight."

        repeat = await api.post(
            "/api/agentforce/callback",
            json={"message_id": message_id, "response": "duplicate"},
        )
        assert repeat.status_code == 404

    assert agent.correlator.pending_count == 0
    transcript = store.get_messages_by_conversation_id(conversation["id"])
    assert [m["content"] for m in transcript] == ["Any vitals alerts?", "No alerts overnight."]
