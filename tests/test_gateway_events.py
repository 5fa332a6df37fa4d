"""Tests for the webhook that receives socket events from the Baileys bridge."""

from unittest.mock import MagicMock, patch

import pytest

from conftest import PHONE

HEADERS = {"X-Gateway-Secret": "test-secret"}


def post_event(client, event, data, phone=PHONE, headers=HEADERS):
    return client.post("/api/gateway/events", json={"phone": phone, "event": event, "data": data}, headers=headers)


def incoming(chat_id="254711111111@s.whatsapp.net", text="hello", from_me=False, msg_id="IN1"):
    return {
        "key": {"remoteJid": chat_id, "id": msg_id, "fromMe": from_me},
        "message": {"conversation": text},
        "messageTimestamp": 1700000000,
        "pushName": "Ann",
    }


@pytest.fixture
def store(services):
    services.store = MagicMock()
    return services.store


# ── Authentication and envelope ─────────────────────────────────────


def test_bad_secret_is_rejected(client):
    response = post_event(client, "creds.update", {}, headers={"X-Gateway-Secret": "nope"})
    assert response.status_code == 401
    assert response.get_json() == {"error": "Unauthorized"}


def test_missing_secret_is_rejected(client):
    assert post_event(client, "creds.update", {}, headers={}).status_code == 401


def test_phone_and_event_required(client):
    response = client.post("/api/gateway/events", json={"event": "creds.update"}, headers=HEADERS)
    assert response.status_code == 400


def test_unknown_event_is_acknowledged(client):
    data = post_event(client, "labels.edit", {}).get_json()
    assert data == {"received": True, "handled": False}


# ── Connection updates ──────────────────────────────────────────────


def test_connection_open_marks_session_connected(client, services):
    manager = services.session_manager
    manager.start(PHONE)
    try:
        response = post_event(client, "connection.update", {"connection": "open"})
        assert response.get_json() == {"received": True, "handled": True}
        assert manager.is_connected(PHONE)
    finally:
        manager.shutdown()


def test_qr_update_requests_pairing_code(client, gateway, services):
    manager = services.session_manager
    manager.start(PHONE)
    try:
        post_event(client, "connection.update", {"qr": "QR-1"})
        assert manager.status(PHONE)["linkCode"] == "ABCD1234"
    finally:
        manager.shutdown()
    gateway.request_pairing_code.assert_called_once_with(PHONE)


# ── Messages ────────────────────────────────────────────────────────


def test_messages_upsert_stores_and_broadcasts(client, store):
    message = incoming()
    with patch("Connexa.app.routes.gateway_events.broadcast") as broadcast:
        post_event(client, "messages.upsert", {"messages": [message], "type": "notify"})

    store.save_messages.assert_called_once_with(PHONE, [message])
    event, payload = broadcast.call_args.args
    assert event == "message"
    assert payload["phone"] == PHONE
    assert payload["message"]["text"] == "hello"
    assert payload["message"]["chatId"] == "254711111111@s.whatsapp.net"
    assert payload["message"]["timestamp"] == 1700000000
    assert payload["message"]["type"] == "conversation"


def test_messages_update(client, store):
    updates = [{"key": {"id": "A"}, "update": {"status": 4}}]
    post_event(client, "messages.update", updates)
    store.update_messages.assert_called_once_with(PHONE, updates)


def test_history_sync(client, store):
    post_event(client, "messaging-history.set", {
        "chats": [{"id": "1@s.whatsapp.net"}],
        "contacts": [{"id": "1@s.whatsapp.net", "notify": "Ann"}],
        "messages": [incoming()],
        "isLatest": True,
    })

    store.upsert_chats.assert_called_once()
    store.upsert_contacts.assert_called_once()
    store.save_messages.assert_called_once()


def test_chats_and_calls(client, store):
    post_event(client, "chats.update", [{"id": "1@s.whatsapp.net", "unreadCount": 0}])
    post_event(client, "chats.delete", ["1@s.whatsapp.net"])
    post_event(client, "call", [{"id": "C1", "from": "1@s.whatsapp.net", "status": "offer"}])

    store.upsert_chats.assert_called_once_with(PHONE, [{"id": "1@s.whatsapp.net", "unreadCount": 0}])
    store.delete_chats.assert_called_once_with(PHONE, ["1@s.whatsapp.net"])
    store.save_calls.assert_called_once()


# ── Auto-reply ──────────────────────────────────────────────────────


@pytest.fixture
def auto_reply(app, services, store):
    app.config["AUTO_REPLY_ENABLED"] = True
    agent = MagicMock()
    agent.configured = True
    agent.auto_reply.return_value = {"reply": "Thanks, I'll get back to you", "confidence": 0.9, "shouldSend": True}
    services.ai_agent = agent
    return agent


def test_auto_reply_answers_direct_messages(client, gateway, auto_reply, connected):
    message = incoming()
    post_event(client, "messages.upsert", {"messages": [message], "type": "notify"})

    auto_reply.auto_reply.assert_called_once_with(
        PHONE, "254711111111@s.whatsapp.net", "hello", {"autoReplyEnabled": True})
    gateway.call.assert_called_once_with(
        PHONE, "sendMessage", "254711111111@s.whatsapp.net",
        {"text": "Thanks, I'll get back to you"}, {"quoted": message})


@pytest.mark.parametrize("message", [
    incoming(from_me=True),
    incoming(chat_id="1203630@g.us"),
    incoming(chat_id="status@broadcast"),
    incoming(chat_id="1200@newsletter"),
    incoming(text=""),
])
def test_auto_reply_skips(client, gateway, auto_reply, connected, message):
    post_event(client, "messages.upsert", {"messages": [message], "type": "notify"})

    auto_reply.auto_reply.assert_not_called()
    gateway.call.assert_not_called()


def test_auto_reply_only_for_notify(client, auto_reply, connected):
    post_event(client, "messages.upsert", {"messages": [incoming()], "type": "append"})
    auto_reply.auto_reply.assert_not_called()


def test_auto_reply_without_connection_is_logged(client, gateway, auto_reply):
    response = post_event(client, "messages.upsert", {"messages": [incoming()], "type": "notify"})

    assert response.status_code == 200
    gateway.call.assert_not_called()
