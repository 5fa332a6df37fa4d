"""Tests for sending, acting on and downloading messages."""

import io
import os
from unittest.mock import MagicMock

import pytest

from conftest import PHONE

from Connexa.whatsapp_session.errors import GatewayError

TO = "254711111111"
JID = "254711111111@s.whatsapp.net"


def body(**fields):
    return {"phone": PHONE, **fields}


def sent(gateway):
    """(jid, content, *options) of the last sendMessage."""
    args = gateway.call.call_args.args
    assert args[:2] == (PHONE, "sendMessage")
    return args[2:]


# ── Text ────────────────────────────────────────────────────────────


def test_send_text(client, gateway, connected):
    response = client.post("/api/messages/send", json=body(to=TO, text="hi"))

    assert response.get_json() == {"success": True, "messageId": "MSG1"}
    assert sent(gateway) == (JID, {"text": "hi"})


def test_send_text_with_mentions(client, gateway, connected):
    client.post("/api/messages/send", json=body(to="1203630@g.us", text="@Ann look", mentions=["254722222222"]))

    assert sent(gateway) == ("1203630@g.us", {"text": "@Ann look", "mentions": ["254722222222@s.whatsapp.net"]})


def test_send_requires_text(client, connected):
    response = client.post("/api/messages/send", json=body(to=TO))
    assert response.status_code == 400
    assert response.get_json() == {"error": "Missing field: text"}


def test_send_failure_is_500(client, gateway, connected):
    gateway.call.side_effect = GatewayError("not-authorized")

    response = client.post("/api/messages/send", json=body(to=TO, text="hi"))

    assert response.status_code == 500
    assert response.get_json() == {"error": "not-authorized"}


def test_reply_requires_quoted_message(client, connected):
    response = client.post("/api/messages/reply", json=body(to=TO, text="yes"))
    assert response.status_code == 400
    assert response.get_json() == {"error": "Quoted message required"}


def test_reply_by_stored_message_id(client, gateway, services, connected):
    quoted = {"key": {"id": "Q1"}, "message": {"conversation": "lunch?"}, "messageTimestamp": 5}
    services.store = MagicMock()
    services.store.find_raw_message.return_value = quoted

    client.post("/api/messages/reply", json=body(to=TO, text="yes", quotedMessageId="Q1"))

    services.store.find_raw_message.assert_called_once_with(PHONE, JID, "Q1")
    assert sent(gateway) == (JID, {"text": "yes"}, {"quoted": quoted})


# ── Media ───────────────────────────────────────────────────────────


def test_send_image_by_url(client, gateway, connected):
    client.post("/api/messages/send-image", json=body(to=TO, imageUrl="https://example.com/a.jpg", caption="look"))

    assert sent(gateway) == (JID, {"image": {"url": "https://example.com/a.jpg"}, "caption": "look"})


def test_send_image_upload(client, gateway, connected):
    response = client.post("/api/messages/send-image", data={
        "phone": PHONE, "to": TO, "image": (io.BytesIO(b"\x89PNG"), "a.png"),
    }, content_type="multipart/form-data")

    assert response.status_code == 200
    assert sent(gateway) == (JID, {"image": b"\x89PNG", "caption": ""})


def test_send_image_requires_image(client, connected):
    response = client.post("/api/messages/send-image", json=body(to=TO))
    assert response.status_code == 400
    assert response.get_json() == {"error": "Image required"}


def test_send_image_unknown_path(client, connected):
    response = client.post("/api/messages/send-image", json=body(to=TO, imageUrl="/no/such/file.jpg"))
    assert response.status_code == 400


def test_send_voice_note(client, gateway, connected):
    client.post("/api/messages/send-audio", json=body(to=TO, audioUrl="https://example.com/a.ogg", ptt=True))

    _, content = sent(gateway)
    assert content["ptt"] is True
    assert content["mimetype"] == "audio/ogg; codecs=opus"


def test_send_document_defaults(client, gateway, connected):
    client.post("/api/messages/send-document", json=body(to=TO, documentUrl="https://example.com/r.pdf"))

    _, content = sent(gateway)
    assert content["fileName"] == "document"
    assert content["mimetype"] == "application/pdf"


# ── Structured messages ─────────────────────────────────────────────


def test_send_location(client, gateway, connected):
    client.post("/api/messages/send-location", json=body(to=TO, latitude="-1.29", longitude=36.82, name="Nairobi"))

    _, content = sent(gateway)
    assert content["location"]["degreesLatitude"] == -1.29
    assert content["location"]["degreesLongitude"] == 36.82
    assert content["location"]["name"] == "Nairobi"


def test_send_location_requires_coordinates(client, connected):
    response = client.post("/api/messages/send-location", json=body(to=TO, latitude=1))
    assert response.get_json() == {"error": "Latitude and longitude required"}


def test_send_poll(client, gateway, connected):
    client.post("/api/messages/send-poll", json=body(to=TO, name="Lunch?", options=["Yes", "No"]))

    _, content = sent(gateway)
    assert content == {"poll": {"name": "Lunch?", "values": ["Yes", "No"], "selectableCount": 1}}


def test_send_poll_requires_options(client, connected):
    response = client.post("/api/messages/send-poll", json=body(to=TO, name="Lunch?"))
    assert response.get_json() == {"error": "Poll name and options array required"}


def test_send_contact_requires_array(client, connected):
    response = client.post("/api/messages/send-contact", json=body(to=TO, contacts="nope"))
    assert response.get_json() == {"error": "Contacts array required"}


def test_send_broadcast_reports_each_recipient(client, gateway, connected):
    gateway.call.side_effect = [{"key": {"id": "A"}}, GatewayError("bad jid")]

    data = client.post("/api/messages/send-broadcast",
                       json=body(recipients=["254711111111", "bad"], message="Hello all")).get_json()

    assert data["success"] is True
    assert data["results"] == [
        {"recipient": "254711111111", "success": True, "messageId": "A"},
        {"recipient": "bad", "success": False, "error": "bad jid"},
    ]


# ── Actions ─────────────────────────────────────────────────────────


def test_delete_for_everyone(client, gateway, connected):
    key = {"remoteJid": JID, "id": "M1", "fromMe": True}
    assert client.post("/api/messages/delete", json=body(chatId=JID, messageKey=key)).get_json() == {"success": True}
    assert sent(gateway) == (JID, {"delete": key})


def test_react_and_edit(client, gateway, connected):
    key = {"remoteJid": JID, "id": "M1", "fromMe": True}

    client.post("/api/messages/react", json=body(chatId=JID, messageKey=key, emoji="👍"))
    assert sent(gateway) == (JID, {"react": {"text": "👍", "key": key}})

    client.post("/api/messages/edit", json=body(chatId=JID, messageKey=key, newText="fixed"))
    assert sent(gateway) == (JID, {"text": "fixed", "edit": key})


def test_star_updates_store(client, gateway, services, connected):
    services.store = MagicMock()
    key = {"remoteJid": JID, "id": "M1", "fromMe": False}

    client.post("/api/messages/star", json=body(chatId=JID, messageKey=key))

    gateway.call.assert_called_once_with(
        PHONE, "chatModify", {"star": {"messages": [{"id": "M1", "fromMe": False}], "star": True}}, JID)
    services.store.set_starred.assert_called_once_with(PHONE, JID, ["M1"], True)


def test_star_failure_leaves_store_alone(client, gateway, services, connected):
    services.store = MagicMock()
    gateway.call.side_effect = GatewayError("failed")

    response = client.post("/api/messages/star", json=body(chatId=JID, messageKey={"id": "M1"}))

    assert response.status_code == 500
    services.store.set_starred.assert_not_called()


def test_forward_requires_message(client, connected):
    response = client.post("/api/messages/forward", json=body(to=TO))
    assert response.get_json() == {"error": "Message required"}


def test_read(client, gateway, connected):
    key = {"remoteJid": JID, "id": "M1"}
    client.post("/api/messages/read", json=body(messageKey=key))
    gateway.call.assert_called_once_with(PHONE, "readMessages", [key])


# ── Reading and downloads ───────────────────────────────────────────


def test_get_messages_caps_limit(client, services, connected):
    services.store = MagicMock()
    services.store.get_messages.return_value = [{"messageId": "M1"}]

    data = client.get(f"/api/messages/{PHONE}/{JID}?limit=9999&before=1700000000").get_json()

    assert data == {"chatId": JID, "messages": [{"messageId": "M1"}], "count": 1}
    services.store.get_messages.assert_called_once_with(PHONE, JID, limit=500, before=1700000000)


def test_get_messages_bad_limit(client, connected):
    response = client.get(f"/api/messages/{PHONE}/{JID}?limit=lots")
    assert response.status_code == 400


def test_download_writes_media_file(client, app, gateway, connected):
    gateway.download_media.return_value = b"jpeg-bytes"
    message = {"key": {"remoteJid": JID, "id": "M1"}, "message": {"imageMessage": {"mimetype": "image/jpeg"}}}

    data = client.post("/api/messages/download", json=body(message=message)).get_json()

    assert data == {"success": True, "path": f"/media/{PHONE}/M1.jpeg", "size": 10}
    with open(os.path.join(app.config["MEDIA_DIR"], PHONE, "M1.jpeg"), "rb") as f:
        assert f.read() == b"jpeg-bytes"
    assert client.get(data["path"]).data == b"jpeg-bytes"


def test_download_unknown_message(client, connected):
    response = client.post("/api/messages/download", json=body(chatId=JID, messageId="nope"))
    assert response.status_code == 404
    assert response.get_json() == {"error": "Message not found"}


def test_download_keeps_file_inside_media_dir(client, app, gateway, connected):
    gateway.download_media.return_value = b"jpeg-bytes"
    message = {"key": {"remoteJid": JID, "id": "../../escaped"},
               "message": {"imageMessage": {"mimetype": "image/jpeg"}}}

    data = client.post("/api/messages/download", json=body(message=message)).get_json()

    media_dir = os.path.join(app.config["MEDIA_DIR"], PHONE)
    assert data["path"] == f"/media/{PHONE}/escaped.jpeg"
    assert os.listdir(media_dir) == ["escaped.jpeg"]
    assert not os.path.exists(os.path.join(app.config["MEDIA_DIR"], "..", "escaped.jpeg"))


@pytest.mark.parametrize("message", [
    {"message": {"imageMessage": {}}},
    {"key": {"remoteJid": JID}, "message": {"imageMessage": {}}},
    {"key": {"id": ".."}, "message": {"imageMessage": {}}},
])
def test_download_requires_message_id(client, gateway, connected, message):
    response = client.post("/api/messages/download", json=body(message=message))

    assert response.status_code == 400
    assert response.get_json() == {"error": "message.key.id is required"}
    gateway.download_media.assert_not_called()
