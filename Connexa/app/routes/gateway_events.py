import hmac
import logging
from groq import APIError
from flask import Blueprint, request, jsonify, current_app

from Connexa.app.services import get_session_manager, get_store, get_ai_agent
from Connexa.app.websocket import broadcast
from Connexa.whatsapp_session.errors import ConnexaError
from Connexa.whatsapp_session.message_utils import extract_message_text, get_message_type, to_unix_seconds
from Connexa.whatsapp_session.session_manager import normalize_phone
from Connexa.whatsapp_session.store import format_message, STATUS_BROADCAST

logger = logging.getLogger(__name__)

events_bp = Blueprint('gateway_events', __name__)


def _authorized():
    expected = current_app.config.get('GATEWAY_SECRET') or ""
    if not expected:
        return True
    provided = request.headers.get('X-Gateway-Secret', "")
    return hmac.compare_digest(provided, expected)


@events_bp.route('/events', methods=['POST'])
def receive_event():
    """Socket events posted by the Baileys bridge: {phone, event, data}."""
    if not _authorized():
        logger.warning(f"Rejected gateway event from {request.remote_addr}: bad secret")
        return jsonify({"error": "Unauthorized"}), 401

    payload = request.get_json(silent=True) or {}
    phone = normalize_phone(payload.get('phone'))
    event = payload.get('event')
    data = payload.get('data')
    if not phone or not event:
        return jsonify({"error": "phone and event are required"}), 400

    handler = EVENT_HANDLERS.get(event)
    if handler is None:
        logger.debug(f"Unhandled gateway event '{event}' for {phone}")
        return jsonify({"received": True, "handled": False})

    handler(phone, data)
    return jsonify({"received": True, "handled": True})


# --- Handlers ---

def on_connection_update(phone, data):
    get_session_manager().handle_connection_update(phone, data or {})


def on_creds_update(phone, data):
    # Credentials are written to the auth folder by the bridge itself
    pass


def on_messages_upsert(phone, data):
    data = data or {}
    messages = data.get('messages') or []
    upsert_type = data.get('type')
    saved = get_store().save_messages(phone, messages)
    logger.debug(f"Stored {saved} message(s) for {phone} ({upsert_type})")

    for msg in messages:
        key = msg.get('key') or {}
        broadcast("message", {"phone": phone, "message": format_message({
            "message_id": key.get('id'),
            "chat_id": key.get('remoteJid'),
            "from_me": bool(key.get('fromMe')),
            "participant": key.get('participant'),
            "text": extract_message_text(msg.get('message')),
            "message_type": get_message_type(msg.get('message')),
            "timestamp": to_unix_seconds(msg.get('messageTimestamp')),
            "push_name": msg.get('pushName'),
            "key": key,
        })})

    if upsert_type == 'notify' and current_app.config.get('AUTO_REPLY_ENABLED'):
        for msg in messages:
            _auto_reply(phone, msg)


def on_messages_update(phone, data):
    get_store().update_messages(phone, data or [])


def on_chats_upsert(phone, data):
    chats = data or []
    get_store().upsert_chats(phone, chats)
    broadcast("chats", {"phone": phone, "chats": chats})


def on_chats_delete(phone, data):
    get_store().delete_chats(phone, data or [])
    broadcast("chats", {"phone": phone, "deleted": data or []})


def on_contacts_upsert(phone, data):
    get_store().upsert_contacts(phone, data or [])


def on_history_set(phone, data):
    data = data or {}
    store = get_store()
    chats = store.upsert_chats(phone, data.get('chats') or [])
    contacts = store.upsert_contacts(phone, data.get('contacts') or [])
    messages = store.save_messages(phone, data.get('messages') or [])
    logger.info(f"History sync for {phone}: {chats} chats, {contacts} contacts, {messages} messages")


def on_presence_update(phone, data):
    broadcast("presence", {"phone": phone, **(data or {})})


def on_call(phone, data):
    get_store().save_calls(phone, data or [])


EVENT_HANDLERS = {
    'connection.update': on_connection_update,
    'creds.update': on_creds_update,
    'messages.upsert': on_messages_upsert,
    'messages.update': on_messages_update,
    'chats.upsert': on_chats_upsert,
    'chats.update': on_chats_upsert,
    'chats.delete': on_chats_delete,
    'contacts.upsert': on_contacts_upsert,
    'contacts.update': on_contacts_upsert,
    'messaging-history.set': on_history_set,
    'presence.update': on_presence_update,
    'call': on_call,
}


def _auto_reply(phone, msg):
    key = msg.get('key') or {}
    chat_id = key.get('remoteJid')
    text = extract_message_text(msg.get('message'))
    if key.get('fromMe') or not text or not chat_id or chat_id == STATUS_BROADCAST:
        return
    if chat_id.endswith(('@g.us', '@broadcast', '@newsletter')):
        return

    agent = get_ai_agent()
    if not agent.configured:
        return

    try:
        result = agent.auto_reply(phone, chat_id, text, {"autoReplyEnabled": True})
        if result and result.get('shouldSend'):
            sock = get_session_manager().get_socket(phone)
            sock.send_message(chat_id, {"text": result['reply']}, {"quoted": msg})
            logger.info(f"Auto-replied to {chat_id} for {phone}")
    except (ConnexaError, APIError) as e:
        logger.error(f"Auto-reply failed for {phone}/{chat_id}: {e}")
