import logging
import time
from flask import Blueprint, jsonify

from Connexa.app.services import get_store
from Connexa.app.utils import get_request_data, require_fields, require_session
from Connexa.whatsapp_session.errors import GatewayError, ValidationError

logger = logging.getLogger(__name__)

chats_bp = Blueprint('chats', __name__)

# Eight hours, WhatsApp's shortest mute option
DEFAULT_MUTE_MS = 8 * 60 * 60 * 1000


def _modify(sock, modification, chat_id):
    """Runs one chatModify and turns gateway failures into a 500."""
    try:
        sock.chat_modify(modification, chat_id)
    except GatewayError as e:
        logger.error(f"chatModify {list(modification)} failed for {chat_id}: {e}")
        return jsonify({"error": str(e)}), 500
    return None


@chats_bp.route('/<phone>', methods=['GET'])
@require_session
def get_chats(phone, sock):
    return jsonify({"chats": get_store().list_chats(phone)})


@chats_bp.route('/archive', methods=['POST'])
@require_session
def archive_chat(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId')
    archive = data.get('archive') is not False

    error = _modify(sock, {"archive": archive, "lastMessages": _last_messages(phone, data['chatId'])}, data['chatId'])
    if error:
        return error
    get_store().set_chat_flags(phone, data['chatId'], is_archived=archive)
    return jsonify({"success": True})


@chats_bp.route('/pin', methods=['POST'])
@require_session
def pin_chat(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId')
    pin = data.get('pin') is not False

    error = _modify(sock, {"pin": pin}, data['chatId'])
    if error:
        return error
    get_store().set_chat_flags(phone, data['chatId'], is_pinned=pin)
    return jsonify({"success": True})


@chats_bp.route('/mute', methods=['POST'])
@require_session
def mute_chat(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId')
    # null unmutes
    duration = data.get('duration', DEFAULT_MUTE_MS)
    if duration is not None:
        try:
            duration = int(duration)
        except (TypeError, ValueError):
            raise ValidationError("duration must be an integer number of milliseconds")

    error = _modify(sock, {"mute": duration}, data['chatId'])
    if error:
        return error
    mute_expiry = int(time.time() * 1000) + duration if duration else None
    get_store().set_chat_flags(phone, data['chatId'], is_muted=bool(duration), mute_expiry=mute_expiry)
    return jsonify({"success": True})


@chats_bp.route('/mark-read', methods=['POST'])
@require_session
def mark_read(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId')

    error = _modify(sock, {"markRead": True, "lastMessages": _last_messages(phone, data['chatId'])}, data['chatId'])
    if error:
        return error
    get_store().set_chat_flags(phone, data['chatId'], unread_count=0)
    return jsonify({"success": True})


@chats_bp.route('/mark-unread', methods=['POST'])
@require_session
def mark_unread(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId')

    error = _modify(sock, {"markRead": False, "lastMessages": _last_messages(phone, data['chatId'])}, data['chatId'])
    if error:
        return error
    get_store().set_chat_flags(phone, data['chatId'], unread_count=1)
    return jsonify({"success": True})


@chats_bp.route('/delete', methods=['POST'])
@require_session
def delete_chat(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId')

    error = _modify(sock, {"delete": True, "lastMessages": _last_messages(phone, data['chatId'])}, data['chatId'])
    if error:
        return error
    get_store().delete_chats(phone, [data['chatId']])
    return jsonify({"success": True})


@chats_bp.route('/clear', methods=['POST'])
@require_session
def clear_chat(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId')

    error = _modify(sock, {"clear": True, "lastMessages": _last_messages(phone, data['chatId'])}, data['chatId'])
    if error:
        return error
    removed = get_store().clear_chat_messages(phone, data['chatId'])
    return jsonify({"success": True, "removed": removed})


@chats_bp.route('/labels/<phone>', methods=['GET'])
@require_session
def get_labels(phone, sock):
    return jsonify({"labels": get_store().list_labels(phone)})


@chats_bp.route('/label/add', methods=['POST'])
@require_session
def add_label(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId', 'labelId')

    try:
        sock.add_chat_label(data['chatId'], data['labelId'])
    except GatewayError as e:
        return jsonify({"error": str(e)}), 500
    get_store().add_label(phone, data['chatId'], data['labelId'])
    return jsonify({"success": True, "chatId": data['chatId'], "labelId": data['labelId']})


@chats_bp.route('/label/remove', methods=['POST'])
@require_session
def remove_label(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId', 'labelId')

    try:
        sock.remove_chat_label(data['chatId'], data['labelId'])
    except GatewayError as e:
        return jsonify({"error": str(e)}), 500
    get_store().remove_label(phone, data['chatId'], data['labelId'])
    return jsonify({"success": True, "chatId": data['chatId'], "labelId": data['labelId']})


def _last_messages(phone, chat_id):
    """chatModify wants the newest message of the chat for archive/read/delete/clear."""
    messages = get_store().get_messages(phone, chat_id, limit=1)
    if not messages:
        return []
    latest = messages[0]
    return [{"key": latest["key"], "messageTimestamp": latest["timestamp"]}]
