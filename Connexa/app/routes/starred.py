import logging
from flask import Blueprint, jsonify

from Connexa.app.services import get_store
from Connexa.app.utils import get_request_data, require_fields, require_session
from Connexa.whatsapp_session.errors import GatewayError

logger = logging.getLogger(__name__)

starred_bp = Blueprint('starred', __name__)


@starred_bp.route('/<phone>', methods=['GET'])
@require_session
def list_starred(phone, sock):
    messages = get_store().starred_messages(phone)
    return jsonify({"success": True, "starredMessages": messages, "count": len(messages)})


@starred_bp.route('/<phone>/<chat_id>', methods=['GET'])
@require_session
def chat_starred(phone, sock, chat_id):
    messages = get_store().starred_messages(phone, chat_id=chat_id)
    return jsonify({"success": True, "chatId": chat_id, "starredMessages": messages, "count": len(messages)})


@starred_bp.route('/search', methods=['POST'])
@require_session
def search_starred(phone, sock):
    data = get_request_data()
    require_fields(data, 'query')
    messages = get_store().starred_messages(phone, query=data['query'])
    return jsonify({"success": True, "starredMessages": messages, "count": len(messages)})


@starred_bp.route('/unstar-all', methods=['POST'])
@require_session
def unstar_all(phone, sock):
    store = get_store()
    by_chat = {}
    for message in store.starred_messages(phone):
        by_chat.setdefault(message["chatId"], []).append(message)

    unstarred = 0
    failed = []
    for chat_id, messages in by_chat.items():
        try:
            sock.chat_modify({"star": {
                "messages": [{"id": m["messageId"], "fromMe": m["fromMe"]} for m in messages],
                "star": False,
            }}, chat_id)
        except GatewayError as e:
            logger.warning(f"Unstar failed for {chat_id}: {e}")
            failed.append(chat_id)
            continue
        store.set_starred(phone, chat_id, [m["messageId"] for m in messages], False)
        unstarred += len(messages)

    return jsonify({"success": not failed, "unstarred": unstarred, "failedChats": failed})
