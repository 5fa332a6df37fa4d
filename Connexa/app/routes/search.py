from datetime import datetime
from flask import Blueprint, jsonify

from Connexa.app.services import get_store
from Connexa.app.utils import get_request_data, require_fields, require_session
from Connexa.whatsapp_session.errors import ValidationError
from Connexa.whatsapp_session.message_utils import MEDIA_TYPES

search_bp = Blueprint('search', __name__)


def _to_epoch(value, field):
    """ISO date string or unix seconds."""
    if isinstance(value, (int, float)):
        return int(value)
    try:
        return int(datetime.fromisoformat(str(value).replace('Z', '+00:00')).timestamp())
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date or unix timestamp")


def _limit(data, default=100):
    try:
        return max(1, min(int(data.get('limit') or default), 1000))
    except (TypeError, ValueError):
        raise ValidationError("limit must be an integer")


@search_bp.route('/messages', methods=['POST'])
@require_session
def search_messages(phone, sock):
    data = get_request_data()
    require_fields(data, 'query')
    results = get_store().search_messages(phone, data['query'], limit=_limit(data), chat_id=data.get('chatId'))
    return jsonify({"success": True, "results": results, "count": len(results)})


@search_bp.route('/by-date', methods=['POST'])
@require_session
def search_by_date(phone, sock):
    data = get_request_data()
    require_fields(data, 'startDate', 'endDate')
    start = _to_epoch(data['startDate'], 'startDate')
    end = _to_epoch(data['endDate'], 'endDate')
    if start > end:
        raise ValidationError("startDate must not be after endDate")

    results = get_store().messages_by_date(phone, start, end, chat_id=data.get('chatId'))
    return jsonify({"success": True, "results": results, "count": len(results)})


@search_bp.route('/by-media', methods=['POST'])
@require_session
def search_by_media(phone, sock):
    data = get_request_data()
    require_fields(data, 'mediaType')
    if data['mediaType'] not in MEDIA_TYPES:
        raise ValidationError(f"mediaType must be one of: {', '.join(MEDIA_TYPES)}")

    results = get_store().messages_by_media(phone, data['mediaType'], chat_id=data.get('chatId'), limit=_limit(data))
    return jsonify({"success": True, "results": results, "count": len(results)})


@search_bp.route('/unread/<phone>', methods=['GET'])
@require_session
def unread(phone, sock):
    chats = get_store().unread_chats(phone)
    return jsonify({
        "success": True,
        "unreadChats": chats,
        "totalUnread": sum(chat["unreadCount"] for chat in chats),
    })
