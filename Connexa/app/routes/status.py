import logging
from flask import Blueprint, jsonify

from Connexa.app.services import get_store
from Connexa.app.utils import get_request_data, require_session, resolve_media
from Connexa.whatsapp_session.errors import GatewayError
from Connexa.whatsapp_session.gateway_client import to_jids
from Connexa.whatsapp_session.store import STATUS_BROADCAST

logger = logging.getLogger(__name__)

status_bp = Blueprint('status', __name__)

STATUS_TYPES = ('text', 'image', 'video', 'audio')


def build_status_content(status_type, content, caption=""):
    if status_type == 'text':
        return {"text": content}
    media = resolve_media(content)
    if status_type == 'audio':
        return {"audio": media, "mimetype": "audio/mp4", "ptt": True}
    return {status_type: media, "caption": caption or ""}


@status_bp.route('/post', methods=['POST'])
@require_session
def post_status(phone, sock):
    """Posts a story to status@broadcast, visible to statusJidList."""
    data = get_request_data()
    status_type = data.get('type')
    if status_type not in STATUS_TYPES:
        return jsonify({
            "success": False,
            "error": f"Type is required and must be one of: {', '.join(STATUS_TYPES)}",
        }), 400
    if not data.get('content'):
        return jsonify({"success": False, "error": "Content is required"}), 400

    options = data.get('options') or {}
    message_options = {"statusJidList": to_jids(data.get('statusJidList') or [])}
    if status_type == 'text':
        message_options["backgroundColor"] = options.get('backgroundColor', "#000000")
        message_options["font"] = options.get('font', 0)

    try:
        result = sock.send_message(
            STATUS_BROADCAST,
            build_status_content(status_type, data['content'], data.get('caption')),
            message_options,
        )
    except GatewayError as e:
        logger.error(f"Error posting status for {phone}: {e}")
        return jsonify({"success": False, "error": str(e)}), 500

    return jsonify({
        "success": True,
        "data": {
            "messageId": ((result or {}).get('key') or {}).get('id'),
            "type": status_type,
            "posted": True,
        },
    })


@status_bp.route('/contacts/<phone>', methods=['GET'])
@require_session
def status_contacts(phone, sock):
    contacts = [{"jid": c["jid"], "name": c["name"]} for c in get_store().list_contacts(phone)]
    return jsonify({"success": True, "data": {"contacts": contacts}})
