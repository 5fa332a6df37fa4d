from flask import Blueprint, jsonify

from Connexa.app.utils import get_request_data, require_fields, require_session
from Connexa.whatsapp_session.errors import GatewayError
from Connexa.whatsapp_session.gateway_client import to_jid

presence_bp = Blueprint('presence', __name__)

PRESENCE_TYPES = {"available", "unavailable", "composing", "recording", "paused"}


@presence_bp.route('/action', methods=['POST'])
@require_session
def presence_action(phone, sock):
    data = get_request_data()
    require_fields(data, 'action')
    action = data['action']

    try:
        if action == 'update':
            presence = data.get('presence') or 'available'
            if presence not in PRESENCE_TYPES:
                return jsonify({"error": f"presence must be one of {sorted(PRESENCE_TYPES)}"}), 400
            args = [presence]
            if data.get('chatId'):
                args.append(to_jid(data['chatId']))
            sock.send_presence_update(*args)
        elif action == 'subscribe':
            require_fields(data, 'jid')
            sock.presence_subscribe(to_jid(data['jid']))
        else:
            return jsonify({"error": "Invalid presence action"}), 400
    except GatewayError as e:
        return jsonify({"error": str(e)}), 500

    return jsonify({"success": True})
