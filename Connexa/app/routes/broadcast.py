from flask import Blueprint, jsonify

from Connexa.app.routes.messages import broadcast_message
from Connexa.app.services import get_store
from Connexa.app.utils import get_request_data, require_fields, require_session

broadcast_bp = Blueprint('broadcast', __name__)


@broadcast_bp.route('/<phone>', methods=['GET'])
@require_session
def list_broadcasts(phone, sock):
    return jsonify({"success": True, "broadcastLists": get_store().broadcast_lists(phone)})


@broadcast_bp.route('/create', methods=['POST'])
@require_session
def create_broadcast(phone, sock):
    return jsonify({
        "success": False,
        "message": "Broadcast list creation not directly supported by Baileys. "
                   "Use /api/broadcast/send for similar functionality.",
    })


@broadcast_bp.route('/send', methods=['POST'])
@require_session
def send_broadcast(phone, sock):
    data = get_request_data()
    recipients = data.get('recipients')
    if not recipients or not isinstance(recipients, list):
        return jsonify({"error": "Recipients array required"}), 400
    require_fields(data, 'message')

    return jsonify({"success": True, "results": broadcast_message(sock, recipients, data['message'])})
