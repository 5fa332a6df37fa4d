from flask import Blueprint, jsonify

from Connexa.app.services import get_store
from Connexa.app.utils import get_request_data, require_fields, require_session
from Connexa.whatsapp_session.errors import GatewayError
from Connexa.whatsapp_session.gateway_client import to_jid

contacts_bp = Blueprint('contacts', __name__)


@contacts_bp.route('/<phone>', methods=['GET'])
@require_session
def get_contacts(phone, sock):
    contacts = get_store().list_contacts(phone)
    return jsonify({"success": True, "contacts": contacts, "count": len(contacts)})


@contacts_bp.route('/action', methods=['POST'])
@require_session
def contact_action(phone, sock):
    data = get_request_data()
    require_fields(data, 'action')
    action = data['action']

    try:
        if action == 'get':
            return jsonify({"success": True, "contacts": get_store().list_contacts(phone)})
        if action == 'blocked':
            return jsonify({"success": True, "blocked": sock.fetch_blocklist() or []})
        if action in ('block', 'unblock'):
            require_fields(data, 'jid')
            sock.update_block_status(to_jid(data['jid']), action)
        else:
            return jsonify({"error": "Invalid contact action"}), 400
    except GatewayError as e:
        return jsonify({"error": str(e)}), 500

    return jsonify({"success": True})
