import logging
from flask import Blueprint, request, jsonify, current_app

from Connexa.app.services import get_gateway, get_session_manager
from Connexa.app.utils import get_request_data
from Connexa.mongodb_database.connection import is_db_connected
from Connexa.whatsapp_session.errors import GatewayError
from Connexa.whatsapp_session.session_manager import normalize_phone

logger = logging.getLogger(__name__)

session_bp = Blueprint('session', __name__)


@session_bp.route('/', methods=['GET'])
def index():
    return "WhatsApp Bot Backend running..."


@session_bp.route('/health', methods=['GET'])
def api_health():
    manager = get_session_manager()
    try:
        get_gateway().health()
        gateway_up = True
    except GatewayError as e:
        logger.warning(f"Bridge health check failed: {e}")
        gateway_up = False
    return jsonify({
        "status": "ok",
        "database": is_db_connected(),
        "gateway": gateway_up,
        "activeSessions": manager.active_count(),
        "totalSessions": len(manager.list_sessions()),
    })


@session_bp.route('/connect', methods=['POST'])
def connect():
    phone = normalize_phone(get_request_data().get('phone'))
    if not phone:
        return jsonify({"error": "Phone number is required"}), 400

    manager = get_session_manager()
    try:
        manager.start(phone)
    except GatewayError as e:
        logger.error(f"Failed to connect {phone}: {e}")
        return jsonify({"error": f"Failed to connect: {e}"}), 500

    result = manager.wait_for_pairing(phone, current_app.config['CONNECT_WAIT_SECONDS'])
    return jsonify(result)


@session_bp.route('/status/<phone>', methods=['GET'])
def status(phone):
    return jsonify(get_session_manager().status(phone))


@session_bp.route('/logout', methods=['POST'])
def logout():
    phone = normalize_phone(get_request_data().get('phone'))
    if not phone:
        return jsonify({"error": "Phone number is required"}), 400

    get_session_manager().logout(phone)
    return jsonify({"message": "Session cleared. Please reconnect."})


@session_bp.route('/clear-state/<phone>', methods=['POST'])
def clear_state(phone):
    full_reset = request.args.get('fullReset', 'false').lower() == 'true'
    success = get_session_manager().clear_state(phone, full_reset=full_reset)
    if not success:
        return jsonify({"success": False, "error": "Failed to clear session state"}), 500
    return jsonify({
        "success": True,
        "message": "Full session cleared" if full_reset else "Sync state cleared",
    })


@session_bp.route('/sessions', methods=['GET'])
def sessions():
    manager = get_session_manager()
    return jsonify({"sessions": manager.list_sessions(), "active": manager.active_count()})

