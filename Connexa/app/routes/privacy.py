from flask import Blueprint, jsonify

from Connexa.app.utils import get_request_data, require_fields, require_session
from Connexa.whatsapp_session.errors import GatewayError
from Connexa.whatsapp_session.gateway_client import to_jid

privacy_bp = Blueprint('privacy', __name__)

# setting name -> socket method
PRIVACY_UPDATERS = {
    "lastSeen": "update_last_seen_privacy",
    "online": "update_online_privacy",
    "profilePicture": "update_profile_picture_privacy",
    "status": "update_status_privacy",
    "readReceipts": "update_read_receipts_privacy",
    "groupsAdd": "update_groups_add_privacy",
    "defaultDisappearingMode": "update_default_disappearing_mode",
}

# Seconds; 0 turns disappearing messages off
DISAPPEARING_DURATIONS = {0, 24 * 60 * 60, 7 * 24 * 60 * 60, 90 * 24 * 60 * 60}


# ============= PRIVACY SETTINGS =============

@privacy_bp.route('/settings/<phone>', methods=['GET'])
@require_session
def get_settings(phone, sock):
    try:
        settings = sock.fetch_privacy_settings(True)
    except GatewayError as e:
        return jsonify({"error": str(e)}), 500
    return jsonify({"success": True, "settings": settings})


@privacy_bp.route('/settings/update', methods=['POST'])
@require_session
def update_settings(phone, sock):
    data = get_request_data()
    require_fields(data, 'setting')
    method = PRIVACY_UPDATERS.get(data['setting'])
    if method is None:
        return jsonify({"error": f"Unknown privacy setting: {data['setting']}"}), 400
    if data.get('value') is None:
        return jsonify({"error": "Missing field: value"}), 400

    try:
        getattr(sock, method)(data['value'])
    except GatewayError as e:
        return jsonify({"error": str(e)}), 500
    return jsonify({"success": True, "setting": data['setting'], "value": data['value']})


# ============= BLOCKED CONTACTS =============

@privacy_bp.route('/blocked/<phone>', methods=['GET'])
@require_session
def blocked(phone, sock):
    try:
        blocklist = sock.fetch_blocklist() or []
    except GatewayError as e:
        return jsonify({"error": str(e)}), 500
    return jsonify({"success": True, "blocked": blocklist})


@privacy_bp.route('/block', methods=['POST'])
@require_session
def block(phone, sock):
    return _update_block_status(sock, 'block')


@privacy_bp.route('/unblock', methods=['POST'])
@require_session
def unblock(phone, sock):
    return _update_block_status(sock, 'unblock')


def _update_block_status(sock, action):
    data = get_request_data()
    require_fields(data, 'jid')
    try:
        sock.update_block_status(to_jid(data['jid']), action)
    except GatewayError as e:
        return jsonify({"error": str(e)}), 500
    return jsonify({"success": True})


# ============= DISAPPEARING MESSAGES =============

@privacy_bp.route('/disappearing-messages', methods=['POST'])
@require_session
def disappearing_messages(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId')
    try:
        duration = int(data.get('duration') or 0)
    except (TypeError, ValueError):
        return jsonify({"error": "duration must be a number of seconds"}), 400
    if duration not in DISAPPEARING_DURATIONS:
        return jsonify({"error": f"duration must be one of {sorted(DISAPPEARING_DURATIONS)}"}), 400

    try:
        sock.send_message(to_jid(data['chatId']), {"disappearingMessagesInChat": duration})
    except GatewayError as e:
        return jsonify({"error": str(e)}), 500
    return jsonify({"success": True, "chatId": data['chatId'], "duration": duration})


# ============= BUSINESS PROFILE =============

@privacy_bp.route('/business-profile/<phone>/<jid>', methods=['GET'])
@require_session
def business_profile(phone, sock, jid):
    try:
        profile = sock.get_business_profile(to_jid(jid))
    except GatewayError as e:
        return jsonify({"error": str(e)}), 500
    return jsonify({"success": True, "profile": profile})
