import logging
from flask import Blueprint, jsonify

from Connexa.app.services import get_store
from Connexa.app.utils import get_request_data, require_fields, require_session
from Connexa.whatsapp_session.errors import GatewayError

logger = logging.getLogger(__name__)

channels_bp = Blueprint('channels', __name__)


def _channel_jid(value):
    return value if value.endswith('@newsletter') else f"{value}@newsletter"


@channels_bp.route('/<phone>', methods=['GET'])
@require_session
def list_channels(phone, sock):
    return jsonify({"success": True, "channels": get_store().channels(phone)})


@channels_bp.route('/follow', methods=['POST'])
@require_session
def follow(phone, sock):
    data = get_request_data()
    require_fields(data, 'channelJid')
    try:
        sock.newsletter_follow(_channel_jid(data['channelJid']))
    except GatewayError as e:
        return jsonify({"error": str(e)}), 500
    return jsonify({"success": True})


@channels_bp.route('/unfollow', methods=['POST'])
@require_session
def unfollow(phone, sock):
    data = get_request_data()
    require_fields(data, 'channelJid')
    try:
        sock.newsletter_unfollow(_channel_jid(data['channelJid']))
    except GatewayError as e:
        return jsonify({"error": str(e)}), 500
    return jsonify({"success": True})


@channels_bp.route('/metadata/<phone>/<channel_jid>', methods=['GET'])
@require_session
def metadata(phone, sock, channel_jid):
    try:
        result = sock.newsletter_metadata('jid', _channel_jid(channel_jid))
    except GatewayError as e:
        return jsonify({"error": str(e)}), 500
    return jsonify({"success": True, "metadata": result})


@channels_bp.route('/mute', methods=['POST'])
@require_session
def mute(phone, sock):
    data = get_request_data()
    require_fields(data, 'channelJid')
    jid = _channel_jid(data['channelJid'])
    try:
        if data.get('mute', True) is False:
            sock.newsletter_unmute(jid)
        else:
            sock.newsletter_mute(jid)
    except GatewayError as e:
        return jsonify({"error": str(e)}), 500
    return jsonify({"success": True})


@channels_bp.route('/communities/<phone>', methods=['GET'])
@require_session
def communities(phone, sock):
    """Community parent groups, each with the groups linked to it."""
    try:
        groups = sock.group_fetch_all_participating() or {}
    except GatewayError as e:
        return jsonify({"error": str(e)}), 500

    parents = {}
    linked = {}
    for group in groups.values():
        if group.get('isCommunity'):
            parents[group['id']] = group
        elif group.get('linkedParent'):
            linked.setdefault(group['linkedParent'], []).append(
                {"id": group['id'], "subject": group.get('subject')})

    result = [{
        "id": jid,
        "subject": group.get('subject'),
        "desc": group.get('desc'),
        "owner": group.get('owner'),
        "creation": group.get('creation'),
        "linkedGroups": linked.get(jid, []),
    } for jid, group in parents.items()]
    return jsonify({"success": True, "communities": result})
