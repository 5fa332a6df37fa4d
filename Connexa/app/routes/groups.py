import logging
from flask import Blueprint, jsonify

from Connexa.app.utils import get_request_data, require_fields, require_session
from Connexa.whatsapp_session.errors import GatewayError
from Connexa.whatsapp_session.gateway_client import to_jids

logger = logging.getLogger(__name__)

groups_bp = Blueprint('groups', __name__)

PARTICIPANT_ACTIONS = {"add", "remove", "promote", "demote"}

# groupSettingUpdate values
GROUP_SETTINGS = {"announcement", "not_announcement", "locked", "unlocked"}


@groups_bp.route('/<phone>', methods=['GET'])
@require_session
def list_groups(phone, sock):
    try:
        groups = sock.group_fetch_all_participating() or {}
    except GatewayError as e:
        return jsonify({"error": str(e)}), 500

    result = []
    for group in groups.values():
        try:
            profile_pic_url = sock.profile_picture_url(group['id'], 'image')
        except GatewayError:
            # No picture set, or hidden by privacy settings
            profile_pic_url = None
        result.append({
            "id": group['id'],
            "subject": group.get('subject'),
            "owner": group.get('owner'),
            "creation": group.get('creation'),
            "desc": group.get('desc'),
            "size": group.get('size') or len(group.get('participants') or []),
            "participants": group.get('participants') or [],
            "announce": group.get('announce', False),
            "restrict": group.get('restrict', False),
            "profilePicUrl": profile_pic_url,
        })
    return jsonify({"success": True, "groups": result})


@groups_bp.route('/action', methods=['POST'])
@require_session
def group_action(phone, sock):
    data = get_request_data()
    require_fields(data, 'action')
    action = data['action']
    group_id = data.get('groupId')

    if action not in ('create', 'acceptInvite'):
        require_fields(data, 'groupId')

    try:
        if action == 'create':
            require_fields(data, 'name', 'participants')
            group = sock.group_create(data['name'], to_jids(data['participants']))
            return jsonify({"success": True, "group": group})

        if action in PARTICIPANT_ACTIONS:
            require_fields(data, 'participants')
            result = sock.group_participants_update(group_id, to_jids(data['participants']), action)
            return jsonify({"success": True, "result": result})

        if action == 'updateSubject':
            require_fields(data, 'subject')
            sock.group_update_subject(group_id, data['subject'])
        elif action == 'updateDescription':
            sock.group_update_description(group_id, data.get('description') or None)
        elif action == 'updateSettings':
            setting = data.get('setting')
            if setting not in GROUP_SETTINGS:
                return jsonify({"error": f"setting must be one of {sorted(GROUP_SETTINGS)}"}), 400
            sock.group_setting_update(group_id, setting)
        elif action == 'leave':
            sock.group_leave(group_id)
        elif action == 'getInviteCode':
            return jsonify({"code": sock.group_invite_code(group_id)})
        elif action == 'revokeInviteCode':
            return jsonify({"revoked": sock.group_revoke_invite(group_id)})
        elif action == 'acceptInvite':
            require_fields(data, 'inviteCode')
            return jsonify({"result": sock.group_accept_invite(data['inviteCode'])})
        elif action == 'getMetadata':
            return jsonify({"metadata": sock.group_metadata(group_id)})
        else:
            return jsonify({"error": "Invalid group action"}), 400
    except GatewayError as e:
        logger.error(f"Group action '{action}' failed for {phone}: {e}")
        return jsonify({"error": str(e)}), 500

    return jsonify({"success": True})
