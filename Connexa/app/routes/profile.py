import base64
import binascii
from flask import Blueprint, request, jsonify

from Connexa.app.utils import get_request_data, require_fields, require_session, resolve_media
from Connexa.whatsapp_session.errors import GatewayError, ValidationError
from Connexa.whatsapp_session.gateway_client import to_jid

profile_bp = Blueprint('profile', __name__)


def _picture_source(data):
    """Multipart 'image', base64 'imageBuffer', or an imageUrl / server path."""
    upload = request.files.get('image')
    if upload is not None and upload.filename:
        return resolve_media(upload)
    if data.get('imageBuffer'):
        try:
            return base64.b64decode(data['imageBuffer'], validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError("imageBuffer must be base64 encoded")
    return resolve_media(data.get('imageUrl'))


@profile_bp.route('/action', methods=['POST'])
@require_session
def profile_action(phone, sock):
    data = get_request_data()
    require_fields(data, 'action')
    action = data['action']
    # Defaults to the account's own JID
    jid = to_jid(data.get('jid') or phone)

    try:
        if action == 'updateName':
            require_fields(data, 'name')
            sock.update_profile_name(data['name'])
        elif action == 'updateStatus':
            require_fields(data, 'status')
            sock.update_profile_status(data['status'])
        elif action == 'updatePicture':
            sock.update_profile_picture(jid, _picture_source(data))
        elif action == 'removePicture':
            sock.remove_profile_picture(jid)
        elif action == 'getPicture':
            try:
                url = sock.profile_picture_url(jid, 'image')
            except GatewayError:
                url = None
            return jsonify({"url": url})
        else:
            return jsonify({"error": "Invalid profile action"}), 400
    except GatewayError as e:
        return jsonify({"error": str(e)}), 500

    return jsonify({"success": True})
