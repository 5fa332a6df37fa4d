import os
import logging
from flask import Blueprint, request, jsonify, current_app
from werkzeug.utils import secure_filename

from Connexa.app.services import get_store
from Connexa.app.utils import get_request_data, require_fields, require_session, resolve_media
from Connexa.whatsapp_session.errors import GatewayError, ValidationError
from Connexa.whatsapp_session.gateway_client import to_jid, to_jids
from Connexa.whatsapp_session.message_utils import media_extension

logger = logging.getLogger(__name__)

messages_bp = Blueprint('messages', __name__)


def _send(sock, to, content, options=None):
    """sock.sendMessage; returns the JSON reply with the new message id."""
    args = [to_jid(to), content]
    if options:
        args.append(options)
    try:
        msg = sock.send_message(*args)
    except GatewayError as e:
        logger.error(f"sendMessage to {to} failed: {e}")
        return jsonify({"error": str(e)}), 500
    message_id = ((msg or {}).get('key') or {}).get('id')
    return jsonify({"success": True, "messageId": message_id})


def _media(field, url_field):
    """Uploaded file wins over a URL or server path in the body."""
    upload = request.files.get(field)
    if upload is not None and upload.filename:
        return upload, resolve_media(upload)
    source = get_request_data().get(url_field) or get_request_data().get(field)
    if not source:
        return None, None
    return None, resolve_media(source)


def _is_true(value):
    return value is True or str(value).lower() == 'true'


# ============= SEND MESSAGES =============

@messages_bp.route('/send', methods=['POST'])
@require_session
def send_text(phone, sock):
    data = get_request_data()
    require_fields(data, 'to', 'text')

    content = {"text": data['text']}
    if data.get('mentions'):
        content["mentions"] = to_jids(data['mentions'])
    return _send(sock, data['to'], content)


@messages_bp.route('/reply', methods=['POST'])
@require_session
def reply(phone, sock):
    data = get_request_data()
    require_fields(data, 'to', 'text')

    quoted = data.get('quotedMessage')
    if quoted is None and data.get('quotedMessageId'):
        quoted = get_store().find_raw_message(phone, to_jid(data['to']), data['quotedMessageId'])
    if not quoted:
        return jsonify({"error": "Quoted message required"}), 400
    return _send(sock, data['to'], {"text": data['text']}, {"quoted": quoted})


@messages_bp.route('/send-image', methods=['POST'])
@require_session
def send_image(phone, sock):
    data = get_request_data()
    require_fields(data, 'to')
    _, image = _media('image', 'imageUrl')
    if image is None:
        return jsonify({"error": "Image required"}), 400
    return _send(sock, data['to'], {"image": image, "caption": data.get('caption') or ""})


@messages_bp.route('/send-video', methods=['POST'])
@require_session
def send_video(phone, sock):
    data = get_request_data()
    require_fields(data, 'to')
    _, video = _media('video', 'videoUrl')
    if video is None:
        return jsonify({"error": "Video required"}), 400
    return _send(sock, data['to'], {
        "video": video,
        "caption": data.get('caption') or "",
        "gifPlayback": _is_true(data.get('gifPlayback')),
    })


@messages_bp.route('/send-audio', methods=['POST'])
@require_session
def send_audio(phone, sock):
    data = get_request_data()
    require_fields(data, 'to')
    _, audio = _media('audio', 'audioUrl')
    if audio is None:
        return jsonify({"error": "Audio required"}), 400
    ptt = _is_true(data.get('ptt'))
    return _send(sock, data['to'], {
        "audio": audio,
        "mimetype": "audio/ogg; codecs=opus" if ptt else "audio/mp4",
        "ptt": ptt,
    })


@messages_bp.route('/send-document', methods=['POST'])
@require_session
def send_document(phone, sock):
    data = get_request_data()
    require_fields(data, 'to')
    upload, document = _media('document', 'documentUrl')
    if document is None:
        return jsonify({"error": "Document required"}), 400

    file_name = data.get('fileName') or (upload.filename if upload else None) or "document"
    mimetype = data.get('mimetype') or (upload.mimetype if upload else None) or "application/pdf"
    return _send(sock, data['to'], {"document": document, "fileName": file_name, "mimetype": mimetype})


@messages_bp.route('/send-location', methods=['POST'])
@require_session
def send_location(phone, sock):
    data = get_request_data()
    require_fields(data, 'to')
    if data.get('latitude') in (None, "") or data.get('longitude') in (None, ""):
        return jsonify({"error": "Latitude and longitude required"}), 400

    try:
        latitude, longitude = float(data['latitude']), float(data['longitude'])
    except (TypeError, ValueError):
        return jsonify({"error": "Latitude and longitude must be numbers"}), 400

    return _send(sock, data['to'], {"location": {
        "degreesLatitude": latitude,
        "degreesLongitude": longitude,
        "name": data.get('name') or "",
        "address": data.get('address') or "",
    }})


@messages_bp.route('/send-contact', methods=['POST'])
@require_session
def send_contact(phone, sock):
    data = get_request_data()
    require_fields(data, 'to')
    contacts = data.get('contacts')
    if not contacts or not isinstance(contacts, list):
        return jsonify({"error": "Contacts array required"}), 400

    return _send(sock, data['to'], {"contacts": {
        "displayName": contacts[0].get('displayName') or "Contact",
        "contacts": [{"vcard": c.get('vcard')} for c in contacts],
    }})


@messages_bp.route('/send-poll', methods=['POST'])
@require_session
def send_poll(phone, sock):
    data = get_request_data()
    require_fields(data, 'to')
    options = data.get('options')
    if not data.get('name') or not options or not isinstance(options, list):
        return jsonify({"error": "Poll name and options array required"}), 400

    return _send(sock, data['to'], {"poll": {
        "name": data['name'],
        "values": options,
        "selectableCount": int(data.get('selectableCount') or 1),
    }})


@messages_bp.route('/send-list', methods=['POST'])
@require_session
def send_list(phone, sock):
    data = get_request_data()
    require_fields(data, 'to')
    sections = data.get('sections')
    if not sections or not isinstance(sections, list):
        return jsonify({"error": "Sections array required"}), 400

    return _send(sock, data['to'], {
        "text": data.get('text') or "",
        "footer": data.get('footer') or "",
        "title": data.get('title') or "",
        "buttonText": data.get('buttonText') or "Select",
        "sections": sections,
    })


@messages_bp.route('/send-broadcast', methods=['POST'])
@require_session
def send_broadcast(phone, sock):
    data = get_request_data()
    recipients = data.get('recipients')
    if not recipients or not isinstance(recipients, list):
        return jsonify({"error": "Recipients array required"}), 400
    require_fields(data, 'message')

    return jsonify({"success": True, "results": broadcast_message(sock, recipients, data['message'])})


def broadcast_message(sock, recipients, message):
    """Sends one message to each recipient; a failure is reported per recipient."""
    if isinstance(message, str):
        content = {"text": message}
    elif isinstance(message, dict) and 'text' in message:
        content = {"text": message['text']}
    else:
        content = message

    results = []
    for recipient in recipients:
        try:
            msg = sock.send_message(to_jid(recipient), content)
            results.append({"recipient": recipient, "success": True,
                            "messageId": ((msg or {}).get('key') or {}).get('id')})
        except GatewayError as e:
            logger.warning(f"Broadcast to {recipient} failed: {e}")
            results.append({"recipient": recipient, "success": False, "error": str(e)})
    return results


# ============= MESSAGE ACTIONS =============

@messages_bp.route('/delete', methods=['POST'])
@require_session
def delete_message(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId', 'messageKey')
    return _action(sock.send_message, data['chatId'], {"delete": data['messageKey']})


@messages_bp.route('/forward', methods=['POST'])
@require_session
def forward_message(phone, sock):
    data = get_request_data()
    require_fields(data, 'to')

    message = data.get('message')
    if message is None and data.get('chatId') and data.get('messageId'):
        message = get_store().find_raw_message(phone, data['chatId'], data['messageId'])
    if not message:
        return jsonify({"error": "Message required"}), 400
    return _action(sock.send_message, to_jid(data['to']), {"forward": message})


@messages_bp.route('/react', methods=['POST'])
@require_session
def react(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId', 'messageKey')
    # An empty emoji removes the reaction
    return _action(sock.send_message, data['chatId'],
                   {"react": {"text": data.get('emoji') or "", "key": data['messageKey']}})


@messages_bp.route('/edit', methods=['POST'])
@require_session
def edit_message(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId', 'messageKey', 'newText')
    return _action(sock.send_message, data['chatId'], {"text": data['newText'], "edit": data['messageKey']})


@messages_bp.route('/star', methods=['POST'])
@require_session
def star_message(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId', 'messageKey')
    key = data['messageKey']
    star = data.get('star') is not False

    response = _action(sock.chat_modify, {
        "star": {"messages": [{"id": key.get('id'), "fromMe": bool(key.get('fromMe'))}], "star": star}
    }, data['chatId'])
    if response.status_code == 200:
        get_store().set_starred(phone, data['chatId'], [key.get('id')], star)
    return response


@messages_bp.route('/read', methods=['POST'])
@require_session
def read_message(phone, sock):
    data = get_request_data()
    require_fields(data, 'messageKey')
    return _action(sock.read_messages, [data['messageKey']])


def _action(method, *args):
    try:
        method(*args)
    except GatewayError as e:
        logger.error(f"{method.__name__} failed: {e}")
        response = jsonify({"error": str(e)})
        response.status_code = 500
        return response
    return jsonify({"success": True})


# ============= READ =============

@messages_bp.route('/<phone>/<chat_id>', methods=['GET'])
@require_session
def get_messages(phone, sock, chat_id):
    try:
        limit = min(int(request.args.get('limit', 50)), 500)
        before = int(request.args['before']) if request.args.get('before') else None
    except ValueError:
        raise ValidationError("limit and before must be integers")

    messages = get_store().get_messages(phone, chat_id, limit=limit, before=before)
    return jsonify({"chatId": chat_id, "messages": messages, "count": len(messages)})


@messages_bp.route('/download', methods=['POST'])
@require_session
def download(phone, sock):
    """Downloads the media of a stored (or supplied) message into MEDIA_DIR/<phone>/."""
    data = get_request_data()
    message = data.get('message')
    if message is None:
        require_fields(data, 'chatId', 'messageId')
        message = get_store().find_raw_message(phone, data['chatId'], data['messageId'])
        if message is None:
            return jsonify({"error": "Message not found"}), 404

    key = message.get('key') if isinstance(message, dict) else None
    if not isinstance(key, dict):
        key = {}
    message_id = secure_filename(str(key.get('id') or ''))
    if not message_id:
        raise ValidationError("message.key.id is required")

    try:
        content = sock.download_media(message)
    except GatewayError as e:
        logger.error(f"Failed to download media for {phone}: {e}")
        return jsonify({"error": str(e)}), 500

    media_dir = os.path.join(current_app.config['MEDIA_DIR'], phone)
    os.makedirs(media_dir, exist_ok=True)
    filename = f"{message_id}.{media_extension(message.get('message'))}"
    with open(os.path.join(media_dir, filename), 'wb') as f:
        f.write(content)

    return jsonify({"success": True, "path": f"/media/{phone}/{filename}", "size": len(content)})
