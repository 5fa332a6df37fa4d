import os
import logging
from functools import wraps
from flask import Blueprint, request, jsonify, current_app
from groq import APIError

from Connexa.app.services import get_ai_agent, get_history_manager
from Connexa.app.utils import get_request_data, require_fields, require_session, save_upload
from Connexa.whatsapp_session.errors import GatewayError, ValidationError
from Connexa.whatsapp_session.gateway_client import to_jid

logger = logging.getLogger(__name__)

ai_bp = Blueprint('ai', __name__)


def groq_errors(f):
    """Failures reported by the Groq API become a 500 with its message."""
    @wraps(f)
    def wrap(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except APIError as e:
            logger.error(f"Groq request failed in {f.__name__}: {e}")
            return jsonify({"error": str(e)}), 500
    return wrap


def _positive_int(data, field, default=None):
    value = data.get(field)
    if value is None or value == '':
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")
    if number < 1:
        raise ValidationError(f"{field} must be positive")
    return number


# ============= REPLIES =============

@ai_bp.route('/smart-reply', methods=['POST'])
@require_session
@groq_errors
def smart_reply(phone, sock):
    data = get_request_data()
    require_fields(data, 'lastMessage')
    suggestions = get_ai_agent().generate_smart_reply(
        data['lastMessage'],
        sender_name=data.get('senderName') or "User",
        relationship=data.get('relationship') or "friend",
    )
    return jsonify({"success": True, "suggestions": suggestions})


@ai_bp.route('/auto-reply', methods=['POST'])
@require_session
@groq_errors
def auto_reply(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId', 'message')
    result = get_ai_agent().auto_reply(phone, data['chatId'], data['message'], data.get('settings'))

    if result and result['shouldSend'] and data.get('to'):
        try:
            msg = sock.send_message(to_jid(data['to']), {"text": result['reply']})
        except GatewayError as e:
            return jsonify({"error": str(e)}), 500
        return jsonify({"success": True, "reply": result['reply'], "sent": True,
                        "messageId": ((msg or {}).get('key') or {}).get('id')})

    return jsonify({"success": True, "reply": result['reply'] if result else None, "sent": False})


@ai_bp.route('/generate', methods=['POST'])
@require_session
@groq_errors
def generate(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId', 'userMessage')
    kwargs = {"include_history": data.get('includeHistory') is not False}
    if data.get('systemPrompt'):
        kwargs["system_prompt"] = data['systemPrompt']
    max_tokens = _positive_int(data, 'maxTokens')
    if max_tokens:
        kwargs["max_tokens"] = max_tokens

    result = get_ai_agent().generate_response(phone, data['chatId'], data['userMessage'], **kwargs)
    return jsonify({"success": True, **result})


# ============= CONTENT ANALYSIS =============

@ai_bp.route('/sentiment', methods=['POST'])
@require_session
@groq_errors
def sentiment(phone, sock):
    data = get_request_data()
    require_fields(data, 'text')
    return jsonify({"success": True, "sentiment": get_ai_agent().analyze_sentiment(data['text'])})


@ai_bp.route('/analyze-image', methods=['POST'])
@require_session
@groq_errors
def analyze_image(phone, sock):
    data = get_request_data()
    require_fields(data, 'base64Image')
    prompt = data.get('prompt') or "Describe this image in detail"
    return jsonify({"success": True, "analysis": get_ai_agent().analyze_image(data['base64Image'], prompt)})


@ai_bp.route('/transcribe', methods=['POST'])
@require_session
@groq_errors
def transcribe(phone, sock):
    """Transcribes an uploaded 'audio' file or an audioFilePath on this server."""
    upload = request.files.get('audio')
    if upload is not None and upload.filename:
        path = save_upload(upload, current_app.config['UPLOAD_FOLDER'])
        try:
            result = get_ai_agent().transcribe_audio(path)
        finally:
            os.remove(path)
        return jsonify({"success": True, **result})

    data = get_request_data()
    require_fields(data, 'audioFilePath')
    if not os.path.isfile(data['audioFilePath']):
        raise ValidationError(f"Audio file not found: {data['audioFilePath']}")
    return jsonify({"success": True, **get_ai_agent().transcribe_audio(data['audioFilePath'])})


@ai_bp.route('/moderate', methods=['POST'])
@require_session
@groq_errors
def moderate(phone, sock):
    data = get_request_data()
    require_fields(data, 'text')
    return jsonify({"success": True, "moderation": get_ai_agent().moderate(data['text'])})


@ai_bp.route('/batch-analyze', methods=['POST'])
@require_session
@groq_errors
def batch_analyze(phone, sock):
    data = get_request_data()
    messages = data.get('messages')
    if not messages or not isinstance(messages, list):
        return jsonify({"error": "Messages array required"}), 400
    return jsonify({"success": True, "results": get_ai_agent().batch_analyze(messages)})


# ============= CONVERSATION MANAGEMENT =============

@ai_bp.route('/summarize', methods=['POST'])
@require_session
@groq_errors
def summarize(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId')
    count = _positive_int(data, 'messageCount', default=20)
    return jsonify({"success": True, "summary": get_ai_agent().summarize_conversation(phone, data['chatId'], count)})


@ai_bp.route('/history/<phone>/<chat_id>', methods=['GET'])
@require_session
def history(phone, sock, chat_id):
    entries = get_history_manager().get_history(phone, chat_id)
    return jsonify({"success": True, "history": entries, "count": len(entries)})


@ai_bp.route('/history/clear', methods=['POST'])
@require_session
def clear_history(phone, sock):
    data = get_request_data()
    result = get_history_manager().clear(phone, data.get('chatId'))
    return jsonify({"success": True, **result})


# ============= WRITING =============

@ai_bp.route('/translate', methods=['POST'])
@require_session
@groq_errors
def translate(phone, sock):
    data = get_request_data()
    require_fields(data, 'text', 'targetLang')
    return jsonify({"success": True, "translation": get_ai_agent().translate(data['text'], data['targetLang'])})


@ai_bp.route('/compose', methods=['POST'])
@require_session
@groq_errors
def compose(phone, sock):
    data = get_request_data()
    require_fields(data, 'chatId', 'context')
    composed = get_ai_agent().compose(phone, data['chatId'], data['context'], data.get('tone'))
    return jsonify({"success": True, "composed": composed})


@ai_bp.route('/improve', methods=['POST'])
@require_session
@groq_errors
def improve(phone, sock):
    data = get_request_data()
    require_fields(data, 'text')
    return jsonify({"success": True, "improved": get_ai_agent().improve(data['text'], data.get('improvements'))})
