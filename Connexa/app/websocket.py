import logging
from flask import request
from flask_socketio import SocketIO, emit

from Connexa.app.services import get_session_manager
from Connexa.whatsapp_session.errors import ConnexaError
from Connexa.whatsapp_session.session_manager import normalize_phone

logger = logging.getLogger(__name__)

socketio = SocketIO()


def broadcast(event, data):
    """Pushes a WhatsApp event to every connected WebSocket client."""
    socketio.emit(event, data)


@socketio.on("connect")
def on_connect():
    logger.info(f"Client connected: {request.sid}")


@socketio.on("disconnect")
def on_disconnect(*args):
    logger.info(f"Client disconnected: {request.sid}")


@socketio.on("connect-whatsapp")
def on_connect_whatsapp(phone):
    phone = normalize_phone(phone)
    logger.info(f"Starting connection for {phone}")
    try:
        get_session_manager().start(phone)
        emit("status", {"phone": phone, "status": "connecting"})
    except ConnexaError as e:
        logger.error(f"Connection failed for {phone}: {e}")
        emit("status", {"phone": phone, "error": str(e)})


@socketio.on("logout-whatsapp")
def on_logout_whatsapp(phone):
    phone = normalize_phone(phone)
    logger.info(f"Logging out {phone}")
    get_session_manager().logout(phone)
    emit("status", {"phone": phone, "status": "disconnected"})
