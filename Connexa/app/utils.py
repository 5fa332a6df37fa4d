import os
import sys
import uuid
import atexit
import signal
import logging
from functools import wraps

from flask import request, jsonify
from werkzeug.utils import secure_filename

from Connexa.app.services import get_session_manager
from Connexa.mongodb_database.connection import close_db
from Connexa.whatsapp_session.errors import ValidationError
from Connexa.whatsapp_session.session_manager import normalize_phone

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level="INFO"):
    root = logging.getLogger()
    if not any(getattr(h, "_connexa", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._connexa = True
        root.addHandler(handler)
    root.setLevel(level)
    # Keep per-request werkzeug lines out of INFO output
    logging.getLogger("werkzeug").setLevel(logging.WARNING)


def get_request_data():
    """JSON body, falling back to multipart/form fields."""
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    return data or {}


def require_fields(data, *fields):
    for field in fields:
        value = data.get(field)
        if value is None or value == "" or value == []:
            raise ValidationError(f"Missing field: {field}")


def require_session(f):
    """
    Resolves the phone number from the URL or the request body and only lets the
    request through when that session is connected. The view receives the
    normalised phone and a socket proxy.
    """
    @wraps(f)
    def wrap(*args, **kwargs):
        phone = kwargs.get("phone") or get_request_data().get("phone")
        phone = normalize_phone(phone)
        if not phone:
            return jsonify({"error": "Phone number is required"}), 400

        manager = get_session_manager()
        if not manager.is_connected(phone):
            return jsonify({"error": "Not connected"}), 400

        kwargs["phone"] = phone
        kwargs["sock"] = manager.get_socket(phone)
        return f(*args, **kwargs)
    return wrap


def save_upload(file_storage, upload_folder):
    filename = secure_filename(file_storage.filename or "upload")
    os.makedirs(upload_folder, exist_ok=True)
    filepath = os.path.join(upload_folder, f"{uuid.uuid4()}_{filename}")
    file_storage.save(filepath)
    return filepath


def resolve_media(source):
    """
    Turns an uploaded file, URL or server path into what the socket accepts:
    {"url": ...} for remote media, raw bytes otherwise.
    """
    if source is None or source == "":
        raise ValidationError("Media is required")

    if hasattr(source, "read"):
        return source.read()

    if isinstance(source, str):
        if source.startswith(("http://", "https://")):
            return {"url": source}
        if os.path.isfile(source):
            with open(source, "rb") as f:
                return f.read()
        raise ValidationError(f"Media file not found: {source}")

    return source


def setup_graceful_shutdown(manager):
    """Ends every WhatsApp socket on SIGINT/SIGTERM and interpreter exit."""
    def cleanup(*_):
        logger.info("Cleaning up active sessions...")
        manager.shutdown()
        close_db()
        logger.info("All sessions cleaned. Exiting.")

    def on_signal(signum, frame):
        cleanup()
        sys.exit(0)

    atexit.register(cleanup)
    signal.signal(signal.SIGINT, on_signal)
    signal.signal(signal.SIGTERM, on_signal)
