import os
import time
import logging
from datetime import datetime, timezone

from flask import Flask, jsonify, send_from_directory
from flask_cors import CORS

from Connexa.app.config import Config

logger = logging.getLogger(__name__)


def create_app(config_class=Config, gateway=None, db=None):
    """
    Application Factory Pattern to initialize the Flask App.
    `gateway` and `db` may be injected; otherwise they are built from the configuration.
    """
    from Connexa.app.utils import configure_logging

    # 1. Initialize the Flask application
    app = Flask(__name__)

    # 2. Load configuration from config.py
    app.config.from_object(config_class)
    configure_logging(app.config["LOG_LEVEL"])

    # 3. Ensure the media folders exist
    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)

    CORS(app)

    # 4. Wire the long-lived services
    # Imports are done here to avoid circular import errors
    from Connexa.app.services import Services, init_services
    from Connexa.app.websocket import socketio, broadcast
    from Connexa.mongodb_database.connection import connect_db
    from Connexa.whatsapp_session.gateway_client import BaileysGateway
    from Connexa.whatsapp_session.session_manager import SessionManager
    from Connexa.whatsapp_session.store import WhatsAppStore
    from Connexa.ai_agent.history_manager import ChatHistoryManager
    from Connexa.ai_agent.Chat_Agent import WhatsAppAIAgent

    socketio.init_app(app, cors_allowed_origins="*", async_mode="threading")

    if db is None:
        db = connect_db(app.config["MONGODB_URI"], app.config["MONGODB_DB_NAME"])
    if gateway is None:
        gateway = BaileysGateway(
            app.config["GATEWAY_URL"],
            secret=app.config["GATEWAY_SECRET"],
            timeout=app.config["GATEWAY_TIMEOUT"],
        )

    store = WhatsAppStore(db)
    session_manager = SessionManager(
        gateway,
        store=store,
        broadcast=broadcast,
        webhook_url=f"{app.config['SERVER_URL']}/api/gateway/events",
        max_qr_attempts=app.config["MAX_QR_ATTEMPTS"],
        connection_timeout=app.config["CONNECTION_TIMEOUT_MS"] / 1000,
        reconnect_delay=app.config["RECONNECT_DELAY"],
        max_reconnect_attempts=app.config["MAX_RECONNECT_ATTEMPTS"],
    )
    history_manager = ChatHistoryManager(db, max_messages=app.config["MAX_HISTORY_MESSAGES"])
    ai_agent = WhatsAppAIAgent(
        app.config["GROQ_API_KEY"],
        history_manager,
        model=app.config["AI_MODEL"],
        fast_model=app.config["AI_FAST_MODEL"],
        vision_model=app.config["AI_VISION_MODEL"],
        transcribe_model=app.config["AI_TRANSCRIBE_MODEL"],
    )
    init_services(app, Services(gateway, store, session_manager, ai_agent, history_manager))

    # 5. Import Blueprints
    from Connexa.app.routes.session_routes import session_bp
    from Connexa.app.routes.gateway_events import events_bp
    from Connexa.app.routes.chats import chats_bp
    from Connexa.app.routes.messages import messages_bp
    from Connexa.app.routes.groups import groups_bp
    from Connexa.app.routes.contacts import contacts_bp
    from Connexa.app.routes.presence import presence_bp
    from Connexa.app.routes.profile import profile_bp
    from Connexa.app.routes.privacy import privacy_bp
    from Connexa.app.routes.status import status_bp
    from Connexa.app.routes.channels import channels_bp
    from Connexa.app.routes.calls import calls_bp
    from Connexa.app.routes.search import search_bp
    from Connexa.app.routes.starred import starred_bp
    from Connexa.app.routes.broadcast import broadcast_bp
    from Connexa.app.routes.ai import ai_bp

    # 6. Register Blueprints
    app.register_blueprint(session_bp, url_prefix="/api")
    app.register_blueprint(events_bp, url_prefix="/api/gateway")
    app.register_blueprint(chats_bp, url_prefix="/api/chats")
    app.register_blueprint(messages_bp, url_prefix="/api/messages")
    app.register_blueprint(groups_bp, url_prefix="/api/groups")
    app.register_blueprint(contacts_bp, url_prefix="/api/contacts")
    app.register_blueprint(presence_bp, url_prefix="/api/presence")
    app.register_blueprint(profile_bp, url_prefix="/api/profile")
    app.register_blueprint(privacy_bp, url_prefix="/api/privacy")
    app.register_blueprint(status_bp, url_prefix="/api/status")
    app.register_blueprint(channels_bp, url_prefix="/api/channels")
    app.register_blueprint(calls_bp, url_prefix="/api/calls")
    app.register_blueprint(search_bp, url_prefix="/api/search")
    app.register_blueprint(starred_bp, url_prefix="/api/starred")
    app.register_blueprint(broadcast_bp, url_prefix="/api/broadcast")
    app.register_blueprint(ai_bp, url_prefix="/api/ai")

    register_error_handlers(app)

    started = time.monotonic()

    @app.route("/health")
    def health():
        return jsonify({
            "status": "ok",
            "uptime": time.monotonic() - started,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "serverUrl": app.config["SERVER_URL"],
        })

    @app.route("/media/<path:filename>")
    def media(filename):
        return send_from_directory(os.path.abspath(app.config["MEDIA_DIR"]), filename)

    return app


def register_error_handlers(app):
    from Connexa.whatsapp_session.errors import (
        AIResponseError,
        AIServiceNotConfiguredError,
        GatewayError,
        SessionNotConnectedError,
        SessionNotFoundError,
        ValidationError,
    )

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(SessionNotConnectedError)
    def handle_not_connected(e):
        return jsonify({"error": "Not connected"}), 400

    @app.errorhandler(SessionNotFoundError)
    def handle_session_not_found(e):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(GatewayError)
    def handle_gateway_error(e):
        logger.error(f"Gateway error: {e}")
        return jsonify({"error": str(e)}), 502

    @app.errorhandler(AIServiceNotConfiguredError)
    def handle_ai_not_configured(e):
        return jsonify({"error": str(e)}), 503

    @app.errorhandler(AIResponseError)
    def handle_ai_response_error(e):
        return jsonify({"error": str(e)}), 502
