import logging

from Connexa.app import create_app
from Connexa.app.services import get_session_manager
from Connexa.app.utils import setup_graceful_shutdown
from Connexa.app.websocket import socketio

logger = logging.getLogger(__name__)

# Initialize the Flask application using the factory pattern
app = create_app()

if __name__ == "__main__":
    with app.app_context():
        manager = get_session_manager()
        setup_graceful_shutdown(manager)
        if app.config["RESTORE_SESSIONS"]:
            manager.restore_sessions()

    logger.info(f"Server running on {app.config['SERVER_URL']}")
    socketio.run(app, host=app.config["HOST"], port=app.config["PORT"], allow_unsafe_werkzeug=True)
