import os
from dotenv import load_dotenv

load_dotenv()


def _detect_server_url(port):
    if os.environ.get("REPLIT_DEV_DOMAIN"):
        return f"https://{os.environ['REPLIT_DEV_DOMAIN']}"
    if os.environ.get("RENDER"):
        return "https://connexa-bot-server.onrender.com"
    if os.environ.get("SERVER_URL"):
        return os.environ["SERVER_URL"]
    return f"http://localhost:{port}"


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev_key")
    PORT = int(os.environ.get("PORT", "5000"))
    HOST = os.environ.get("HOST", "0.0.0.0")
    SERVER_URL = _detect_server_url(PORT)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    MONGODB_URI = os.environ.get("MONGODB_URI")
    MONGODB_DB_NAME = os.environ.get("MONGODB_DB_NAME", "connexa")

    # Baileys bridge
    GATEWAY_URL = os.environ.get("GATEWAY_URL", "http://127.0.0.1:3300")
    GATEWAY_SECRET = os.environ.get("GATEWAY_SECRET", "")
    GATEWAY_TIMEOUT = float(os.environ.get("GATEWAY_TIMEOUT", "30"))

    # Session lifecycle
    MAX_QR_ATTEMPTS = int(os.environ.get("MAX_QR_ATTEMPTS", "3"))
    CONNECTION_TIMEOUT_MS = int(os.environ.get("MAX_QR_WAIT", "60000"))
    RECONNECT_DELAY = float(os.environ.get("RECONNECT_DELAY", "5"))
    MAX_RECONNECT_ATTEMPTS = int(os.environ.get("MAX_RECONNECT_ATTEMPTS", "5"))
    CONNECT_WAIT_SECONDS = int(os.environ.get("CONNECT_WAIT_SECONDS", "30"))
    RESTORE_SESSIONS = os.environ.get("RESTORE_SESSIONS", "false").lower() == "true"

    # LLM enrichment
    GROQ_API_KEY = os.environ.get("GROQ_API_KEY")
    AI_MODEL = os.environ.get("AI_MODEL", "llama-3.3-70b-versatile")
    AI_FAST_MODEL = os.environ.get("AI_FAST_MODEL", "llama-3.1-8b-instant")
    AI_VISION_MODEL = os.environ.get("AI_VISION_MODEL", "meta-llama/llama-4-scout-17b-16e-instruct")
    AI_TRANSCRIBE_MODEL = os.environ.get("AI_TRANSCRIBE_MODEL", "whisper-large-v3")
    MAX_HISTORY_MESSAGES = int(os.environ.get("MAX_HISTORY_MESSAGES", "50"))
    AUTO_REPLY_ENABLED = os.environ.get("AUTO_REPLY_ENABLED", "false").lower() == "true"

    MEDIA_DIR = os.environ.get("MEDIA_DIR", "./media")
    UPLOAD_FOLDER = os.path.join(MEDIA_DIR, "uploads")
    MAX_CONTENT_LENGTH = 100 * 1024 * 1024  # 100MB limit


class TestConfig(Config):
    TESTING = True
    MONGODB_URI = None
    GATEWAY_SECRET = "test-secret"
    RESTORE_SESSIONS = False
    RECONNECT_DELAY = 0.01
    CONNECT_WAIT_SECONDS = 1
    GROQ_API_KEY = None
    AUTO_REPLY_ENABLED = False
