from typing import Any, Dict, Optional

# Keys that ride along with the real content and never describe the message type
_WRAPPER_KEYS = {"messageContextInfo", "senderKeyDistributionMessage"}

# Containers whose inner "message" holds the actual content
_NESTED_KEYS = ("ephemeralMessage", "viewOnceMessage", "viewOnceMessageV2", "documentWithCaptionMessage")

MEDIA_TYPES = {
    "image": "imageMessage",
    "video": "videoMessage",
    "audio": "audioMessage",
    "document": "documentMessage",
    "sticker": "stickerMessage",
}

MEDIA_EXTENSIONS = {
    "imageMessage": "jpeg",
    "videoMessage": "mp4",
    "audioMessage": "mp3",
    "stickerMessage": "webp",
}


def unwrap_message(message: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    message = message or {}
    for key in _NESTED_KEYS:
        inner = message.get(key)
        if isinstance(inner, dict) and isinstance(inner.get("message"), dict):
            return unwrap_message(inner["message"])
    return message


def get_message_type(message: Optional[Dict[str, Any]]) -> Optional[str]:
    content = unwrap_message(message)
    for key in content:
        if key not in _WRAPPER_KEYS:
            return key
    return None


def extract_message_text(message: Optional[Dict[str, Any]]) -> str:
    content = unwrap_message(message)
    if content.get("conversation"):
        return content["conversation"]
    for key, field in (
        ("extendedTextMessage", "text"),
        ("imageMessage", "caption"),
        ("videoMessage", "caption"),
        ("documentMessage", "caption"),
        ("buttonsResponseMessage", "selectedDisplayText"),
        ("listResponseMessage", "title"),
    ):
        value = (content.get(key) or {}).get(field)
        if value:
            return value
    return ""


def to_unix_seconds(value) -> int:
    """messageTimestamp may arrive as a number, a numeric string or a protobuf Long."""
    if value is None:
        return 0
    if isinstance(value, dict):
        low = value.get("low", 0) & 0xFFFFFFFF
        high = value.get("high", 0)
        return (high << 32) | low
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def media_extension(message: Optional[Dict[str, Any]]) -> str:
    return MEDIA_EXTENSIONS.get(get_message_type(message), "bin")
