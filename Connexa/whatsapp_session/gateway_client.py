import base64
import logging
from typing import Any, Dict, List, Optional

import requests

from Connexa.whatsapp_session.errors import GatewayError

logger = logging.getLogger(__name__)


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def encode_binary(value):
    """Buffers travel to the bridge as {"type": "Buffer", "base64": ...}."""
    if isinstance(value, (bytes, bytearray)):
        return {"type": "Buffer", "base64": base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, dict):
        return {k: encode_binary(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_binary(v) for v in value]
    return value


class BaileysGateway:
    """
    HTTP client for the Baileys bridge.
    The bridge owns one Baileys socket (and its auth folder) per phone number and
    posts every socket event back to /api/gateway/events.
    """

    def __init__(self, base_url: str, secret: str = "", timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = requests.Session()
        adapter = requests.adapters.HTTPAdapter(pool_connections=10, pool_maxsize=20)
        self._session.mount("http://", adapter)
        self._session.mount("https://", adapter)
        if secret:
            self._session.headers["X-Gateway-Secret"] = secret
        else:
            logger.warning("GATEWAY_SECRET not set - bridge requests are unauthenticated")

    def _request(self, method: str, path: str, json: Optional[Dict] = None, raw: bool = False):
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(method, url, json=json, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Gateway unreachable ({method} {path}): {e}")
            raise GatewayError(f"Baileys gateway not reachable: {e}", status_code=503) from e

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = {"error": response.text}
            message = payload.get("error") or payload.get("message") or f"Gateway error {response.status_code}"
            raise GatewayError(message, status_code=response.status_code, payload=payload)

        if raw:
            return response.content
        if not response.content:
            return {}
        return response.json()

    # --- Socket lifecycle ---

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/health")

    def start_session(self, phone: str, webhook_url: str, connect_timeout_ms: int) -> Dict[str, Any]:
        return self._request("POST", "/sessions", json={
            "phone": phone,
            "webhookUrl": webhook_url,
            "syncFullHistory": True,
            "connectTimeoutMs": connect_timeout_ms,
            "markOnlineOnConnect": True,
        })

    def request_pairing_code(self, phone: str) -> str:
        result = self._request("POST", f"/sessions/{phone}/pairing-code")
        return result.get("code")

    def logout(self, phone: str) -> None:
        self._request("POST", f"/sessions/{phone}/logout")

    def close_socket(self, phone: str) -> None:
        """Closes the websocket only; the bridge then emits connection.update close."""
        self._request("POST", f"/sessions/{phone}/close")

    def end_session(self, phone: str) -> None:
        self._request("DELETE", f"/sessions/{phone}")

    def clear_state(self, phone: str, full_reset: bool = False) -> Dict[str, Any]:
        return self._request("POST", f"/sessions/{phone}/clear-state", json={"fullReset": full_reset})

    # --- Socket calls ---

    def call(self, phone: str, method: str, *args) -> Any:
        logger.debug(f"sock.{method} for {phone}")
        result = self._request("POST", f"/sessions/{phone}/call", json={
            "method": method,
            "args": encode_binary(list(args)),
        })
        return result.get("result")

    def download_media(self, phone: str, message: Dict[str, Any]) -> bytes:
        return self._request("POST", f"/sessions/{phone}/media", json={"message": message}, raw=True)


class SocketProxy:
    """
    Attribute access on the proxy becomes a socket call on the bridge:
    sock.chat_modify({"archive": True}, jid) -> sock.chatModify({...}, jid)
    """

    def __init__(self, gateway: BaileysGateway, phone: str):
        self._gateway = gateway
        self.phone = phone

    def __getattr__(self, name: str):
        if name.startswith("_"):
            raise AttributeError(name)
        method = _camel_case(name)

        def _call(*args):
            return self._gateway.call(self.phone, method, *args)

        _call.__name__ = method
        return _call

    def download_media(self, message: Dict[str, Any]) -> bytes:
        return self._gateway.download_media(self.phone, message)


def to_jid(recipient: str) -> str:
    if "@" in recipient:
        return recipient
    digits = recipient.lstrip("+").replace(" ", "").replace("-", "")
    return f"{digits}@s.whatsapp.net"


def to_jids(recipients) -> List[str]:
    if isinstance(recipients, str):
        recipients = [recipients]
    return [to_jid(r) for r in recipients or []]
