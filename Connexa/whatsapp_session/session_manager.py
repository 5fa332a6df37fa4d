import logging
import threading
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from Connexa.whatsapp_session.errors import (
    GatewayError,
    SessionNotConnectedError,
    SessionNotFoundError,
    ValidationError,
)
from Connexa.whatsapp_session.gateway_client import BaileysGateway, SocketProxy

logger = logging.getLogger(__name__)

# DisconnectReason.loggedOut / forbidden: the device was unlinked, auth is useless
LOGGED_OUT_CODES = {401, 403}


def normalize_phone(phone) -> Optional[str]:
    """Drops a leading '+' and every whitespace character."""
    if phone is None:
        return None
    phone = str(phone).strip()
    if phone.startswith("+"):
        phone = phone[1:]
    return "".join(phone.split())


class SessionState(str, Enum):
    CONNECTING = "connecting"
    AWAITING_PAIRING = "awaiting_pairing"
    OPEN = "open"
    CLOSED = "closed"
    LOGGED_OUT = "logged_out"


class WhatsAppSession:
    def __init__(self, phone: str, generation: int):
        self.phone = phone
        self.generation = generation
        self.state = SessionState.CONNECTING
        self.qr_code = None
        self.link_code = None
        self.error = None
        self.qr_attempts = 0
        self.qr_exhausted = False
        self.reconnect_attempts = 0
        self.last_connected = None
        self.started_at = datetime.now(timezone.utc)
        self.stopped = False
        self.timers = []

    @property
    def connected(self) -> bool:
        return self.state == SessionState.OPEN

    def to_status(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "state": self.state.value,
            "qrCode": None if self.connected else self.qr_code,
            "linkCode": self.link_code,
            "error": self.error,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_status()
        data.update({
            "phone": self.phone,
            "qrAttempts": self.qr_attempts,
            "reconnectAttempts": self.reconnect_attempts,
            "lastConnected": self.last_connected.isoformat() if self.last_connected else None,
            "startedAt": self.started_at.isoformat(),
        })
        return data


class SessionManager:
    """
    Owns every WhatsApp session of this process.

    One entry per normalised phone number. Connection events posted by the Baileys
    bridge drive the state machine:

        connecting --qr--> awaiting_pairing --open--> open
             |                   |                     |
             +-------close-------+---------close-------+--> closed (reconnect or retire)
                                                        +--> logged_out (401/403, auth cleared)

    Timers (connection timeout, delayed reconnect) carry the generation of the
    session that armed them; a timer whose session was replaced does nothing.
    """

    def __init__(
        self,
        gateway: BaileysGateway,
        store=None,
        broadcast: Optional[Callable[[str, Dict], None]] = None,
        webhook_url: str = "",
        max_qr_attempts: int = 3,
        connection_timeout: float = 60.0,
        reconnect_delay: float = 5.0,
        max_reconnect_attempts: int = 5,
        timer_factory=threading.Timer,
    ):
        self.gateway = gateway
        self.store = store
        self.webhook_url = webhook_url
        self.max_qr_attempts = max_qr_attempts
        self.connection_timeout = connection_timeout
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_attempts = max_reconnect_attempts
        self._broadcast_fn = broadcast
        self._timer_factory = timer_factory

        self._sessions: Dict[str, WhatsAppSession] = {}
        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        self._generation = 0

    # --- Lookups ---

    def get(self, phone) -> Optional[WhatsAppSession]:
        with self._lock:
            return self._sessions.get(normalize_phone(phone))

    def get_socket(self, phone) -> SocketProxy:
        session = self.get(phone)
        if session is None:
            raise SessionNotFoundError(phone)
        if not session.connected:
            raise SessionNotConnectedError(phone)
        return SocketProxy(self.gateway, session.phone)

    def is_connected(self, phone) -> bool:
        session = self.get(phone)
        return bool(session and session.connected)

    def status(self, phone) -> Dict[str, Any]:
        session = self.get(phone)
        if session is None:
            return {"connected": False, "error": "No session found"}
        with self._lock:
            return session.to_status()

    def list_sessions(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [s.to_dict() for s in self._sessions.values()]

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for s in self._sessions.values() if s.connected)

    # --- Lifecycle ---

    def start(self, phone) -> WhatsAppSession:
        phone = normalize_phone(phone)
        if not phone:
            raise ValidationError("Phone number is required")

        if self.get(phone) is not None:
            # Replace the live socket but keep the stored credentials
            self.clear_session(phone, full_reset=False)

        logger.info(f"Starting connection for {phone}")
        return self._open(phone)

    def _open(self, phone: str, previous: Optional[WhatsAppSession] = None) -> WhatsAppSession:
        with self._lock:
            self._generation += 1
            session = WhatsAppSession(phone, self._generation)
            if previous is not None:
                session.reconnect_attempts = previous.reconnect_attempts
                session.last_connected = previous.last_connected
            self._sessions[phone] = session
            self._changed.notify_all()

        try:
            self.gateway.start_session(phone, self.webhook_url, int(self.connection_timeout * 1000))
        except GatewayError as e:
            logger.error(f"Gateway refused to start {phone}: {e}")
            if previous is None:
                with self._lock:
                    session.state = SessionState.CLOSED
                    session.error = f"Failed to start session: {e}"
                    self._changed.notify_all()
                self._persist(session)
                raise
            # A failed reconnect counts as another close
            self._on_close(session, {"error": {"output": {
                "statusCode": e.status_code,
                "payload": {"message": str(e)},
            }}})
            return session

        self._arm_timer(session, self.connection_timeout, self._on_connection_timeout)
        self._persist(session)
        return session

    def wait_for_pairing(self, phone, timeout: float) -> Dict[str, Any]:
        """Blocks until the session shows a QR, link code, connection or error."""
        phone = normalize_phone(phone)
        deadline = time.monotonic() + timeout
        with self._changed:
            while True:
                session = self._sessions.get(phone)
                if session is None:
                    return {"qrCode": None, "linkCode": None, "message": "No session found", "connected": False}
                if session.qr_code or session.link_code or session.connected or session.error:
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    session.error = "Connection timed out. Please try again."
                    break
                self._changed.wait(remaining)

            return {
                "qrCode": session.qr_code,
                "linkCode": session.link_code,
                "message": session.error or "Session initiated",
                "connected": session.connected,
            }

    def logout(self, phone) -> None:
        phone = normalize_phone(phone)
        session = self.get(phone)
        if session is not None and session.state not in (SessionState.CLOSED, SessionState.LOGGED_OUT):
            try:
                self.gateway.logout(phone)
                logger.info(f"Logged out for {phone}")
            except GatewayError as e:
                logger.error(f"Logout failed for {phone}: {e}")
        self.clear_session(phone, full_reset=True)

    def clear_session(self, phone, full_reset: bool = True) -> bool:
        """Ends the socket and forgets the session; full_reset also deletes its auth."""
        phone = normalize_phone(phone)
        with self._lock:
            session = self._sessions.pop(phone, None)
            if session is not None:
                session.stopped = True
                self._cancel_timers(session)
            self._changed.notify_all()

        if session is not None:
            try:
                self.gateway.end_session(phone)
            except GatewayError as e:
                logger.warning(f"Error ending session for {phone}: {e}")

        if full_reset:
            try:
                self.gateway.clear_state(phone, full_reset=True)
            except GatewayError as e:
                logger.error(f"Error clearing auth for {phone}: {e}")

        if self.store is not None:
            self.store.save_session(phone, connected=False, state=SessionState.CLOSED.value,
                                    qr_code=None, link_code=None)
        logger.info(f"Session cleared for {phone}")
        return session is not None

    def clear_state(self, phone, full_reset: bool = False) -> bool:
        phone = normalize_phone(phone)
        if full_reset:
            self.clear_session(phone, full_reset=True)
            logger.info(f"Full session cleared for {phone}")
            return True
        try:
            self.gateway.clear_state(phone, full_reset=False)
        except GatewayError as e:
            logger.error(f"Clear state error for {phone}: {e}")
            return False
        logger.info(f"Sync state cleared for {phone}")
        return True

    def restore_sessions(self) -> int:
        """Restarts sockets for phones that were connected when the process stopped."""
        if self.store is None:
            return 0
        restored = 0
        for phone in self.store.restorable_phones():
            try:
                self.start(phone)
                restored += 1
            except GatewayError as e:
                logger.error(f"Could not restore session for {phone}: {e}")
        logger.info(f"Restored {restored} session(s)")
        return restored

    def shutdown(self) -> None:
        """Ends every socket; stored credentials are kept for the next start."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            for session in sessions:
                session.stopped = True
                self._cancel_timers(session)
            self._changed.notify_all()

        logger.info(f"Cleaning up {len(sessions)} active session(s)")
        for session in sessions:
            try:
                self.gateway.end_session(session.phone)
            except GatewayError as e:
                logger.warning(f"Error ending session for {session.phone}: {e}")

    # --- Connection events ---

    def handle_connection_update(self, phone, update: Dict[str, Any]) -> None:
        session = self.get(phone)
        if session is None:
            logger.debug(f"Connection update for unknown session {phone} ignored")
            return

        connection = update.get("connection")
        logger.info(f"Connection update for {session.phone}: connection={connection} hasQR={bool(update.get('qr'))}")

        if update.get("qr"):
            self._on_qr(session, update["qr"])
        if connection == "open":
            self._on_open(session)
        elif connection == "close":
            self._on_close(session, update.get("lastDisconnect") or {})

    def _on_qr(self, session: WhatsAppSession, qr: str) -> None:
        with self._lock:
            if session.qr_exhausted:
                return
            session.qr_attempts += 1
            session.qr_code = qr
            session.state = SessionState.AWAITING_PAIRING
            attempts = session.qr_attempts
            wants_link_code = attempts == 1 and not session.link_code
            self._changed.notify_all()

        logger.info(f"QR code generated for {session.phone} (attempt {attempts})")
        self._broadcast("qr", {"phone": session.phone, "qr": qr})

        if wants_link_code:
            try:
                code = self.gateway.request_pairing_code(session.phone)
            except GatewayError as e:
                # The QR code remains usable
                logger.error(f"Failed to get pairing code for {session.phone}: {e}")
            else:
                with self._lock:
                    session.link_code = code
                    self._changed.notify_all()
                logger.info(f"Pairing code for {session.phone}: {code}")
                self._broadcast("linkCode", {"phone": session.phone, "code": code})

        if attempts >= self.max_qr_attempts:
            with self._lock:
                session.qr_exhausted = True
                session.error = f"Max QR attempts reached ({self.max_qr_attempts})"
                self._changed.notify_all()
            logger.warning(session.error + f" for {session.phone}")
            try:
                self.gateway.close_socket(session.phone)
            except GatewayError as e:
                logger.error(f"Could not close socket for {session.phone}: {e}")

        self._persist(session)

    def _on_open(self, session: WhatsAppSession) -> None:
        with self._lock:
            session.state = SessionState.OPEN
            session.error = None
            session.qr_code = None
            session.link_code = None
            session.qr_attempts = 0
            session.reconnect_attempts = 0
            session.last_connected = datetime.now(timezone.utc)
            self._cancel_timers(session)
            self._changed.notify_all()

        logger.info(f"Connection OPEN for {session.phone}")
        self._persist(session)
        self._broadcast("status", {"phone": session.phone, "connected": True})

    def _on_close(self, session: WhatsAppSession, last_disconnect: Dict[str, Any]) -> None:
        error = last_disconnect.get("error") or {}
        output = error.get("output") or {}
        code = output.get("statusCode")
        reason = (output.get("payload") or {}).get("message") or "Unknown"
        logged_out = code in LOGGED_OUT_CODES

        with self._lock:
            self._cancel_timers(session)
            session.state = SessionState.LOGGED_OUT if logged_out else SessionState.CLOSED
            if not session.qr_exhausted:
                session.error = f"Connection closed (code: {code}, reason: {reason})"
            should_reconnect = (
                not logged_out
                and not session.qr_exhausted
                and not session.stopped
                and session.reconnect_attempts < self.max_reconnect_attempts
            )
            if should_reconnect:
                session.reconnect_attempts += 1
            self._changed.notify_all()

        logger.warning(f"Connection closed for {session.phone}: {session.error}")
        self._persist(session)
        self._broadcast("status", {"phone": session.phone, "connected": False, "error": session.error})

        if should_reconnect:
            logger.info(f"Reconnecting {session.phone} in {self.reconnect_delay} seconds "
                        f"(attempt {session.reconnect_attempts}/{self.max_reconnect_attempts})")
            self._arm_timer(session, self.reconnect_delay, self._reconnect)
        elif logged_out:
            logger.info(f"Not reconnecting {session.phone} (logout required)")
            self.clear_session(session.phone, full_reset=True)
        else:
            self._retire(session)

    def _reconnect(self, session: WhatsAppSession) -> None:
        if session.stopped:
            return
        logger.info(f"Reconnecting {session.phone}")
        self._open(session.phone, previous=session)

    def _on_connection_timeout(self, session: WhatsAppSession) -> None:
        with self._lock:
            if session.connected or session.stopped:
                return
            session.error = "Connection timeout"
            # Never paired: the half-written auth is discarded as well
            full_reset = session.last_connected is None

        logger.warning(f"Connection timeout for {session.phone}")
        self.clear_session(session.phone, full_reset=full_reset)
        self._broadcast("status", {"phone": session.phone, "connected": False, "error": "Connection timeout"})

    def _retire(self, session: WhatsAppSession) -> None:
        """Terminal close: the socket goes away, the entry stays so status can report why."""
        with self._lock:
            session.stopped = True
        try:
            self.gateway.end_session(session.phone)
        except GatewayError as e:
            logger.warning(f"Error ending session for {session.phone}: {e}")

    # --- Internals ---

    def _arm_timer(self, session: WhatsAppSession, delay: float, callback) -> None:
        timer = self._timer_factory(delay, self._fire, args=(session.phone, session.generation, callback))
        timer.daemon = True
        with self._lock:
            session.timers.append(timer)
        timer.start()

    def _fire(self, phone: str, generation: int, callback) -> None:
        with self._lock:
            session = self._sessions.get(phone)
            if session is None or session.generation != generation:
                logger.debug(f"Stale timer for {phone} ignored")
                return
        try:
            callback(session)
        except Exception:
            logger.exception(f"Session timer failed for {phone}")

    @staticmethod
    def _cancel_timers(session: WhatsAppSession) -> None:
        for timer in session.timers:
            timer.cancel()
        session.timers = []

    def _persist(self, session: WhatsAppSession) -> None:
        if self.store is None:
            return
        self.store.save_session(
            session.phone,
            connected=session.connected,
            state=session.state.value,
            qr_code=session.qr_code,
            link_code=session.link_code,
            error=session.error,
            last_connected=session.last_connected,
        )

    def _broadcast(self, event: str, data: Dict[str, Any]) -> None:
        if self._broadcast_fn is None:
            return
        try:
            self._broadcast_fn(event, data)
        except Exception:
            logger.exception(f"Broadcast of '{event}' failed")
