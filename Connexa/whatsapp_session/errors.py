class ConnexaError(Exception):
    """Base class for errors raised by the WhatsApp backend."""


class ValidationError(ConnexaError):
    pass


class SessionNotFoundError(ConnexaError):
    def __init__(self, phone):
        super().__init__(f"No active session for {phone}")
        self.phone = phone


class SessionNotConnectedError(ConnexaError):
    def __init__(self, phone):
        super().__init__("Not connected")
        self.phone = phone


class GatewayError(ConnexaError):
    """The Baileys bridge rejected a request or could not be reached."""

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


class AIServiceNotConfiguredError(ConnexaError):
    def __init__(self):
        super().__init__("AI service not configured. Please set GROQ_API_KEY environment variable.")


class AIResponseError(ConnexaError):
    """The model answered with something that could not be used."""
