"""Shared fixtures: a Flask app wired to a mocked Baileys gateway and no database."""

from unittest.mock import MagicMock

import pytest

from Connexa.app import create_app
from Connexa.app.config import TestConfig

PHONE = "254700000001"


class FakeTimer:
    """Stands in for threading.Timer; tests fire it by hand."""

    def __init__(self, delay, function, args=None):
        self.delay = delay
        self.function = function
        self.args = args or ()
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function(*self.args)


class FakeTimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, delay, function, args=None):
        timer = FakeTimer(delay, function, args)
        self.timers.append(timer)
        return timer


@pytest.fixture
def timers():
    return FakeTimerFactory()


@pytest.fixture
def gateway():
    gw = MagicMock()
    gw.request_pairing_code.return_value = "ABCD1234"
    gw.call.return_value = {"key": {"id": "MSG1"}}
    return gw


@pytest.fixture
def app(gateway, tmp_path):
    class Config(TestConfig):
        MEDIA_DIR = str(tmp_path / "media")
        UPLOAD_FOLDER = str(tmp_path / "media" / "uploads")

    return create_app(Config, gateway=gateway)


@pytest.fixture
def services(app):
    return app.extensions["connexa"]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def connected(services):
    """Opens a session for PHONE as if the bridge had reported connection=open."""
    manager = services.session_manager
    manager.start(PHONE)
    manager.handle_connection_update(PHONE, {"connection": "open"})
    yield PHONE
    manager.shutdown()
