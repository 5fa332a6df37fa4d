from flask import current_app

EXTENSION_KEY = "connexa"


class Services:
    """Long-lived objects shared by every request of one application."""

    def __init__(self, gateway, store, session_manager, ai_agent, history_manager):
        self.gateway = gateway
        self.store = store
        self.session_manager = session_manager
        self.ai_agent = ai_agent
        self.history_manager = history_manager


def init_services(app, services):
    app.extensions[EXTENSION_KEY] = services
    return services


def _services():
    return current_app.extensions[EXTENSION_KEY]


def get_session_manager():
    return _services().session_manager


def get_store():
    return _services().store


def get_ai_agent():
    return _services().ai_agent


def get_history_manager():
    return _services().history_manager


def get_gateway():
    return _services().gateway
