"""
Pytest configuration and shared fixtures for the HTTP surface.
"""

import importlib

import pytest


@pytest.fixture(autouse=True)
def api_auth_disabled(monkeypatch):
    """
    Run every test with API key auth off unless the test turns it on.

    The auth module reads its env once at import, so it is reloaded after
    the env is restored; routers built earlier see the reloaded globals.
    """
    monkeypatch.setenv("API_AUTH_ENABLED", "false")
    monkeypatch.delenv("API_KEY", raising=False)

    yield

    monkeypatch.undo()
    import src.api.dependencies.auth as auth_module

    importlib.reload(auth_module)


@pytest.fixture(autouse=True)
def no_leaked_scheduler_service():
    """Clear the API's service singleton after each test."""
    yield

    from src.api._scheduler_state import set_scheduler_service

    set_scheduler_service(None)
