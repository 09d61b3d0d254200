"""
Pytest configuration og shared fixtures.
"""

import pytest
from fastapi.testclient import TestClient

from iscsi_bridge.dependencies import reset_singletons, set_bus_connection
from tests.fakes import FakeBus, make_settings


@pytest.fixture(autouse=True)
def clean_singletons():
    """Automatically reset singletons before hver test."""
    reset_singletons()
    yield
    reset_singletons()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def fake_bus():
    return FakeBus()


@pytest.fixture
def api_client(fake_bus):
    """HTTP client for the app, wired to the fake bus (lifespan is not run)."""
    from iscsi_bridge.main import app

    set_bus_connection(fake_bus)
    return TestClient(app)
