"""
Application level tests: health, WebSocket endpoint and the startup/shutdown wiring.
"""

import pytest
from fastapi.testclient import TestClient

from iscsi_bridge import main
from iscsi_bridge.core.exceptions import SubscriptionError
from iscsi_bridge.dependencies import get_event_broadcaster


def test_health(api_client):
    response = api_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "iscsi-bridge"}


def test_websocket_ping_pong(api_client):
    with api_client.websocket_connect("/api/ws/events") as websocket:
        websocket.send_text("ping")
        assert websocket.receive_text() == "pong"


@pytest.fixture
def patched_startup(monkeypatch, fake_bus):
    async def fake_connect_bus(settings):
        return fake_bus

    monkeypatch.setattr(main, "connect_bus", fake_connect_bus)
    monkeypatch.setattr(main, "setup_logging", lambda settings: None)
    return fake_bus


def test_lifespan_subscribes_and_releases(patched_startup):
    fake_bus = patched_startup

    with TestClient(main.app) as client:
        assert len(fake_bus.match_rules) == 4
        assert get_event_broadcaster().is_running
        assert client.get("/api/storage/iscsi/nodes").status_code == 200

    assert fake_bus.match_rules == []
    assert fake_bus.signal_handlers == []
    assert not fake_bus.connected


def test_events_are_pushed_to_websocket_clients(patched_startup):
    fake_bus = patched_startup

    with TestClient(main.app) as client:
        with client.websocket_connect("/api/ws/events") as websocket:
            # Round trip so the client is registered before anything is broadcast
            websocket.send_text("ping")
            assert websocket.receive_text() == "pong"

            client.portal.call(fake_bus.emit_node_added, 3)
            message = websocket.receive_json()

    assert message["type"] == "ISCSINodeAdded"
    assert message["source"] == "iscsi_nodes"
    assert message["data"]["node"]["id"] == 3


def test_startup_fails_when_subscription_fails(patched_startup):
    fake_bus = patched_startup
    fake_bus.failures["GetManagedObjects"] = SubscriptionError("storage service not running")

    with pytest.raises(SubscriptionError):
        with TestClient(main.app):
            pass

    assert not fake_bus.connected
