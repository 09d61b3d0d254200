from functools import lru_cache
from typing import Any, Dict

from .bus.connection import BusConnection
from .config import Settings
from .domains.iscsi.client import ISCSIClient
from .domains.presentation.event_broadcaster import EventStreamBroadcaster
from .domains.presentation.websocket_manager import WebSocketManager

# Global singleton instances
_singletons: Dict[str, Any] = {}


@lru_cache
def get_settings() -> Settings:
    """Hent Settings singleton instance."""
    return Settings()


def set_bus_connection(bus: BusConnection) -> None:
    """Registers the connection opened at startup."""
    _singletons["bus_connection"] = bus


def get_bus_connection() -> BusConnection:
    if "bus_connection" not in _singletons:
        raise RuntimeError("D-Bus connection has not been established")
    return _singletons["bus_connection"]


def get_iscsi_client() -> ISCSIClient:
    if "iscsi_client" not in _singletons:
        _singletons["iscsi_client"] = ISCSIClient(
            bus=get_bus_connection(), settings=get_settings()
        )
    return _singletons["iscsi_client"]


def get_websocket_manager() -> WebSocketManager:
    if "websocket_manager" not in _singletons:
        _singletons["websocket_manager"] = WebSocketManager()
    return _singletons["websocket_manager"]


def get_event_broadcaster() -> EventStreamBroadcaster:
    if "event_broadcaster" not in _singletons:
        _singletons["event_broadcaster"] = EventStreamBroadcaster(
            websocket_manager=get_websocket_manager()
        )
    return _singletons["event_broadcaster"]


def reset_singletons() -> None:
    _singletons.clear()
    get_settings.cache_clear()
