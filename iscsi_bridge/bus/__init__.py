"""
D-Bus access layer: the connection adapter and the signal watchers built on it.
"""
from .connection import BusConnection, Signal, connect_bus
from .watchers import (
    ChangeKind,
    NodeChange,
    NodeCollectionWatcher,
    PropertyChangeWatcher,
    RawChange,
    Subscription,
)

__all__ = [
    "BusConnection",
    "Signal",
    "connect_bus",
    "ChangeKind",
    "NodeChange",
    "NodeCollectionWatcher",
    "PropertyChangeWatcher",
    "RawChange",
    "Subscription",
]
