"""HTTP and WebSocket bridge for the iSCSI part of the storage D-Bus service."""

__version__ = "0.1.0"
