"""
Signal watchers exposing D-Bus change notifications as async iterators.

A watcher sets up its match rules eagerly in ``subscribe()`` so setup errors
surface once, before anything is consumed. After that the subscription is an
infinite stream that only ends on ``aclose()`` or when the bus goes away.
Signals that cannot be decoded are logged and dropped.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .connection import (
    OBJECT_MANAGER_INTERFACE,
    PROPERTIES_INTERFACE,
    BusConnection,
    Signal,
)
from ..core.exceptions import ServiceError, SubscriptionError


class ChangeKind(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"


@dataclass(frozen=True)
class RawChange:
    """Changed property values of one bus object."""
    path: str
    properties: Dict[str, Any]


@dataclass(frozen=True)
class NodeChange(RawChange):
    """A change in the node collection; ``properties`` is the full known state."""
    kind: ChangeKind = ChangeKind.CHANGED


SignalDecoder = Callable[[Signal], Optional[RawChange]]

_CLOSED = object()


class Subscription:
    """Queue-backed, non-restartable async iterator of raw changes."""

    def __init__(self, bus: BusConnection, name: str):
        self._bus = bus
        self.name = name
        self._queue: asyncio.Queue = asyncio.Queue()
        self._rules: List[str] = []
        self._decoder: Optional[SignalDecoder] = None
        self._disconnect_task: Optional[asyncio.Task] = None
        self._held: Optional[List[Signal]] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self, rules: List[str], decoder: SignalDecoder, hold: bool = False) -> None:
        """
        Registers the signal handler and adds the match rules.

        With ``hold`` set, signals are buffered undecoded until ``resume()``,
        so the decoder can be given state read after the rules were in place.
        """
        self._decoder = decoder
        self._held = [] if hold else None
        self._bus.add_signal_handler(self._on_signal)
        try:
            for rule in rules:
                await self._bus.add_match(rule)
                self._rules.append(rule)
        except BaseException:
            await self.aclose()
            raise
        self._disconnect_task = asyncio.create_task(self._close_on_disconnect())
        logging.info(f"Subscribed to {self.name} ({len(rules)} match rule(s))")

    def resume(self) -> None:
        """Decodes the signals held back since ``open()`` and stops holding."""
        held, self._held = self._held or [], None
        if held:
            logging.debug(f"{self.name}: replaying {len(held)} signal(s) received during setup")
        for signal in held:
            self._on_signal(signal)

    def _on_signal(self, signal: Signal) -> None:
        if self._closed:
            return
        if self._held is not None:
            self._held.append(signal)
            return
        try:
            change = self._decoder(signal)
        except Exception as e:
            logging.warning(
                f"{self.name}: dropping malformed {signal.member} signal from {signal.path}: {e}"
            )
            return
        if change is not None:
            self._queue.put_nowait(change)

    async def _close_on_disconnect(self) -> None:
        await self._bus.wait_for_disconnect()
        if not self._closed:
            logging.warning(f"{self.name}: bus disconnected, ending subscription")
            self._release()

    def _release(self) -> None:
        self._closed = True
        self._bus.remove_signal_handler(self._on_signal)
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> RawChange:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def aclose(self) -> None:
        """Releases the signal handler and match rules. Idempotent."""
        if self._closed:
            return
        self._release()

        if self._disconnect_task is not None:
            self._disconnect_task.cancel()

        for rule in self._rules:
            try:
                await self._bus.remove_match(rule)
            except ServiceError as e:
                logging.debug(f"{self.name}: could not remove match rule: {e}")
        self._rules.clear()
        logging.info(f"Unsubscribed from {self.name}")


def _properties_changed(signal: Signal) -> Tuple[str, Dict[str, Any]]:
    """Splits a PropertiesChanged body into (interface, changed properties)."""
    if len(signal.body) < 2:
        raise ValueError(f"expected (interface, changed, invalidated), got {signal.body!r}")
    interface, changed = signal.body[0], signal.body[1]
    if not isinstance(interface, str) or not isinstance(changed, dict):
        raise ValueError(f"unexpected PropertiesChanged body {signal.body!r}")
    return interface, changed


class PropertyChangeWatcher:
    """Watches PropertiesChanged for one interface on one object."""

    def __init__(self, bus: BusConnection, path: str, interface: str):
        self._bus = bus
        self._path = path
        self._interface = interface

    def match_rule(self) -> str:
        return (
            f"type='signal',sender='{self._bus.service_name}',"
            f"interface='{PROPERTIES_INTERFACE}',member='PropertiesChanged',"
            f"path='{self._path}',arg0='{self._interface}'"
        )

    async def subscribe(self) -> Subscription:
        subscription = Subscription(self._bus, f"{self._interface} properties")
        await subscription.open([self.match_rule()], self._decode)
        return subscription

    def _decode(self, signal: Signal) -> Optional[RawChange]:
        if (
            signal.path != self._path
            or signal.interface != PROPERTIES_INTERFACE
            or signal.member != "PropertiesChanged"
        ):
            return None
        interface, changed = _properties_changed(signal)
        if interface != self._interface:
            return None
        return RawChange(path=signal.path, properties=dict(changed))


class NodeCollectionWatcher:
    """
    Watches the collection of iSCSI node objects.

    Node additions and removals come from the object manager, node updates from
    PropertiesChanged on each node. The watcher keeps the last known properties
    of every node so update records carry the complete node state.
    """

    def __init__(
        self, bus: BusConnection, root_path: str, nodes_path: str, node_interface: str
    ):
        self._bus = bus
        self._root_path = root_path
        self._nodes_path = nodes_path
        self._node_interface = node_interface
        self._nodes: Dict[str, Dict[str, Any]] = {}

    def match_rules(self) -> List[str]:
        sender = self._bus.service_name
        return [
            f"type='signal',sender='{sender}',interface='{OBJECT_MANAGER_INTERFACE}',"
            f"member='InterfacesAdded',path='{self._root_path}'",
            f"type='signal',sender='{sender}',interface='{OBJECT_MANAGER_INTERFACE}',"
            f"member='InterfacesRemoved',path='{self._root_path}'",
            f"type='signal',sender='{sender}',interface='{PROPERTIES_INTERFACE}',"
            f"member='PropertiesChanged',path_namespace='{self._nodes_path}',"
            f"arg0='{self._node_interface}'",
        ]

    async def subscribe(self) -> Subscription:
        subscription = Subscription(self._bus, "iSCSI nodes")
        # Signals arriving before the snapshot are decoded against it afterwards
        await subscription.open(self.match_rules(), self._decode, hold=True)

        try:
            objects = await self._bus.get_managed_objects(self._root_path)
        except ServiceError as e:
            await subscription.aclose()
            raise SubscriptionError(f"Could not read the current iSCSI nodes: {e}") from e

        self._nodes = {
            path: dict(interfaces[self._node_interface])
            for path, interfaces in objects.items()
            if self._is_node(path) and self._node_interface in interfaces
        }
        logging.debug(f"iSCSI node cache primed with {len(self._nodes)} node(s)")
        subscription.resume()
        return subscription

    def _is_node(self, path: str) -> bool:
        return path.startswith(self._nodes_path + "/")

    def _decode(self, signal: Signal) -> Optional[NodeChange]:
        if signal.interface == OBJECT_MANAGER_INTERFACE and signal.path == self._root_path:
            if signal.member == "InterfacesAdded":
                return self._on_interfaces_added(signal.body)
            if signal.member == "InterfacesRemoved":
                return self._on_interfaces_removed(signal.body)
            return None

        if (
            signal.interface == PROPERTIES_INTERFACE
            and signal.member == "PropertiesChanged"
            and self._is_node(signal.path)
        ):
            interface, changed = _properties_changed(signal)
            if interface != self._node_interface:
                return None
            properties = self._nodes.get(signal.path)
            if properties is None:
                # Nodes only come into existence through InterfacesAdded
                logging.warning(f"Ignoring property change for unknown iSCSI node {signal.path}")
                return None
            properties.update(changed)
            return NodeChange(path=signal.path, properties=dict(properties))

        return None

    def _on_interfaces_added(self, body: List[Any]) -> Optional[NodeChange]:
        path, interfaces = body[0], body[1]
        if not isinstance(interfaces, dict):
            raise ValueError(f"unexpected InterfacesAdded body {body!r}")
        if not self._is_node(path) or self._node_interface not in interfaces:
            return None
        properties = dict(interfaces[self._node_interface])
        self._nodes[path] = properties
        return NodeChange(path=path, properties=dict(properties), kind=ChangeKind.ADDED)

    def _on_interfaces_removed(self, body: List[Any]) -> Optional[NodeChange]:
        path, interfaces = body[0], body[1]
        if not isinstance(interfaces, list):
            raise ValueError(f"unexpected InterfacesRemoved body {body!r}")
        if not self._is_node(path) or self._node_interface not in interfaces:
            return None
        properties = self._nodes.pop(path, {})
        return NodeChange(path=path, properties=properties, kind=ChangeKind.REMOVED)
