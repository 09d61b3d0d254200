"""
Thin asyncio adapter over a dbus-fast MessageBus.

Everything above this module sees plain Python values: variants are unpacked
on the way in and failures are raised as ServiceError subclasses.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from dbus_fast import BusType, Message, MessageType, Variant
from dbus_fast.aio import MessageBus
from dbus_fast.unpack import unpack_variants

from ..config import Settings
from ..core.exceptions import (
    BusCallError,
    BusTimeoutError,
    MalformedReplyError,
    ServiceError,
    SubscriptionError,
)

DBUS_SERVICE = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"
OBJECT_MANAGER_INTERFACE = "org.freedesktop.DBus.ObjectManager"


@dataclass(frozen=True)
class Signal:
    """A received D-Bus signal with its body already unpacked."""

    path: str
    interface: str
    member: str
    body: List[Any]


SignalHandler = Callable[[Signal], None]


class BusConnection:
    def __init__(self, bus: MessageBus, service_name: str, call_timeout: float = 30.0):
        self._bus = bus
        self._service_name = service_name
        self._call_timeout = call_timeout
        self._handlers: Dict[SignalHandler, Callable[[Message], None]] = {}

    @property
    def service_name(self) -> str:
        return self._service_name

    async def call(
        self,
        path: str,
        interface: str,
        member: str,
        signature: str = "",
        body: Sequence[Any] = (),
        destination: Optional[str] = None,
    ) -> List[Any]:
        """Performs one method call round trip and returns the unpacked reply body."""
        message = Message(
            destination=destination or self._service_name,
            path=path,
            interface=interface,
            member=member,
            signature=signature,
            body=list(body),
        )
        try:
            reply = await asyncio.wait_for(self._bus.call(message), self._call_timeout)
        except asyncio.TimeoutError as e:
            raise BusTimeoutError(
                f"{interface}.{member} on {path} timed out after {self._call_timeout}s"
            ) from e
        except Exception as e:
            raise ServiceError(f"D-Bus call {interface}.{member} on {path} failed: {e}") from e

        if reply is None:
            raise MalformedReplyError(f"No reply to {interface}.{member} on {path}")
        if reply.message_type == MessageType.ERROR:
            detail = reply.body[0] if reply.body else "no details"
            raise BusCallError(reply.error_name, f"{interface}.{member} on {path}: {detail}")

        return unpack_variants(reply.body)

    async def get_all_properties(self, path: str, interface: str) -> Dict[str, Any]:
        reply = await self.call(path, PROPERTIES_INTERFACE, "GetAll", "s", [interface])
        if not reply or not isinstance(reply[0], dict):
            raise MalformedReplyError(f"Unexpected GetAll reply for {interface} on {path}")
        return reply[0]

    async def set_property(
        self, path: str, interface: str, name: str, signature: str, value: Any
    ) -> None:
        await self.call(
            path, PROPERTIES_INTERFACE, "Set", "ssv", [interface, name, Variant(signature, value)]
        )

    async def get_managed_objects(self, path: str) -> Dict[str, Dict[str, Dict[str, Any]]]:
        reply = await self.call(path, OBJECT_MANAGER_INTERFACE, "GetManagedObjects")
        if not reply or not isinstance(reply[0], dict):
            raise MalformedReplyError(f"Unexpected GetManagedObjects reply on {path}")
        return reply[0]

    async def add_match(self, rule: str) -> None:
        try:
            await self.call(DBUS_PATH, DBUS_SERVICE, "AddMatch", "s", [rule], destination=DBUS_SERVICE)
        except ServiceError as e:
            raise SubscriptionError(f"Could not add match rule {rule!r}: {e}") from e
        logging.debug(f"Added D-Bus match rule: {rule}")

    async def remove_match(self, rule: str) -> None:
        await self.call(DBUS_PATH, DBUS_SERVICE, "RemoveMatch", "s", [rule], destination=DBUS_SERVICE)
        logging.debug(f"Removed D-Bus match rule: {rule}")

    def add_signal_handler(self, handler: SignalHandler) -> None:
        def on_message(message: Message) -> None:
            if message.message_type != MessageType.SIGNAL:
                return
            handler(
                Signal(
                    path=message.path,
                    interface=message.interface,
                    member=message.member,
                    body=unpack_variants(message.body),
                )
            )

        self._handlers[handler] = on_message
        self._bus.add_message_handler(on_message)

    def remove_signal_handler(self, handler: SignalHandler) -> None:
        on_message = self._handlers.pop(handler, None)
        if on_message is not None:
            self._bus.remove_message_handler(on_message)

    async def wait_for_disconnect(self) -> None:
        try:
            await self._bus.wait_for_disconnect()
        except Exception as e:
            logging.warning(f"D-Bus connection closed with error: {e}")

    def disconnect(self) -> None:
        self._bus.disconnect()
        logging.info("D-Bus connection closed")


async def connect_bus(settings: Settings) -> BusConnection:
    """Opens the process-wide bus connection described by the settings."""
    target = settings.dbus_address or "system bus"
    try:
        if settings.dbus_address:
            bus = await MessageBus(bus_address=settings.dbus_address).connect()
        else:
            bus = await MessageBus(bus_type=BusType.SYSTEM).connect()
    except Exception as e:
        raise ServiceError(f"Could not connect to D-Bus at {target}: {e}") from e

    logging.info(f"Connected to D-Bus at {target} (service {settings.dbus_service_name})")
    return BusConnection(bus, settings.dbus_service_name, settings.bus_call_timeout_seconds)
