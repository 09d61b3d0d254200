"""
The iSCSI event stream.

Combines two sources into one aggregated stream:

* ``iscsi_nodes``: nodes added to, removed from or changed in the collection.
* ``initiator``: changes to the initiator name or its iBFT flag.
"""
from typing import AsyncIterator, Callable, Optional

from iscsi_bridge.bus.connection import BusConnection
from iscsi_bridge.bus.watchers import (
    NodeCollectionWatcher,
    PropertyChangeWatcher,
    RawChange,
    Subscription,
)
from iscsi_bridge.config import Settings
from iscsi_bridge.core.events.domain_event import DomainEvent
from iscsi_bridge.core.events.event_aggregator import EventAggregator, open_event_streams
from iscsi_bridge.domains.iscsi.translator import translate

Translator = Callable[[RawChange], Optional[DomainEvent]]


class TranslatedStream:
    """Maps a subscription through the translator, skipping untranslatable changes."""

    def __init__(self, subscription: Subscription, translator: Translator = translate):
        self._subscription = subscription
        self._translator = translator

    def __aiter__(self) -> "TranslatedStream":
        return self

    async def __anext__(self) -> DomainEvent:
        while True:
            change = await self._subscription.__anext__()
            event = self._translator(change)
            if event is not None:
                return event

    async def aclose(self) -> None:
        await self._subscription.aclose()


async def nodes_stream(bus: BusConnection, settings: Settings) -> AsyncIterator[DomainEvent]:
    watcher = NodeCollectionWatcher(
        bus, settings.storage_object_path, settings.iscsi_nodes_path, settings.node_interface
    )
    return TranslatedStream(await watcher.subscribe())


async def initiator_stream(bus: BusConnection, settings: Settings) -> AsyncIterator[DomainEvent]:
    watcher = PropertyChangeWatcher(
        bus, settings.storage_object_path, settings.initiator_interface
    )
    return TranslatedStream(await watcher.subscribe())


async def iscsi_stream(bus: BusConnection, settings: Settings) -> EventAggregator:
    """Opens both iSCSI sources; fails without producing events if either cannot subscribe."""
    return await open_event_streams(
        [
            ("iscsi_nodes", lambda: nodes_stream(bus, settings)),
            ("initiator", lambda: initiator_stream(bus, settings)),
        ]
    )
