import asyncio
import logging
from typing import Any, Dict, Optional

from iscsi_bridge.core.events.event_aggregator import EventAggregator, LabeledEvent
from iscsi_bridge.core.events.iscsi_events import (
    ISCSIInitiatorChanged,
    ISCSINodeAdded,
    ISCSINodeChanged,
    ISCSINodeRemoved,
)
from iscsi_bridge.core.exceptions import ServiceError
from iscsi_bridge.domains.presentation.websocket_manager import WebSocketManager


def serialize_event(labeled: LabeledEvent) -> Dict[str, Any]:
    event = labeled.event
    if isinstance(event, (ISCSINodeAdded, ISCSINodeChanged)):
        data = {"node": event.node.model_dump(mode="json")}
    elif isinstance(event, ISCSINodeRemoved):
        data = {"id": event.node_id}
    elif isinstance(event, ISCSIInitiatorChanged):
        # Only what changed
        data = {
            key: value
            for key, value in (("name", event.name), ("ibft", event.ibft))
            if value is not None
        }
    else:
        data = {}

    return {
        "type": type(event).__name__,
        "source": labeled.source,
        "data": data,
        "timestamp": event.timestamp.isoformat(),
    }


class EventStreamBroadcaster:
    """Pushes every event of the aggregated stream to the WebSocket clients."""

    def __init__(self, websocket_manager: WebSocketManager):
        self.websocket_manager = websocket_manager
        self._events: Optional[EventAggregator] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, events: EventAggregator) -> None:
        if self.is_running:
            logging.warning("Event stream broadcaster already running")
            return
        self._events = events
        self._task = asyncio.create_task(self.run(events))
        logging.info(f"Broadcasting event sources: {', '.join(events.labels)}")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._events is not None:
            await self._events.aclose()
            self._events = None
        logging.info("Event stream broadcaster stopped")

    async def run(self, events: EventAggregator) -> None:
        try:
            async for labeled in events:
                logging.debug(f"Event from {labeled.source}: {type(labeled.event).__name__}")
                self.websocket_manager.publish(serialize_event(labeled))
        except ServiceError as e:
            logging.error(f"iSCSI event stream failed: {e}")
        except Exception as e:
            logging.error(f"Unexpected error in iSCSI event stream: {e}")
        finally:
            await events.aclose()
        logging.info("iSCSI event stream ended")
