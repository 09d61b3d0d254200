"""
Domain events emitted by the bridge and the machinery to merge event streams.
"""
from .domain_event import DomainEvent
from .event_aggregator import EventAggregator, EventStreams, LabeledEvent, open_event_streams
from .iscsi_events import (
    ISCSIInitiatorChanged,
    ISCSINodeAdded,
    ISCSINodeChanged,
    ISCSINodeRemoved,
)

__all__ = [
    "DomainEvent",
    "EventAggregator",
    "EventStreams",
    "LabeledEvent",
    "open_event_streams",
    "ISCSIInitiatorChanged",
    "ISCSINodeAdded",
    "ISCSINodeChanged",
    "ISCSINodeRemoved",
]
