"""
Turns raw bus changes into iSCSI domain events.

Translation is best effort: a property with an unexpected value is logged and
ignored, and a change with nothing usable in it produces no event. A single
bad notification must never break the event stream.
"""
import logging
from typing import Any, Dict, Mapping, Optional

from iscsi_bridge.bus.watchers import ChangeKind, NodeChange, RawChange
from iscsi_bridge.core.events.domain_event import DomainEvent
from iscsi_bridge.core.events.iscsi_events import (
    ISCSIInitiatorChanged,
    ISCSINodeAdded,
    ISCSINodeChanged,
    ISCSINodeRemoved,
)
from iscsi_bridge.domains.iscsi.models import NODE_PROPERTIES, ISCSINode, node_id_from_path


def get_optional_property(
    properties: Mapping[str, Any], key: str, expected_type: type, context: str
) -> Optional[Any]:
    """Returns properties[key] if present and of the expected type, else None."""
    if key not in properties:
        return None
    value = properties[key]
    # bool is an int subclass; never accept it for numeric properties
    wrong_bool = expected_type is not bool and isinstance(value, bool)
    if wrong_bool or not isinstance(value, expected_type):
        logging.warning(
            f"Could not read {context} property {key}: "
            f"expected {expected_type.__name__}, got {value!r}"
        )
        return None
    return value


def translate_initiator_change(properties: Mapping[str, Any]) -> Optional[ISCSIInitiatorChanged]:
    name = get_optional_property(properties, "InitiatorName", str, "initiator")
    ibft = get_optional_property(properties, "IBFT", bool, "initiator")
    if name is None and ibft is None:
        return None
    return ISCSIInitiatorChanged(name=name, ibft=ibft)


def decode_node(node_id: int, properties: Mapping[str, Any]) -> ISCSINode:
    values: Dict[str, Any] = {}
    for key, field in NODE_PROPERTIES.items():
        expected_type = ISCSINode.model_fields[field].annotation
        value = get_optional_property(properties, key, expected_type, f"iSCSI node {node_id}")
        if value is not None:
            values[field] = value

    port = values.get("port")
    if port is not None and not 0 <= port <= 65535:
        logging.warning(f"Ignoring out of range port {port} of iSCSI node {node_id}")
        del values["port"]

    return ISCSINode(id=node_id, **values)


def translate_node_change(change: NodeChange) -> Optional[DomainEvent]:
    node_id = node_id_from_path(change.path)
    if node_id is None:
        logging.warning(f"Ignoring iSCSI node change for unexpected path {change.path}")
        return None

    if change.kind == ChangeKind.REMOVED:
        return ISCSINodeRemoved(node_id=node_id)

    node = decode_node(node_id, change.properties)
    if change.kind == ChangeKind.ADDED:
        return ISCSINodeAdded(node=node)
    return ISCSINodeChanged(node=node)


def translate(change: RawChange) -> Optional[DomainEvent]:
    if isinstance(change, NodeChange):
        return translate_node_change(change)
    return translate_initiator_change(change.properties)
