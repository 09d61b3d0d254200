from dataclasses import dataclass
from typing import Optional

from iscsi_bridge.core.events.domain_event import DomainEvent
from iscsi_bridge.domains.iscsi.models import ISCSINode


@dataclass(frozen=True)
class ISCSINodeAdded(DomainEvent):
    """A node appeared in the storage service's node collection."""
    node: ISCSINode


@dataclass(frozen=True)
class ISCSINodeRemoved(DomainEvent):
    """A node disappeared; only its id is known at this point."""
    node_id: int


@dataclass(frozen=True)
class ISCSINodeChanged(DomainEvent):
    """A known node changed (startup mode, connection state, ...)."""
    node: ISCSINode


@dataclass(frozen=True)
class ISCSIInitiatorChanged(DomainEvent):
    """Initiator properties changed. Unchanged properties are None."""
    name: Optional[str] = None
    ibft: Optional[bool] = None
