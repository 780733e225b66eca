"""Simulation events and event types."""

from enum import Enum
from typing import Any, Dict
from dataclasses import dataclass, field
from loguru import logger


class EventType(Enum):
    """Tags of the events exchanged between simulation entities."""

    # Broker <-> datacenter handshake
    RESOURCE_CHARACTERISTICS_REQUEST = "resource_characteristics_request"
    RESOURCE_CHARACTERISTICS = "resource_characteristics"

    # VM lifecycle
    VM_CREATE = "vm_create"
    VM_CREATE_ACK = "vm_create_ack"
    VM_DESTROY = "vm_destroy"
    VM_DESTROY_ACK = "vm_destroy_ack"

    # Cloudlet lifecycle
    CLOUDLET_SUBMIT = "cloudlet_submit"
    CLOUDLET_TRANSFER_COMPLETE = "cloudlet_transfer_complete"
    CLOUDLET_CANCEL = "cloudlet_cancel"
    CLOUDLET_RETURN = "cloudlet_return"

    # Internal datacenter tick
    VM_DATACENTER_EVENT = "vm_datacenter_event"


@dataclass
class SimulationEvent:
    """A simulation event with timestamp, routing and payload."""

    timestamp: float
    event_type: EventType
    source: int
    destination: int
    data: Dict[str, Any] = field(default_factory=dict)
    serial: int = 0
    cancelled: bool = False

    def __post_init__(self) -> None:
        """Log event creation."""
        logger.debug(
            f"Event created: {self.event_type.value} at {self.timestamp:.4f}s "
            f"from entity {self.source} to entity {self.destination}"
        )

    def cancel(self) -> None:
        """Mark the event so that it is skipped when its time comes."""
        self.cancelled = True
