"""Simulation event tags, payload variants and the SimEvent envelope."""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Dict, Optional, Tuple, Type, Union

from loguru import logger

if TYPE_CHECKING:
    from .resources import Vm
    from .workload import Cloudlet


class EventTag(Enum):
    """Kinds of simulation events."""

    # Vm lifecycle
    VM_CREATE = "vm_create"
    VM_CREATE_ACK = "vm_create_ack"
    VM_DESTROY = "vm_destroy"

    # Cloudlet lifecycle
    CLOUDLET_SUBMIT = "cloudlet_submit"
    CLOUDLET_RETURN = "cloudlet_return"
    CLOUDLET_CANCEL = "cloudlet_cancel"
    CLOUDLET_PAUSE = "cloudlet_pause"
    CLOUDLET_RESUME = "cloudlet_resume"

    # Datacenter internal processing
    DATACENTER_UPDATE = "datacenter_update"

    # Engine control
    END_OF_SIMULATION = "end_of_simulation"


@dataclass(frozen=True)
class VmCreateRequest:
    vm: "Vm"


@dataclass(frozen=True)
class VmCreateAck:
    datacenter_id: int
    broker_id: int
    vm_id: int
    success: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class VmDestroyRequest:
    vm: "Vm"


@dataclass(frozen=True)
class CloudletSubmit:
    cloudlet: "Cloudlet"


@dataclass(frozen=True)
class CloudletReturn:
    cloudlet: "Cloudlet"


@dataclass(frozen=True)
class CloudletAction:
    """Cancel, pause or resume request addressed by (broker, cloudlet) id."""

    broker_id: int
    cloudlet_id: int


@dataclass(frozen=True)
class DatacenterUpdate:
    pass


@dataclass(frozen=True)
class EndOfSimulation:
    pass


EventPayload = Union[
    VmCreateRequest,
    VmCreateAck,
    VmDestroyRequest,
    CloudletSubmit,
    CloudletReturn,
    CloudletAction,
    DatacenterUpdate,
    EndOfSimulation,
]

# Each tag carries exactly one payload variant.
PAYLOAD_TYPES: Dict[EventTag, Type] = {
    EventTag.VM_CREATE: VmCreateRequest,
    EventTag.VM_CREATE_ACK: VmCreateAck,
    EventTag.VM_DESTROY: VmDestroyRequest,
    EventTag.CLOUDLET_SUBMIT: CloudletSubmit,
    EventTag.CLOUDLET_RETURN: CloudletReturn,
    EventTag.CLOUDLET_CANCEL: CloudletAction,
    EventTag.CLOUDLET_PAUSE: CloudletAction,
    EventTag.CLOUDLET_RESUME: CloudletAction,
    EventTag.DATACENTER_UPDATE: DatacenterUpdate,
    EventTag.END_OF_SIMULATION: EndOfSimulation,
}


@dataclass
class SimEvent:
    """A timestamped message between two simulation entities."""

    timestamp: float
    source: int
    destination: int
    tag: EventTag
    payload: EventPayload
    sequence: int
    cancelled: bool = False
    dispatched: bool = False

    def __post_init__(self) -> None:
        """Check the payload variant and log event creation."""
        expected = PAYLOAD_TYPES[self.tag]
        if not isinstance(self.payload, expected):
            raise TypeError(
                f"Event {self.tag.value} expects payload {expected.__name__}, "
                f"got {type(self.payload).__name__}"
            )
        logger.debug(
            f"Event created: {self.tag.value} at {self.timestamp:.2f} "
            f"from {self.source} to {self.destination} (#{self.sequence})"
        )

    @property
    def sort_key(self) -> Tuple[float, int]:
        return (self.timestamp, self.sequence)

    @property
    def is_pending(self) -> bool:
        return not (self.cancelled or self.dispatched)

    def __lt__(self, other: "SimEvent") -> bool:
        """Order by timestamp, then by insertion sequence."""
        return self.sort_key < other.sort_key
