"""Error taxonomy for the simulation core."""

from typing import Any, Optional


class SimulationError(Exception):
    """Base class for all simulation errors."""


class InvalidDelay(SimulationError, ValueError):
    """An event was scheduled with a negative delay."""

    def __init__(self, delay: float):
        super().__init__(f"Event delay must be non-negative, got {delay}")
        self.delay = delay


class InsufficientCapacity(SimulationError):
    """A provisioner cannot satisfy an allocation request."""

    def __init__(self, resource: str, requested: float, available: float, consumer: Any = None):
        super().__init__(
            f"Insufficient {resource}: requested {requested}, available {available}"
            + (f" (consumer {consumer})" if consumer is not None else "")
        )
        self.resource = resource
        self.requested = requested
        self.available = available
        self.consumer = consumer


class PlacementFailed(SimulationError):
    """No host can accommodate a Vm."""

    def __init__(self, vm_uid: str, reason: Optional[str] = None):
        super().__init__(f"No suitable host for vm {vm_uid}" + (f": {reason}" if reason else ""))
        self.vm_uid = vm_uid
        self.reason = reason


class UnknownVm(SimulationError):
    """A Vm id does not refer to a Vm bound on this datacenter."""


class UnknownCloudlet(SimulationError):
    """A cloudlet id does not refer to a cloudlet known to the receiver."""


class UnknownEntity(SimulationError):
    """An event was addressed to an entity id that is not registered."""


class OwnershipError(SimulationError):
    """A tenant tried to act on a Vm or cloudlet owned by another tenant."""


class InvalidStatusTransition(SimulationError):
    """A cloudlet was moved to a status not reachable from its current one."""


class UnhandledEvent(SimulationError):
    """The destination entity has no handler for the event tag."""


class LivelockDetected(SimulationError):
    """An entity kept rescheduling itself with zero delay at the same instant."""
