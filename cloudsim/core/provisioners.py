"""Resource provisioners and processing elements."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Hashable

from loguru import logger

from .exceptions import InsufficientCapacity


class ResourceProvisioner(ABC):
    """Tracks allocation of one resource type against a fixed capacity."""

    resource = "resource"

    def __init__(self, capacity: float):
        if capacity < 0:
            raise ValueError(f"{self.resource} capacity must be non-negative, got {capacity}")
        self.capacity = capacity
        self._allocations: Dict[Hashable, float] = {}

    @abstractmethod
    def allocate(self, consumer_id: Hashable, amount: float) -> None:
        """Allocate `amount` to a consumer or raise InsufficientCapacity."""

    @abstractmethod
    def deallocate(self, consumer_id: Hashable) -> float:
        """Release a consumer's allocation and return the released amount."""

    @property
    def allocated(self) -> float:
        return sum(self._allocations.values())

    @property
    def available(self) -> float:
        return self.capacity - self.allocated

    def get_available(self) -> float:
        return self.available

    def allocated_for(self, consumer_id: Hashable) -> float:
        return self._allocations.get(consumer_id, 0.0)

    def can_allocate(self, amount: float, consumer_id: Hashable = None) -> bool:
        """Whether `amount` fits, counting what the consumer already holds."""
        return 0 <= amount <= self.available + self.allocated_for(consumer_id)

    @property
    def consumers(self):
        return list(self._allocations)


class SimpleProvisioner(ResourceProvisioner):
    """Provisioner for scalar resources: RAM, bandwidth and storage.

    A second allocation for the same consumer replaces the first one.
    """

    def __init__(self, resource: str, capacity: float):
        self.resource = resource
        super().__init__(capacity)

    def allocate(self, consumer_id: Hashable, amount: float) -> None:
        if amount < 0:
            raise ValueError(f"Cannot allocate a negative amount of {self.resource}")
        if not self.can_allocate(amount, consumer_id):
            raise InsufficientCapacity(self.resource, amount, self.available, consumer_id)
        self._allocations[consumer_id] = amount
        logger.debug(f"Allocated {amount} {self.resource} to {consumer_id}")

    def deallocate(self, consumer_id: Hashable) -> float:
        amount = self._allocations.pop(consumer_id, 0.0)
        if amount:
            logger.debug(f"Released {amount} {self.resource} from {consumer_id}")
        return amount


class PeStatus(Enum):
    FREE = "free"
    ALLOCATED = "allocated"


class PeProvisioner(ResourceProvisioner):
    """MIPS provisioner of a single processing element.

    Unlike RAM and bandwidth, a consumer may receive MIPS on the same PE in
    several pieces, so `allocate` adds to any existing allocation.
    """

    resource = "mips"

    def allocate(self, consumer_id: Hashable, amount: float) -> None:
        if amount < 0:
            raise ValueError("Cannot allocate negative MIPS")
        if amount > self.available + 1e-9:
            raise InsufficientCapacity(self.resource, amount, self.available, consumer_id)
        self._allocations[consumer_id] = self._allocations.get(consumer_id, 0.0) + amount

    def deallocate(self, consumer_id: Hashable) -> float:
        return self._allocations.pop(consumer_id, 0.0)

    def clear(self) -> None:
        self._allocations.clear()


class Pe:
    """A processing element (one CPU core) with a MIPS rating."""

    def __init__(self, pe_id: int, mips: float):
        if mips <= 0:
            raise ValueError(f"PE mips must be positive, got {mips}")
        self.pe_id = pe_id
        self.provisioner = PeProvisioner(mips)

    @property
    def mips(self) -> float:
        return self.provisioner.capacity

    @property
    def status(self) -> PeStatus:
        return PeStatus.ALLOCATED if self.provisioner.consumers else PeStatus.FREE

    def __repr__(self) -> str:
        return f"Pe(id={self.pe_id}, mips={self.mips}, status={self.status.value})"
