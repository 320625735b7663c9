"""Vm allocation policies: which host receives a new Vm."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence

from loguru import logger

from ..core.exceptions import InsufficientCapacity, PlacementFailed

if TYPE_CHECKING:
    from ..core.resources import Host, Vm


class PlacementPolicy(Enum):
    """Placement policies for Vm allocation."""
    FIRST_FIT = "first_fit"
    BEST_FIT = "best_fit"
    SPREAD = "spread"


class AllocationPolicy(ABC):
    """Abstract base class for Vm allocation policies.

    Hosts are kept in construction order; subclasses only decide the order
    in which suitable hosts are tried.
    """

    def __init__(self, hosts: Sequence["Host"], placement_policy: PlacementPolicy):
        self.hosts: List["Host"] = list(hosts)
        self.placement_policy = placement_policy
        self.vm_table: Dict[str, "Host"] = {}
        logger.info(f"Allocation policy initialized with {placement_policy.value} placement "
                    f"over {len(self.hosts)} host(s)")

    @abstractmethod
    def _candidate_hosts(self, vm: "Vm") -> Iterable["Host"]:
        """Suitable hosts in the order they should be tried."""

    def allocate_host_for_vm(self, vm: "Vm", host: Optional["Host"] = None) -> "Host":
        """Place a Vm and return its host, or raise PlacementFailed."""
        if vm.uid in self.vm_table:
            raise PlacementFailed(vm.uid, "vm is already placed")

        candidates = [host] if host is not None else self._candidate_hosts(vm)
        for candidate in candidates:
            if not candidate.is_suitable_for_vm(vm):
                continue
            try:
                candidate.vm_create(vm)
            except InsufficientCapacity as e:
                logger.debug(f"Host {candidate.host_id} rejected vm {vm.uid}: {e}")
                continue
            self.vm_table[vm.uid] = candidate
            logger.info(f"Vm {vm.uid} allocated to host {candidate.host_id}")
            return candidate

        logger.warning(f"Could not place vm {vm.uid} - no suitable hosts")
        raise PlacementFailed(vm.uid, "no host has enough PE, RAM, bandwidth and storage")

    def deallocate_host_for_vm(self, vm: "Vm") -> None:
        """Release the Vm's resources; a second call is a no-op."""
        host = self.vm_table.pop(vm.uid, None)
        if host is None:
            return
        host.vm_destroy(vm)
        logger.info(f"Vm {vm.uid} deallocated from host {host.host_id}")

    def get_host(self, vm: "Vm") -> Optional["Host"]:
        return self.vm_table.get(vm.uid)


class FirstFitAllocationPolicy(AllocationPolicy):
    """Places each Vm on the first host, in construction order, that fits."""

    def __init__(self, hosts: Sequence["Host"]):
        super().__init__(hosts, PlacementPolicy.FIRST_FIT)

    def _candidate_hosts(self, vm: "Vm") -> Iterable["Host"]:
        return list(self.hosts)


class BestFitAllocationPolicy(AllocationPolicy):
    """Places each Vm on the host left with the least spare MIPS."""

    def __init__(self, hosts: Sequence["Host"]):
        super().__init__(hosts, PlacementPolicy.BEST_FIT)

    def _candidate_hosts(self, vm: "Vm") -> Iterable["Host"]:
        # sorted() is stable, so ties keep construction order
        return sorted(self.hosts, key=lambda h: h.available_mips - vm.mips * vm.pes)


class SpreadAllocationPolicy(AllocationPolicy):
    """Places each Vm on the host with the most free PEs."""

    def __init__(self, hosts: Sequence["Host"]):
        super().__init__(hosts, PlacementPolicy.SPREAD)

    def _candidate_hosts(self, vm: "Vm") -> Iterable["Host"]:
        return sorted(self.hosts, key=lambda h: -h.number_of_free_pes)


def create_allocation_policy(policy, hosts: Sequence["Host"]) -> AllocationPolicy:
    """Create an allocation policy from a PlacementPolicy or its value."""
    policies = {
        PlacementPolicy.FIRST_FIT: FirstFitAllocationPolicy,
        PlacementPolicy.BEST_FIT: BestFitAllocationPolicy,
        PlacementPolicy.SPREAD: SpreadAllocationPolicy,
    }
    try:
        policy = PlacementPolicy(policy)
    except ValueError:
        raise ValueError(f"Unknown allocation policy: {policy}") from None
    return policies[policy](hosts)
