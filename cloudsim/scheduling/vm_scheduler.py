"""Policies that share a host's processing elements among its Vms."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Dict, List, Sequence, Tuple

from loguru import logger

from ..core.exceptions import InsufficientCapacity
from ..core.provisioners import Pe, PeStatus
from .fairness import max_min_fair_share

if TYPE_CHECKING:
    from ..core.resources import Vm

# Residual MIPS below this are treated as rounding noise.
MIPS_EPSILON = 1e-6


class VmScheduler(ABC):
    """Abstract base class for Vm schedulers."""

    def __init__(self, pes: Sequence[Pe]):
        if not pes:
            raise ValueError("A Vm scheduler needs at least one PE")
        self.pes: List[Pe] = list(pes)
        self._mips_map: Dict[str, List[float]] = {}

    @abstractmethod
    def can_host(self, vm: "Vm") -> bool:
        """Whether the Vm's PE request can be satisfied."""

    @abstractmethod
    def allocate_pes_for_vm(self, vm: "Vm") -> None:
        """Allocate PEs for a Vm or raise InsufficientCapacity."""

    @abstractmethod
    def deallocate_pes_for_vm(self, vm: "Vm") -> None:
        """Release the Vm's PEs; a no-op for unknown Vms."""

    def get_allocated_mips(self, vm: "Vm") -> List[float]:
        """MIPS currently given to each of the Vm's PEs."""
        return list(self._mips_map.get(vm.uid, []))

    @property
    def total_mips(self) -> float:
        return sum(pe.mips for pe in self.pes)

    @property
    def available_mips(self) -> float:
        return sum(pe.provisioner.available for pe in self.pes)

    @property
    def max_pe_mips(self) -> float:
        return max(pe.mips for pe in self.pes)

    @property
    def number_of_free_pes(self) -> int:
        return sum(1 for pe in self.pes if pe.status == PeStatus.FREE)


class VmSchedulerTimeShared(VmScheduler):
    """Time-shared Vm scheduler.

    Every hosted Vm receives its requested MIPS when the host can supply
    them. With `oversubscription` enabled, Vms may be admitted beyond the
    host's rated MIPS; their shares are then scaled by max-min fairness so
    the PE provisioners never hand out more than the rated capacity.
    """

    def __init__(self, pes: Sequence[Pe], oversubscription: bool = False):
        super().__init__(pes)
        self.oversubscription = oversubscription
        self._requests: Dict[str, Tuple[float, int]] = {}

    @property
    def requested_mips(self) -> float:
        return sum(mips * pes for mips, pes in self._requests.values())

    def can_host(self, vm: "Vm") -> bool:
        if vm.pes > len(self.pes):
            return False
        if vm.mips > self.max_pe_mips:
            return False
        if self.oversubscription:
            return True
        already = self._requests.get(vm.uid)
        held = already[0] * already[1] if already else 0.0
        return vm.mips * vm.pes <= self.total_mips - self.requested_mips + held + MIPS_EPSILON

    def allocate_pes_for_vm(self, vm: "Vm") -> None:
        if not self.can_host(vm):
            raise InsufficientCapacity("mips", vm.mips * vm.pes, self.available_mips, vm.uid)
        self._requests[vm.uid] = (vm.mips, vm.pes)
        self._redistribute()
        logger.debug(f"Vm {vm.uid} allocated {self.get_allocated_mips(vm)} MIPS")

    def deallocate_pes_for_vm(self, vm: "Vm") -> None:
        if self._requests.pop(vm.uid, None) is None:
            return
        self._redistribute()
        logger.debug(f"Vm {vm.uid} released its PEs")

    def _redistribute(self) -> None:
        """Recompute every Vm's share and spread it over the PEs in order."""
        for pe in self.pes:
            pe.provisioner.clear()
        self._mips_map = {}

        uids = list(self._requests)
        totals = [mips * pes for mips, pes in self._requests.values()]
        shares = max_min_fair_share(totals, self.total_mips)

        pe_index = 0
        for uid, share in zip(uids, shares):
            pes = self._requests[uid][1]
            self._mips_map[uid] = [share / pes] * pes
            remaining = share
            while remaining > MIPS_EPSILON and pe_index < len(self.pes):
                provisioner = self.pes[pe_index].provisioner
                free = provisioner.available
                if free <= MIPS_EPSILON:
                    pe_index += 1
                    continue
                amount = min(free, remaining)
                provisioner.allocate(uid, amount)
                remaining -= amount
