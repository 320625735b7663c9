"""Cloud resource models: Hosts and Virtual Machines."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from loguru import logger

from ..scheduling.cloudlet_scheduler import CloudletScheduler, CloudletSchedulerTimeShared
from ..scheduling.vm_scheduler import VmScheduler, VmSchedulerTimeShared
from .exceptions import InsufficientCapacity
from .provisioners import Pe, SimpleProvisioner

if TYPE_CHECKING:
    from .datacenter import Datacenter


@dataclass
class ResourceUsage:
    """Current resource usage."""
    cpu_utilization: float = 0.0  # 0-1
    ram_utilization: float = 0.0  # 0-1
    bw_utilization: float = 0.0  # 0-1
    storage_utilization: float = 0.0  # 0-1


class Vm:
    """Virtual machine requested by a tenant and placed on one host."""

    def __init__(
        self,
        vm_id: int,
        mips: float,
        pes: int = 1,
        ram: float = 512,
        bw: float = 1000,
        size: float = 10000,
        vmm: str = "Xen",
        cloudlet_scheduler: Optional[CloudletScheduler] = None,
        broker_id: Optional[int] = None,
    ):
        if mips <= 0:
            raise ValueError(f"Vm mips must be positive, got {mips}")
        if pes < 1:
            raise ValueError(f"Vm pes must be >= 1, got {pes}")
        if ram < 0 or bw < 0 or size < 0:
            raise ValueError("Vm ram, bw and size must be non-negative")

        self.vm_id = vm_id
        self.mips = mips
        self.pes = pes
        self.ram = ram
        self.bw = bw
        self.size = size
        self.vmm = vmm
        self.cloudlet_scheduler = cloudlet_scheduler or CloudletSchedulerTimeShared()
        self.broker_id = broker_id

        self.host: Optional["Host"] = None
        self.datacenter_id: Optional[int] = None

    @property
    def uid(self) -> str:
        return f"{self.broker_id}-{self.vm_id}"

    @property
    def key(self):
        return (self.broker_id, self.vm_id)

    @property
    def is_bound(self) -> bool:
        return self.host is not None

    @property
    def total_mips(self) -> float:
        return self.mips * self.pes

    def bind(self, host: "Host") -> None:
        if self.host is not None and self.host is not host:
            raise RuntimeError(f"Vm {self.uid} is already bound to host {self.host.host_id}")
        self.host = host

    def unbind(self) -> None:
        self.host = None
        self.datacenter_id = None

    def update_processing(self, current_time: float, mips_share: Sequence[float]) -> Optional[float]:
        """Advance the Vm's cloudlets; returns the next completion time."""
        return self.cloudlet_scheduler.update_shares(current_time, mips_share)

    def __repr__(self) -> str:
        return f"Vm(uid={self.uid}, mips={self.mips}, pes={self.pes}, ram={self.ram}, bw={self.bw})"


class Host:
    """Physical machine in a datacenter."""

    def __init__(
        self,
        host_id: int,
        pes: Sequence[Pe],
        ram: float,
        bw: float,
        storage: float,
        vm_scheduler: Optional[VmScheduler] = None,
    ):
        if not pes:
            raise ValueError("A host needs at least one PE")
        self.host_id = host_id
        self.pes: List[Pe] = list(pes)
        self.ram_provisioner = SimpleProvisioner("ram", ram)
        self.bw_provisioner = SimpleProvisioner("bw", bw)
        self.storage_provisioner = SimpleProvisioner("storage", storage)
        self.vm_scheduler = vm_scheduler or VmSchedulerTimeShared(self.pes)

        self.vms: Dict[str, Vm] = {}
        self.datacenter: Optional["Datacenter"] = None

        logger.info(f"Host {host_id} created with {len(self.pes)} PE(s), {self.total_mips} MIPS, "
                    f"{ram} RAM, {bw} BW, {storage} storage")

    @property
    def ram(self) -> float:
        return self.ram_provisioner.capacity

    @property
    def bw(self) -> float:
        return self.bw_provisioner.capacity

    @property
    def storage(self) -> float:
        return self.storage_provisioner.capacity

    @property
    def total_mips(self) -> float:
        return self.vm_scheduler.total_mips

    @property
    def available_mips(self) -> float:
        return self.vm_scheduler.available_mips

    @property
    def number_of_free_pes(self) -> int:
        return self.vm_scheduler.number_of_free_pes

    def is_suitable_for_vm(self, vm: Vm) -> bool:
        """Check if host can accommodate the Vm's PE, RAM, BW and image."""
        return (
            self.vm_scheduler.can_host(vm)
            and self.ram_provisioner.can_allocate(vm.ram, vm.uid)
            and self.bw_provisioner.can_allocate(vm.bw, vm.uid)
            and self.storage_provisioner.can_allocate(vm.size, vm.uid)
        )

    def vm_create(self, vm: Vm) -> None:
        """Allocate every resource the Vm needs, all or nothing."""
        if vm.is_bound and vm.host is not self:
            raise RuntimeError(f"Vm {vm.uid} is already bound to host {vm.host.host_id}")

        steps = [
            (self.storage_provisioner.allocate, self.storage_provisioner.deallocate, vm.size),
            (self.ram_provisioner.allocate, self.ram_provisioner.deallocate, vm.ram),
            (self.bw_provisioner.allocate, self.bw_provisioner.deallocate, vm.bw),
        ]
        done = []
        try:
            for allocate, deallocate, amount in steps:
                allocate(vm.uid, amount)
                done.append(deallocate)
            self.vm_scheduler.allocate_pes_for_vm(vm)
        except InsufficientCapacity:
            for deallocate in reversed(done):
                deallocate(vm.uid)
            raise

        self.vms[vm.uid] = vm
        vm.bind(self)
        logger.info(f"Vm {vm.uid} created on host {self.host_id}")

    def vm_destroy(self, vm: Vm) -> None:
        """Release every resource held by the Vm; unknown Vms are ignored."""
        if self.vms.pop(vm.uid, None) is None:
            return
        self.vm_scheduler.deallocate_pes_for_vm(vm)
        self.ram_provisioner.deallocate(vm.uid)
        self.bw_provisioner.deallocate(vm.uid)
        self.storage_provisioner.deallocate(vm.uid)
        vm.unbind()
        logger.info(f"Vm {vm.uid} destroyed on host {self.host_id}")

    def update_vms_processing(self, current_time: float) -> Optional[float]:
        """Advance every hosted Vm; returns the earliest next completion time."""
        next_time = None
        for vm in self.vms.values():
            eta = vm.update_processing(current_time, self.vm_scheduler.get_allocated_mips(vm))
            if eta is not None and (next_time is None or eta < next_time):
                next_time = eta
        return next_time

    def get_utilization(self) -> ResourceUsage:
        """Get current resource utilization."""
        used_mips = sum(vm.cloudlet_scheduler.used_mips for vm in self.vms.values())
        return ResourceUsage(
            cpu_utilization=min(1.0, used_mips / self.total_mips) if self.total_mips else 0.0,
            ram_utilization=self.ram_provisioner.allocated / self.ram if self.ram else 0.0,
            bw_utilization=self.bw_provisioner.allocated / self.bw if self.bw else 0.0,
            storage_utilization=self.storage_provisioner.allocated / self.storage if self.storage else 0.0,
        )

    def __repr__(self) -> str:
        return f"Host(id={self.host_id}, pes={len(self.pes)}, vms={len(self.vms)})"
