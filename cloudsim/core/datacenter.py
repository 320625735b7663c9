"""Datacenter entity: owns hosts, places Vms and runs their cloudlets."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from loguru import logger

from ..energy import PowerMeter, PowerModel
from ..scheduling.allocation import AllocationPolicy, FirstFitAllocationPolicy
from .events import (
    CloudletAction,
    CloudletReturn,
    DatacenterUpdate,
    EventTag,
    SimEvent,
    VmCreateAck,
)
from .exceptions import OwnershipError, PlacementFailed, UnknownCloudlet, UnknownVm
from .resources import Host, Vm
from .simulator import SimEntity, Simulation
from .workload import Cloudlet, CloudletStatus


@dataclass
class DatacenterCharacteristics:
    """Static description and pricing of a datacenter."""
    hosts: List[Host] = field(default_factory=list)
    architecture: str = "x86"
    os: str = "Linux"
    vmm: str = "Xen"
    time_zone: float = 10.0
    cost_per_sec: float = 3.0  # cost of using one second of processing
    cost_per_mem: float = 0.05
    cost_per_storage: float = 0.001
    cost_per_bw: float = 0.0

    @property
    def number_of_pes(self) -> int:
        return sum(len(host.pes) for host in self.hosts)

    @property
    def number_of_free_pes(self) -> int:
        return sum(host.number_of_free_pes for host in self.hosts)

    @property
    def mips_of_one_pe(self) -> float:
        if not self.hosts:
            return 0.0
        return self.hosts[0].pes[0].mips

    @property
    def total_mips(self) -> float:
        return sum(host.total_mips for host in self.hosts)

    @property
    def cost_per_mi(self) -> float:
        mips = self.mips_of_one_pe
        return self.cost_per_sec / mips if mips else 0.0


class Datacenter(SimEntity):
    """A datacenter processing Vm and cloudlet requests from brokers."""

    kind = "datacenter"

    def __init__(
        self,
        name: str,
        simulation: Simulation,
        characteristics: DatacenterCharacteristics,
        allocation_policy: Optional[AllocationPolicy] = None,
        power_model: Optional[PowerModel] = None,
    ):
        super().__init__(name, simulation)
        if not characteristics.hosts:
            raise ValueError(f"Datacenter {name} needs at least one host")
        self.characteristics = characteristics
        self.allocation_policy = allocation_policy or FirstFitAllocationPolicy(characteristics.hosts)
        self.power_meter = PowerMeter(power_model)
        self.vms: Dict[Tuple[int, int], Vm] = {}
        self.accepting = True
        self._next_update: Optional[SimEvent] = None

        for host in characteristics.hosts:
            host.datacenter = self

        self._handlers = {
            EventTag.VM_CREATE: self._handle_vm_create,
            EventTag.VM_DESTROY: self._handle_vm_destroy,
            EventTag.CLOUDLET_SUBMIT: self._handle_cloudlet_submit,
            EventTag.CLOUDLET_CANCEL: self._handle_cloudlet_cancel,
            EventTag.CLOUDLET_PAUSE: self._handle_cloudlet_pause,
            EventTag.CLOUDLET_RESUME: self._handle_cloudlet_resume,
            EventTag.DATACENTER_UPDATE: self._handle_update,
        }

        logger.info(f"Datacenter {name} created with {len(self.hosts)} host(s), "
                    f"{characteristics.number_of_pes} PE(s)")

    @property
    def hosts(self) -> List[Host]:
        return self.characteristics.hosts

    @property
    def latency(self) -> float:
        return self.simulation.config.network_latency

    def get_vm(self, broker_id: int, vm_id: int) -> Vm:
        try:
            return self.vms[(broker_id, vm_id)]
        except KeyError:
            raise UnknownVm(f"Vm {vm_id} of broker {broker_id} is not bound on {self.name}") from None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self.power_meter.refresh(self.clock, self.hosts)

    def shutdown(self) -> None:
        self.teardown()

    def teardown(self) -> None:
        """Deallocate every Vm and stop accepting submissions."""
        if not self.accepting:
            return
        now = self.clock
        self.power_meter.advance(now)
        for host in self.hosts:
            host.update_vms_processing(now)

        unfinished = 0
        for vm in list(self.vms.values()):
            unfinished += len(vm.cloudlet_scheduler.exec_list) + len(vm.cloudlet_scheduler.waiting_list)
            self.allocation_policy.deallocate_host_for_vm(vm)
        self.vms.clear()
        self.accepting = False
        self.power_meter.refresh(now, self.hosts)

        if unfinished:
            logger.warning(f"Datacenter {self.name} torn down with {unfinished} unfinished cloudlet(s)")
        logger.info(f"Datacenter {self.name} torn down at {now:.2f}")

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _handle_vm_create(self, event: SimEvent) -> None:
        vm = event.payload.vm
        self._check_owner(event, vm.broker_id, f"vm {vm.vm_id}")

        success, reason = False, None
        if not self.accepting:
            reason = "datacenter is not accepting requests"
        elif vm.key in self.vms:
            reason = "vm already exists"
        else:
            self._update_processing()
            try:
                host = self.allocation_policy.allocate_host_for_vm(vm)
            except PlacementFailed as e:
                reason = str(e)
            else:
                success = True
                vm.datacenter_id = self.id
                self.vms[vm.key] = vm
                vm.update_processing(self.clock, host.vm_scheduler.get_allocated_mips(vm))
                self._update_processing()

        if not success:
            logger.warning(f"Datacenter {self.name} could not create vm {vm.uid}: {reason}")
        ack = VmCreateAck(
            datacenter_id=self.id,
            broker_id=vm.broker_id,
            vm_id=vm.vm_id,
            success=success,
            reason=reason,
        )
        self.send(event.source, self.latency, EventTag.VM_CREATE_ACK, ack)

    def _handle_vm_destroy(self, event: SimEvent) -> None:
        vm = event.payload.vm
        self._check_owner(event, vm.broker_id, f"vm {vm.vm_id}")
        if self.vms.get(vm.key) is not vm:
            logger.debug(f"Vm {vm.uid} is not bound on {self.name}, nothing to destroy")
            return

        self._update_processing()
        failed = vm.cloudlet_scheduler.fail_all(self.clock)
        if failed:
            logger.warning(f"Vm {vm.uid} destroyed with {len(failed)} unfinished cloudlet(s)")
        for cloudlet in vm.cloudlet_scheduler.pop_finished():
            self._return_cloudlet(cloudlet)
        self.allocation_policy.deallocate_host_for_vm(vm)
        del self.vms[vm.key]
        self._update_processing()

    def _handle_cloudlet_submit(self, event: SimEvent) -> None:
        cloudlet: Cloudlet = event.payload.cloudlet
        self._check_owner(event, cloudlet.broker_id, f"cloudlet {cloudlet.cloudlet_id}")

        if not self.accepting:
            logger.warning(f"Datacenter {self.name} rejected cloudlet {cloudlet.uid} after teardown")
            cloudlet.set_status(CloudletStatus.FAILED, self.clock)
            self._return_cloudlet(cloudlet)
            return

        vm = self.get_vm(cloudlet.broker_id, cloudlet.vm_id)
        self._update_processing()

        cloudlet.resource_id = self.id
        cloudlet.cost_per_sec = self.characteristics.cost_per_sec
        cloudlet.cost_per_bw = self.characteristics.cost_per_bw
        vm.cloudlet_scheduler.submit(cloudlet, self.clock)
        logger.info(f"Cloudlet {cloudlet.cloudlet_id} of broker {cloudlet.broker_id} "
                    f"submitted to vm {vm.uid} at {self.clock:.2f}")

        self._update_processing()

    def _handle_cloudlet_cancel(self, event: SimEvent) -> None:
        vm, key = self._locate_cloudlet(event)
        self._update_processing()
        vm.cloudlet_scheduler.cancel(key, self.clock)
        logger.info(f"Cloudlet {key} cancelled at {self.clock:.2f}")
        self._update_processing()

    def _handle_cloudlet_pause(self, event: SimEvent) -> None:
        vm, key = self._locate_cloudlet(event)
        self._update_processing()
        if vm.cloudlet_scheduler.pause(key, self.clock):
            logger.info(f"Cloudlet {key} paused at {self.clock:.2f}")
        self._update_processing()

    def _handle_cloudlet_resume(self, event: SimEvent) -> None:
        vm, key = self._locate_cloudlet(event)
        self._update_processing()
        if vm.cloudlet_scheduler.resume(key, self.clock):
            logger.info(f"Cloudlet {key} resumed at {self.clock:.2f}")
        self._update_processing()

    def _handle_update(self, event: SimEvent) -> None:
        if event is self._next_update:
            self._next_update = None
        self._update_processing()

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def _update_processing(self) -> None:
        """Advance every Vm to the current clock and return finished cloudlets."""
        now = self.clock
        self.power_meter.advance(now)

        next_time = None
        for host in self.hosts:
            eta = host.update_vms_processing(now)
            if eta is not None and (next_time is None or eta < next_time):
                next_time = eta

        for vm in list(self.vms.values()):
            for cloudlet in vm.cloudlet_scheduler.pop_finished():
                self._return_cloudlet(cloudlet)

        self.power_meter.refresh(now, self.hosts)
        self._schedule_update(next_time)

    def _schedule_update(self, next_time: Optional[float]) -> None:
        self.cancel(self._next_update)
        self._next_update = None

        config = self.simulation.config
        active = any(
            vm.cloudlet_scheduler.exec_list or vm.cloudlet_scheduler.waiting_list
            for vm in self.vms.values()
        )
        delay = None
        if next_time is not None:
            delay = next_time - self.clock
        if config.scheduling_interval > 0 and active:
            delay = config.scheduling_interval if delay is None else min(delay, config.scheduling_interval)
        if delay is None:
            return

        delay = max(delay, config.min_time_between_events)
        self._next_update = self.send(self.id, delay, EventTag.DATACENTER_UPDATE, DatacenterUpdate())

    def _return_cloudlet(self, cloudlet: Cloudlet) -> None:
        self.send(cloudlet.broker_id, self.latency, EventTag.CLOUDLET_RETURN, CloudletReturn(cloudlet))

    def _locate_cloudlet(self, event: SimEvent):
        action: CloudletAction = event.payload
        self._check_owner(event, action.broker_id, f"cloudlet {action.cloudlet_id}")
        key = (action.broker_id, action.cloudlet_id)
        for vm in self.vms.values():
            if vm.broker_id == action.broker_id and vm.cloudlet_scheduler.find(key) is not None:
                return vm, key
        raise UnknownCloudlet(f"Cloudlet {action.cloudlet_id} of broker {action.broker_id} "
                              f"is not active on {self.name}")

    @staticmethod
    def _check_owner(event: SimEvent, owner_id: Optional[int], what: str) -> None:
        if owner_id != event.source:
            raise OwnershipError(f"Entity {event.source} cannot act on {what} owned by {owner_id}")
