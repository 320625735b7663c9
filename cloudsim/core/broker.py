"""Tenant-facing broker: submits Vms and cloudlets and collects the results."""

from typing import Dict, List, Optional, Sequence, Set, Tuple

from loguru import logger

from .events import (
    CloudletAction,
    CloudletSubmit,
    EventTag,
    SimEvent,
    VmCreateAck,
    VmCreateRequest,
    VmDestroyRequest,
)
from .exceptions import OwnershipError, UnknownCloudlet, UnknownVm
from .resources import Vm
from .simulator import SimEntity, Simulation
from .workload import Cloudlet

CLOUDLET_ACTIONS = (EventTag.CLOUDLET_CANCEL, EventTag.CLOUDLET_PAUSE, EventTag.CLOUDLET_RESUME)


class DatacenterBroker(SimEntity):
    """Acts on behalf of one tenant.

    On start the broker asks the registered datacenters, in registration
    order, to create each of its Vms. Once every Vm has been acknowledged
    it submits the cloudlets bound to created Vms; cloudlets bound to a Vm
    that could not be placed are recorded in `binding_failures` and never
    submitted. When every submitted cloudlet has returned, the broker
    destroys its Vms.
    """

    kind = "broker"

    def __init__(self, name: str, simulation: Simulation):
        super().__init__(name, simulation)
        self.vm_list: List[Vm] = []
        self.cloudlet_list: List[Cloudlet] = []

        self.vms_created: List[Vm] = []
        self.failed_vms: List[Vm] = []
        self.submitted_cloudlets: List[Cloudlet] = []
        self.received_cloudlets: List[Cloudlet] = []
        self.binding_failures: List[Cloudlet] = []

        self._datacenter_ids: List[int] = []
        self._attempts: Dict[int, int] = {}  # vm_id -> index of the datacenter asked
        self._vm_locations: Dict[int, int] = {}  # vm_id -> datacenter id
        self._outstanding: Set[int] = set()
        self._deferred_actions: List[Tuple[EventTag, int, Optional[float]]] = []
        self._vms_destroyed = False
        self.aborted = False

        self._handlers = {
            EventTag.VM_CREATE_ACK: self._handle_vm_create_ack,
            EventTag.CLOUDLET_RETURN: self._handle_cloudlet_return,
        }

    @property
    def latency(self) -> float:
        return self.simulation.config.network_latency

    # ------------------------------------------------------------------
    # Scenario construction
    # ------------------------------------------------------------------

    def submit_vm_list(self, vms: Sequence[Vm]) -> None:
        """Hand Vms over to this broker; they are created when the run starts."""
        self._check_not_started()
        known = {vm.vm_id for vm in self.vm_list}
        for vm in vms:
            self._claim(vm, f"vm {vm.vm_id}")
            if vm.vm_id in known:
                raise ValueError(f"Broker {self.name} already owns a vm with id {vm.vm_id}")
            known.add(vm.vm_id)
            self.vm_list.append(vm)
        logger.info(f"Broker {self.name} received {len(vms)} vm(s)")

    def submit_cloudlet_list(self, cloudlets: Sequence[Cloudlet]) -> None:
        """Hand cloudlets over to this broker."""
        self._check_not_started()
        known = {c.cloudlet_id for c in self.cloudlet_list}
        for cloudlet in cloudlets:
            self._claim(cloudlet, f"cloudlet {cloudlet.cloudlet_id}")
            if cloudlet.cloudlet_id in known:
                raise ValueError(f"Broker {self.name} already owns a cloudlet with id {cloudlet.cloudlet_id}")
            known.add(cloudlet.cloudlet_id)
            self.cloudlet_list.append(cloudlet)
        logger.info(f"Broker {self.name} received {len(cloudlets)} cloudlet(s)")

    def bind_cloudlet_to_vm(self, cloudlet_id: int, vm_id: int) -> None:
        """Pin a cloudlet to one of this broker's Vms."""
        self._check_not_started()
        cloudlet = self.get_cloudlet(cloudlet_id)
        self.get_vm(vm_id)
        cloudlet.vm_id = vm_id

    def get_vm(self, vm_id: int) -> Vm:
        for vm in self.vm_list:
            if vm.vm_id == vm_id:
                return vm
        raise UnknownVm(f"Broker {self.name} has no vm {vm_id}")

    def get_cloudlet(self, cloudlet_id: int) -> Cloudlet:
        for cloudlet in self.cloudlet_list:
            if cloudlet.cloudlet_id == cloudlet_id:
                return cloudlet
        raise UnknownCloudlet(f"Broker {self.name} has no cloudlet {cloudlet_id}")

    # ------------------------------------------------------------------
    # Cloudlet control
    # ------------------------------------------------------------------

    def cancel_cloudlet(self, cloudlet_id: int, at: Optional[float] = None) -> None:
        self._request_action(EventTag.CLOUDLET_CANCEL, cloudlet_id, at)

    def pause_cloudlet(self, cloudlet_id: int, at: Optional[float] = None) -> None:
        self._request_action(EventTag.CLOUDLET_PAUSE, cloudlet_id, at)

    def resume_cloudlet(self, cloudlet_id: int, at: Optional[float] = None) -> None:
        self._request_action(EventTag.CLOUDLET_RESUME, cloudlet_id, at)

    def abort(self) -> None:
        """Tear the tenant down: drop pending requests and destroy its Vms."""
        if self.aborted:
            return
        self.aborted = True
        cancelled = self.simulation.cancel_events(self.id)
        self._deferred_actions.clear()
        logger.warning(f"Broker {self.name} aborted at {self.clock:.2f}, "
                       f"{cancelled} pending request(s) cancelled")
        self._destroy_vms()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._datacenter_ids = [dc.id for dc in self.simulation.datacenters]
        if self.aborted:
            return
        if not self.vm_list:
            logger.warning(f"Broker {self.name} has no vms to create")
            self._submit_cloudlets()
            return
        if not self._datacenter_ids:
            logger.warning(f"Broker {self.name} found no datacenters")
            self.failed_vms.extend(self.vm_list)
            self._submit_cloudlets()
            return

        logger.info(f"Broker {self.name} requesting {len(self.vm_list)} vm(s)")
        for vm in self.vm_list:
            self._request_vm(vm, 0)

    def shutdown(self) -> None:
        if self._outstanding:
            logger.warning(f"Broker {self.name} finished with {len(self._outstanding)} "
                           f"cloudlet(s) still outstanding")

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _handle_vm_create_ack(self, event: SimEvent) -> None:
        ack: VmCreateAck = event.payload
        if ack.broker_id != self.id:
            raise OwnershipError(f"Broker {self.name} received an ack for broker {ack.broker_id}")
        vm = self.get_vm(ack.vm_id)

        if ack.success:
            self.vms_created.append(vm)
            self._vm_locations[vm.vm_id] = ack.datacenter_id
            logger.info(f"Broker {self.name}: vm {vm.vm_id} created in datacenter {ack.datacenter_id}")
            if self.aborted or self._vms_destroyed:
                self._send_destroy(vm)
        else:
            index = self._attempts[vm.vm_id] + 1
            if index < len(self._datacenter_ids) and not self.aborted:
                logger.info(f"Broker {self.name}: vm {vm.vm_id} rejected by datacenter "
                            f"{ack.datacenter_id}, trying the next one")
                self._request_vm(vm, index)
                return
            self.failed_vms.append(vm)
            logger.warning(f"Broker {self.name}: vm {vm.vm_id} could not be created ({ack.reason})")

        del self._attempts[vm.vm_id]
        if not self._attempts and not self.aborted:
            self._submit_cloudlets()

    def _handle_cloudlet_return(self, event: SimEvent) -> None:
        cloudlet: Cloudlet = event.payload.cloudlet
        if cloudlet.broker_id != self.id:
            raise OwnershipError(f"Broker {self.name} received cloudlet {cloudlet.uid} of another tenant")

        self.received_cloudlets.append(cloudlet)
        self._outstanding.discard(cloudlet.cloudlet_id)
        logger.info(f"Broker {self.name}: cloudlet {cloudlet.cloudlet_id} returned "
                    f"with status {cloudlet.status.value} at {self.clock:.2f}")

        if not self._outstanding:
            logger.info(f"Broker {self.name}: all cloudlets returned")
            self._destroy_vms()

    # ------------------------------------------------------------------

    def _request_vm(self, vm: Vm, index: int) -> None:
        self._attempts[vm.vm_id] = index
        self.send(self._datacenter_ids[index], self.latency, EventTag.VM_CREATE, VmCreateRequest(vm))

    def _submit_cloudlets(self) -> None:
        created = {vm.vm_id: vm for vm in self.vms_created}
        round_robin = 0
        for cloudlet in self.cloudlet_list:
            if cloudlet.vm_id is None:
                if not self.vms_created:
                    self._binding_failure(cloudlet, "no vm was created")
                    continue
                vm = self.vms_created[round_robin % len(self.vms_created)]
                round_robin += 1
                cloudlet.vm_id = vm.vm_id
            elif cloudlet.vm_id not in created:
                self._binding_failure(cloudlet, f"vm {cloudlet.vm_id} was not created")
                continue

            self.send(self._vm_locations[cloudlet.vm_id], self.latency,
                      EventTag.CLOUDLET_SUBMIT, CloudletSubmit(cloudlet))
            self.submitted_cloudlets.append(cloudlet)
            self._outstanding.add(cloudlet.cloudlet_id)

        logger.info(f"Broker {self.name} submitted {len(self.submitted_cloudlets)} cloudlet(s), "
                    f"{len(self.binding_failures)} binding failure(s)")

        deferred, self._deferred_actions = self._deferred_actions, []
        for tag, cloudlet_id, at in deferred:
            self._request_action(tag, cloudlet_id, at)

        if not self._outstanding:
            self._destroy_vms()

    def _binding_failure(self, cloudlet: Cloudlet, reason: str) -> None:
        self.binding_failures.append(cloudlet)
        logger.warning(f"Broker {self.name}: cloudlet {cloudlet.cloudlet_id} not submitted, {reason}")

    def _request_action(self, tag: EventTag, cloudlet_id: int, at: Optional[float]) -> None:
        if tag not in CLOUDLET_ACTIONS:
            raise ValueError(f"{tag.value} is not a cloudlet action")
        cloudlet = self.get_cloudlet(cloudlet_id)
        if cloudlet.cloudlet_id not in self._outstanding:
            if self.submitted_cloudlets or self._vms_destroyed:
                logger.warning(f"Broker {self.name}: cloudlet {cloudlet_id} is not running, "
                               f"{tag.value} ignored")
                return
            # not submitted yet; replayed once the cloudlets are sent
            self._deferred_actions.append((tag, cloudlet_id, at))
            return

        delay = self.latency if at is None else max(at - self.clock, self.latency)
        datacenter_id = self._vm_locations[cloudlet.vm_id]
        self.send(datacenter_id, delay, tag, CloudletAction(broker_id=self.id, cloudlet_id=cloudlet_id))

    def _destroy_vms(self) -> None:
        if self._vms_destroyed:
            return
        self._vms_destroyed = True
        dropped = self.simulation.cancel_events(self.id, lambda e: e.tag in CLOUDLET_ACTIONS)
        if dropped:
            logger.info(f"Broker {self.name}: {dropped} pending cloudlet request(s) dropped")
        for vm in self.vms_created:
            self._send_destroy(vm)

    def _send_destroy(self, vm: Vm) -> None:
        self.send(self._vm_locations[vm.vm_id], self.latency, EventTag.VM_DESTROY, VmDestroyRequest(vm))
        logger.debug(f"Broker {self.name}: destroy requested for vm {vm.vm_id}")

    def _claim(self, item, what: str) -> None:
        if item.broker_id is None:
            item.broker_id = self.id
        elif item.broker_id != self.id:
            raise OwnershipError(f"{what} belongs to broker {item.broker_id}, not {self.id}")

    def _check_not_started(self) -> None:
        if self.simulation.is_running:
            raise RuntimeError(f"Broker {self.name} cannot change its lists while the simulation runs")
