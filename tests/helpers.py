from cloudsim.core.datacenter import Datacenter, DatacenterCharacteristics
from cloudsim.core.events import DatacenterUpdate, EventTag
from cloudsim.core.provisioners import Pe
from cloudsim.core.resources import Host
from cloudsim.core.simulator import SimEntity
from cloudsim.scheduling.allocation import create_allocation_policy
from cloudsim.scheduling.vm_scheduler import VmSchedulerTimeShared


def make_host(host_id=0, pes=1, mips=1000, ram=2048, bw=10000, storage=1000000, oversubscription=False):
    pe_list = [Pe(i, mips) for i in range(pes)]
    return Host(
        host_id,
        pe_list,
        ram=ram,
        bw=bw,
        storage=storage,
        vm_scheduler=VmSchedulerTimeShared(pe_list, oversubscription=oversubscription),
    )


def make_datacenter(simulation, hosts=None, name="Datacenter_0", policy="first_fit", **characteristics):
    hosts = hosts or [make_host()]
    return Datacenter(
        name,
        simulation,
        DatacenterCharacteristics(hosts=hosts, **characteristics),
        allocation_policy=create_allocation_policy(policy, hosts),
    )


class Recorder(SimEntity):
    """Entity that records the update events it receives."""

    kind = "recorder"

    def __init__(self, name, simulation, on_event=None):
        super().__init__(name, simulation)
        self.received = []
        self.on_event = on_event
        self._handlers = {EventTag.DATACENTER_UPDATE: self._record}

    def ping(self, delay, destination=None):
        target = self.id if destination is None else destination
        return self.send(target, delay, EventTag.DATACENTER_UPDATE, DatacenterUpdate())

    def _record(self, event):
        self.received.append((self.clock, event.sequence))
        if self.on_event is not None:
            self.on_event(self, event)
