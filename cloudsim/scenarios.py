"""Reference scenarios used by the CLI and the tests."""

from .energy import DEFAULT_CARBON_FACTOR
from .utils.config import (
    BrokerSpec,
    CloudletSpec,
    DatacenterSpec,
    HostSpec,
    ScenarioConfig,
    VmSpec,
)

CLOUDLET_LENGTH = 400000


def _reference_vm(vm_id: int = 0) -> VmSpec:
    return VmSpec(vm_id=vm_id, mips=1000, pes=1, ram=512, bw=1000, size=10000)


def _reference_cloudlet(cloudlet_id: int, vm_id: int = 0) -> CloudletSpec:
    return CloudletSpec(
        cloudlet_id=cloudlet_id,
        length=CLOUDLET_LENGTH,
        pes=1,
        file_size=300,
        output_size=300,
        vm_id=vm_id,
    )


def carbon_aware_scenario(carbon_factor: float = DEFAULT_CARBON_FACTOR) -> ScenarioConfig:
    """One host, one Vm and one cloudlet of 400000 MI on a 1000 MIPS PE."""
    return ScenarioConfig(
        name="carbon_aware",
        datacenters=[
            DatacenterSpec(
                name="Datacenter_0",
                hosts=[HostSpec(pes=1, mips=1000, ram=2048, bw=10000, storage=1_000_000)],
            )
        ],
        brokers=[
            BrokerSpec(name="Broker", vms=[_reference_vm()], cloudlets=[_reference_cloudlet(0)])
        ],
        carbon_factor=carbon_factor,
    )


def multi_tenant_scenario(num_tenants: int = 3) -> ScenarioConfig:
    """Several tenants sharing one datacenter, one Vm and one cloudlet each.

    The host gets one PE per tenant so that every Vm can be placed.
    """
    if num_tenants < 1:
        raise ValueError("num_tenants must be >= 1")
    host = HostSpec(
        pes=num_tenants,
        mips=1000,
        ram=max(2048, 512 * num_tenants),
        bw=max(10000, 1000 * num_tenants),
        storage=max(1_000_000, 10000 * num_tenants),
    )
    return ScenarioConfig(
        name="multi_tenant",
        datacenters=[DatacenterSpec(name="Datacenter_0", hosts=[host])],
        brokers=[
            BrokerSpec(
                name=f"Broker_{tenant}",
                vms=[_reference_vm()],
                cloudlets=[_reference_cloudlet(tenant * 10)],
            )
            for tenant in range(num_tenants)
        ],
    )
