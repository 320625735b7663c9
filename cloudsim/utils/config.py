"""Configuration management utilities."""

import json
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

import yaml
from loguru import logger
from pydantic import BaseModel, Field

from ..core.broker import DatacenterBroker
from ..core.datacenter import Datacenter, DatacenterCharacteristics
from ..core.provisioners import Pe
from ..core.resources import Host, Vm
from ..core.simulator import Simulation, SimulationConfig
from ..core.workload import (
    Cloudlet,
    UtilizationModel,
    UtilizationModelConstant,
    UtilizationModelFull,
    UtilizationModelStochastic,
)
from ..energy import DEFAULT_CARBON_FACTOR, LinearPowerModel
from ..scheduling.allocation import PlacementPolicy, create_allocation_policy
from ..scheduling.cloudlet_scheduler import SchedulerKind, create_cloudlet_scheduler
from ..scheduling.vm_scheduler import VmSchedulerTimeShared


class HostSpec(BaseModel):
    """A group of identical hosts."""
    count: int = Field(1, ge=1)
    pes: int = Field(1, ge=1)
    mips: float = Field(1000.0, gt=0)
    ram: float = Field(2048.0, ge=0)
    bw: float = Field(10000.0, ge=0)
    storage: float = Field(1_000_000.0, ge=0)
    oversubscription: bool = False


class PowerSpec(BaseModel):
    idle_watts: float = Field(100.0, ge=0)
    max_watts: float = Field(250.0, ge=0)


class DatacenterSpec(BaseModel):
    name: str
    hosts: List[HostSpec] = Field(default_factory=lambda: [HostSpec()], min_length=1)
    allocation_policy: PlacementPolicy = PlacementPolicy.FIRST_FIT
    architecture: str = "x86"
    os: str = "Linux"
    vmm: str = "Xen"
    time_zone: float = 10.0
    cost_per_sec: float = Field(3.0, ge=0)
    cost_per_mem: float = Field(0.05, ge=0)
    cost_per_storage: float = Field(0.001, ge=0)
    cost_per_bw: float = Field(0.0, ge=0)
    power: PowerSpec = Field(default_factory=PowerSpec)


class UtilizationSpec(BaseModel):
    kind: Literal["full", "constant", "stochastic"] = "full"
    fraction: float = Field(1.0, ge=0, le=1)
    seed: Optional[int] = None


class VmSpec(BaseModel):
    vm_id: int
    mips: float = Field(1000.0, gt=0)
    pes: int = Field(1, ge=1)
    ram: float = Field(512.0, ge=0)
    bw: float = Field(1000.0, ge=0)
    size: float = Field(10000.0, ge=0)
    vmm: str = "Xen"
    scheduler: SchedulerKind = SchedulerKind.TIME_SHARED


class CloudletSpec(BaseModel):
    cloudlet_id: int
    length: float = Field(gt=0)
    pes: int = Field(1, ge=1)
    file_size: float = Field(300.0, ge=0)
    output_size: float = Field(300.0, ge=0)
    vm_id: Optional[int] = None
    utilization_cpu: UtilizationSpec = Field(default_factory=UtilizationSpec)
    utilization_ram: UtilizationSpec = Field(default_factory=UtilizationSpec)
    utilization_bw: UtilizationSpec = Field(default_factory=UtilizationSpec)


class BrokerSpec(BaseModel):
    name: str
    vms: List[VmSpec] = Field(default_factory=list)
    cloudlets: List[CloudletSpec] = Field(default_factory=list)


class ScenarioConfig(BaseModel):
    """A complete simulation scenario."""

    name: str = "scenario"
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    datacenters: List[DatacenterSpec] = Field(min_length=1)
    brokers: List[BrokerSpec] = Field(min_length=1)
    carbon_factor: float = Field(DEFAULT_CARBON_FACTOR, ge=0)


def load_config(config_path: Union[str, Path]) -> ScenarioConfig:
    """Load a scenario from a YAML or JSON file."""
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")

    with open(config_path, 'r') as f:
        if config_path.suffix.lower() in ['.yaml', '.yml']:
            config_data = yaml.safe_load(f)
        elif config_path.suffix.lower() == '.json':
            config_data = json.load(f)
        else:
            raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")

    scenario = ScenarioConfig.model_validate(config_data or {})
    logger.info(f"Configuration loaded: {scenario.name}, {len(scenario.datacenters)} datacenter(s), "
                f"{len(scenario.brokers)} broker(s), seed {scenario.simulation.random_seed}")
    return scenario


def build_simulation(scenario: ScenarioConfig) -> Tuple[Simulation, List[Datacenter], List[DatacenterBroker]]:
    """Create a Simulation with every datacenter and broker of the scenario registered."""
    sim_config = SimulationConfig(**vars(scenario.simulation))
    simulation = Simulation(sim_config)
    simulation.initialize(num_tenants=len(scenario.brokers))

    datacenters = [_build_datacenter(spec, simulation) for spec in scenario.datacenters]
    brokers = [_build_broker(spec, simulation) for spec in scenario.brokers]

    logger.info(f"Scenario {scenario.name} built")
    return simulation, datacenters, brokers


def _build_datacenter(spec: DatacenterSpec, simulation: Simulation) -> Datacenter:
    hosts = []
    for group in spec.hosts:
        for _ in range(group.count):
            pes = [Pe(pe_id, group.mips) for pe_id in range(group.pes)]
            hosts.append(Host(
                host_id=len(hosts),
                pes=pes,
                ram=group.ram,
                bw=group.bw,
                storage=group.storage,
                vm_scheduler=VmSchedulerTimeShared(pes, oversubscription=group.oversubscription),
            ))

    characteristics = DatacenterCharacteristics(
        hosts=hosts,
        architecture=spec.architecture,
        os=spec.os,
        vmm=spec.vmm,
        time_zone=spec.time_zone,
        cost_per_sec=spec.cost_per_sec,
        cost_per_mem=spec.cost_per_mem,
        cost_per_storage=spec.cost_per_storage,
        cost_per_bw=spec.cost_per_bw,
    )
    return Datacenter(
        spec.name,
        simulation,
        characteristics,
        allocation_policy=create_allocation_policy(spec.allocation_policy, hosts),
        power_model=LinearPowerModel(spec.power.idle_watts, spec.power.max_watts),
    )


def _build_broker(spec: BrokerSpec, simulation: Simulation) -> DatacenterBroker:
    broker = DatacenterBroker(spec.name, simulation)
    broker.submit_vm_list([
        Vm(
            vm_id=vm.vm_id,
            mips=vm.mips,
            pes=vm.pes,
            ram=vm.ram,
            bw=vm.bw,
            size=vm.size,
            vmm=vm.vmm,
            cloudlet_scheduler=create_cloudlet_scheduler(vm.scheduler),
        )
        for vm in spec.vms
    ])
    broker.submit_cloudlet_list([
        Cloudlet(
            cloudlet_id=c.cloudlet_id,
            length=c.length,
            pes=c.pes,
            file_size=c.file_size,
            output_size=c.output_size,
            utilization_cpu=_utilization_model(c.utilization_cpu, simulation),
            utilization_ram=_utilization_model(c.utilization_ram, simulation),
            utilization_bw=_utilization_model(c.utilization_bw, simulation),
            vm_id=c.vm_id,
        )
        for c in spec.cloudlets
    ])
    return broker


def _utilization_model(spec: UtilizationSpec, simulation: Simulation) -> UtilizationModel:
    if spec.kind == "constant":
        return UtilizationModelConstant(spec.fraction)
    if spec.kind == "stochastic":
        if spec.seed is not None:
            return UtilizationModelStochastic(seed=spec.seed)
        return UtilizationModelStochastic(rng=simulation.random)
    return UtilizationModelFull()


def save_results(analysis: Dict[str, Any], output_dir: Path) -> None:
    """Save simulation results to files."""

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    results = {key: value for key, value in analysis.items() if key != 'cloudlets'}
    results_file = output_dir / "simulation_results.json"
    with open(results_file, 'w') as f:
        json.dump(results, f, indent=2, default=str)

    logger.info(f"Results saved to {results_file}")

    if 'cloudlets' in analysis:
        cloudlets_file = output_dir / "cloudlets.json"
        with open(cloudlets_file, 'w') as f:
            json.dump(analysis['cloudlets'], f, indent=2, default=str)

        logger.info(f"Cloudlet results saved to {cloudlets_file}")
