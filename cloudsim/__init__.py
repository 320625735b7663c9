"""Discrete-event simulator of cloud datacenters shared by several tenants."""

__version__ = "0.1.0"

from .core import (
    Cloudlet,
    CloudletStatus,
    Datacenter,
    DatacenterBroker,
    DatacenterCharacteristics,
    Host,
    Pe,
    Simulation,
    SimulationConfig,
    Vm,
)
from .energy import carbon_emissions, energy_consumed, total_energy_consumed
from .evaluation import SimulationAnalyzer
from .utils import ScenarioConfig, build_simulation, load_config

__all__ = [
    "Cloudlet",
    "CloudletStatus",
    "Datacenter",
    "DatacenterBroker",
    "DatacenterCharacteristics",
    "Host",
    "Pe",
    "Simulation",
    "SimulationConfig",
    "Vm",
    "carbon_emissions",
    "energy_consumed",
    "total_energy_consumed",
    "SimulationAnalyzer",
    "ScenarioConfig",
    "build_simulation",
    "load_config",
]
