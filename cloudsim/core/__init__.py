"""Core simulation components."""

from .exceptions import (
    SimulationError,
    InvalidDelay,
    InsufficientCapacity,
    PlacementFailed,
    UnknownVm,
    UnknownCloudlet,
    UnknownEntity,
    OwnershipError,
    InvalidStatusTransition,
    UnhandledEvent,
    LivelockDetected,
)
from .events import EventTag, SimEvent
from .simulator import Simulation, SimulationConfig, SimEntity, EntityFailure, SIMULATION_ID
from .workload import (
    Cloudlet,
    CloudletStatus,
    UtilizationModel,
    UtilizationModelFull,
    UtilizationModelConstant,
    UtilizationModelStochastic,
)
from .provisioners import Pe, PeProvisioner, SimpleProvisioner
from .resources import Host, Vm, ResourceUsage
from .datacenter import Datacenter, DatacenterCharacteristics
from .broker import DatacenterBroker

__all__ = [
    "SimulationError",
    "InvalidDelay",
    "InsufficientCapacity",
    "PlacementFailed",
    "UnknownVm",
    "UnknownCloudlet",
    "UnknownEntity",
    "OwnershipError",
    "InvalidStatusTransition",
    "UnhandledEvent",
    "LivelockDetected",
    "EventTag",
    "SimEvent",
    "Simulation",
    "SimulationConfig",
    "SimEntity",
    "EntityFailure",
    "SIMULATION_ID",
    "Cloudlet",
    "CloudletStatus",
    "UtilizationModel",
    "UtilizationModelFull",
    "UtilizationModelConstant",
    "UtilizationModelStochastic",
    "Pe",
    "PeProvisioner",
    "SimpleProvisioner",
    "Host",
    "Vm",
    "ResourceUsage",
    "Datacenter",
    "DatacenterCharacteristics",
    "DatacenterBroker",
]
