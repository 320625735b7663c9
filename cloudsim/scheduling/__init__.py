"""Scheduling and placement policies."""

from .fairness import max_min_fair_share
from .vm_scheduler import VmScheduler, VmSchedulerTimeShared
from .cloudlet_scheduler import (
    SchedulerKind,
    CloudletScheduler,
    CloudletSchedulerTimeShared,
    CloudletSchedulerSpaceShared,
    create_cloudlet_scheduler,
)
from .allocation import (
    PlacementPolicy,
    AllocationPolicy,
    FirstFitAllocationPolicy,
    BestFitAllocationPolicy,
    SpreadAllocationPolicy,
    create_allocation_policy,
)

__all__ = [
    "max_min_fair_share",
    "VmScheduler",
    "VmSchedulerTimeShared",
    "SchedulerKind",
    "CloudletScheduler",
    "CloudletSchedulerTimeShared",
    "CloudletSchedulerSpaceShared",
    "create_cloudlet_scheduler",
    "PlacementPolicy",
    "AllocationPolicy",
    "FirstFitAllocationPolicy",
    "BestFitAllocationPolicy",
    "SpreadAllocationPolicy",
    "create_allocation_policy",
]
