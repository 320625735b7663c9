"""Cloudlet (workload unit) models and utilization models."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Optional, Tuple

import numpy as np
from loguru import logger

from .exceptions import InvalidStatusTransition

# Remaining length below this fraction of the total counts as finished.
COMPLETION_TOLERANCE = 1e-9


class UtilizationModel(ABC):
    """Fraction of a resource a cloudlet uses as a function of elapsed time."""

    @abstractmethod
    def get_utilization(self, time: float) -> float:
        pass


class UtilizationModelFull(UtilizationModel):
    """Always uses the whole resource."""

    def get_utilization(self, time: float) -> float:
        return 1.0


class UtilizationModelConstant(UtilizationModel):
    """Uses a fixed fraction of the resource."""

    def __init__(self, fraction: float):
        if not 0.0 <= fraction <= 1.0:
            raise ValueError(f"Utilization must be in [0, 1], got {fraction}")
        self.fraction = fraction

    def get_utilization(self, time: float) -> float:
        return self.fraction


class UtilizationModelStochastic(UtilizationModel):
    """Uniformly random utilization, fixed once drawn for a given time."""

    def __init__(self, seed: Optional[int] = None, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.history: Dict[float, float] = {}

    def get_utilization(self, time: float) -> float:
        if time not in self.history:
            self.history[time] = float(self.rng.uniform(0.0, 1.0))
        return self.history[time]


class CloudletStatus(Enum):
    """Cloudlet lifecycle states."""
    CREATED = "created"
    QUEUED = "queued"
    INEXEC = "in_execution"
    PAUSED = "paused"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_STATUSES = frozenset({CloudletStatus.SUCCESS, CloudletStatus.FAILED, CloudletStatus.CANCELED})

ALLOWED_TRANSITIONS = {
    CloudletStatus.CREATED: {CloudletStatus.QUEUED, CloudletStatus.FAILED, CloudletStatus.CANCELED},
    CloudletStatus.QUEUED: {
        CloudletStatus.INEXEC, CloudletStatus.PAUSED, CloudletStatus.FAILED, CloudletStatus.CANCELED,
    },
    CloudletStatus.INEXEC: {
        CloudletStatus.SUCCESS, CloudletStatus.PAUSED, CloudletStatus.FAILED, CloudletStatus.CANCELED,
    },
    CloudletStatus.PAUSED: {
        CloudletStatus.QUEUED, CloudletStatus.INEXEC, CloudletStatus.FAILED, CloudletStatus.CANCELED,
    },
    CloudletStatus.SUCCESS: set(),
    CloudletStatus.FAILED: set(),
    CloudletStatus.CANCELED: set(),
}


class Cloudlet:
    """A unit of work with a fixed instruction length, executed on a Vm."""

    def __init__(
        self,
        cloudlet_id: int,
        length: float,
        pes: int = 1,
        file_size: float = 0.0,
        output_size: float = 0.0,
        utilization_cpu: Optional[UtilizationModel] = None,
        utilization_ram: Optional[UtilizationModel] = None,
        utilization_bw: Optional[UtilizationModel] = None,
        broker_id: Optional[int] = None,
        vm_id: Optional[int] = None,
    ):
        if length <= 0:
            raise ValueError(f"Cloudlet length must be positive, got {length}")
        if pes < 1:
            raise ValueError(f"Cloudlet pes must be >= 1, got {pes}")
        if file_size < 0 or output_size < 0:
            raise ValueError("File and output sizes must be non-negative")

        self.cloudlet_id = cloudlet_id
        self.length = length
        self.pes = pes
        self.file_size = file_size
        self.output_size = output_size
        self.utilization_cpu = utilization_cpu or UtilizationModelFull()
        self.utilization_ram = utilization_ram or UtilizationModelFull()
        self.utilization_bw = utilization_bw or UtilizationModelFull()
        self.broker_id = broker_id
        self.vm_id = vm_id

        self.status = CloudletStatus.CREATED
        self.executed_length = 0.0

        # Timestamps
        self.submission_time: Optional[float] = None
        self.exec_start_time: Optional[float] = None
        self.exec_finish_time: Optional[float] = None

        # Set by the datacenter that accepts the cloudlet
        self.resource_id: Optional[int] = None
        self.cost_per_sec = 0.0
        self.cost_per_bw = 0.0

    @property
    def uid(self) -> Tuple[Optional[int], int]:
        return (self.broker_id, self.cloudlet_id)

    @property
    def remaining_length(self) -> float:
        return self.length - self.executed_length

    @property
    def is_finished(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def actual_cpu_time(self) -> float:
        if self.exec_start_time is None or self.exec_finish_time is None:
            return 0.0
        return self.exec_finish_time - self.exec_start_time

    @property
    def processing_cost(self) -> float:
        return self.cost_per_sec * self.actual_cpu_time + self.cost_per_bw * (self.file_size + self.output_size)

    def utilization_of_cpu(self, time: float) -> float:
        return _checked(self.utilization_cpu.get_utilization(time))

    def utilization_of_ram(self, time: float) -> float:
        return _checked(self.utilization_ram.get_utilization(time))

    def utilization_of_bw(self, time: float) -> float:
        return _checked(self.utilization_bw.get_utilization(time))

    def set_status(self, status: CloudletStatus, current_time: Optional[float] = None) -> None:
        """Move to a new status, recording timestamps where relevant."""
        if status == self.status:
            return
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStatusTransition(
                f"Cloudlet {self.uid} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        if current_time is None:
            return
        if status == CloudletStatus.QUEUED and self.submission_time is None:
            self.submission_time = current_time
        elif status == CloudletStatus.INEXEC and self.exec_start_time is None:
            self.exec_start_time = current_time
        elif status in TERMINAL_STATUSES:
            self.exec_finish_time = current_time

    def add_executed_length(self, amount: float) -> float:
        """Accumulate executed instructions, never exceeding the length."""
        if amount < 0:
            raise ValueError("Executed length cannot decrease")
        self.executed_length = min(self.length, self.executed_length + amount)
        return self.executed_length

    def has_reached_length(self) -> bool:
        return self.remaining_length <= self.length * COMPLETION_TOLERANCE

    def finish(self, current_time: float) -> None:
        """Mark the cloudlet as successfully executed."""
        self.executed_length = self.length
        self.set_status(CloudletStatus.SUCCESS, current_time)
        logger.info(
            f"Cloudlet {self.cloudlet_id} of broker {self.broker_id} finished at {current_time:.2f} "
            f"(executed for {self.actual_cpu_time:.2f})"
        )

    def __repr__(self) -> str:
        return (
            f"Cloudlet(id={self.cloudlet_id}, broker={self.broker_id}, vm={self.vm_id}, "
            f"status={self.status.value}, executed={self.executed_length}/{self.length})"
        )


def _checked(value: float) -> float:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"Utilization must be in [0, 1], got {value}")
    return value
