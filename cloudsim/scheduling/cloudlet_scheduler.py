"""Policies that share a Vm's capacity among the cloudlets running on it."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from ..core.exceptions import UnknownCloudlet
from ..core.workload import Cloudlet, CloudletStatus
from .fairness import max_min_fair_share

CloudletKey = Tuple[Optional[int], int]


class SchedulerKind(Enum):
    TIME_SHARED = "time_shared"
    SPACE_SHARED = "space_shared"


class CloudletScheduler(ABC):
    """Tracks the cloudlets of one Vm and integrates their progress.

    Shares are constant between two calls to `update_shares`; the owner
    calls it whenever the set of active cloudlets or the Vm's capacity
    changes, and at the returned completion time.
    """

    def __init__(self):
        self.exec_list: List[Cloudlet] = []
        self.waiting_list: List[Cloudlet] = []
        self.paused_list: List[Cloudlet] = []
        self.finished_list: List[Cloudlet] = []
        self._finished_keys = set()
        self._shares: Dict[CloudletKey, float] = {}
        self._mips_share: List[float] = []
        self._previous_time: Optional[float] = None

    @property
    def capacity(self) -> float:
        return sum(self._mips_share)

    @property
    def number_of_pes(self) -> int:
        return len(self._mips_share)

    @property
    def per_pe_mips(self) -> float:
        return self.capacity / self.number_of_pes if self._mips_share else 0.0

    @property
    def used_mips(self) -> float:
        return sum(self._shares.values())

    @property
    def previous_time(self) -> Optional[float]:
        return self._previous_time

    def current_share(self, cloudlet: Cloudlet) -> float:
        return self._shares.get(cloudlet.uid, 0.0)

    def update_shares(self, current_time: float, mips_share: Sequence[float]) -> Optional[float]:
        """Advance execution to `current_time` and recompute the shares.

        Returns the time at which the next running cloudlet is expected to
        finish, or None when nothing is progressing.
        """
        self._advance(current_time)
        self._mips_share = list(mips_share)
        self._collect_finished(current_time)
        self._reschedule(current_time)
        return self.next_completion_time(current_time)

    def submit(self, cloudlet: Cloudlet, current_time: float) -> None:
        """Accept a cloudlet for execution at `current_time`."""
        self._advance(current_time)
        if cloudlet.status == CloudletStatus.CREATED:
            cloudlet.set_status(CloudletStatus.QUEUED, current_time)
        self._accept(cloudlet, current_time)
        self._reschedule(current_time)

    def is_finished(self, cloudlet: Cloudlet) -> bool:
        return cloudlet.uid in self._finished_keys

    def has_finished_cloudlets(self) -> bool:
        return bool(self.finished_list)

    def pop_finished(self) -> List[Cloudlet]:
        """Return and forget the cloudlets that reached a terminal status."""
        finished, self.finished_list = self.finished_list, []
        return finished

    def find(self, key: CloudletKey) -> Optional[Cloudlet]:
        for cloudlet in self.exec_list + self.waiting_list + self.paused_list:
            if cloudlet.uid == key:
                return cloudlet
        return None

    def cancel(self, key: CloudletKey, current_time: float) -> Cloudlet:
        """Cancel an unfinished cloudlet; it is reported as finished."""
        self._advance(current_time)
        cloudlet = self._remove(key)
        cloudlet.set_status(CloudletStatus.CANCELED, current_time)
        self._mark_finished(cloudlet)
        self._reschedule(current_time)
        return cloudlet

    def pause(self, key: CloudletKey, current_time: float) -> bool:
        self._advance(current_time)
        cloudlet = self.find(key)
        if cloudlet is None:
            raise UnknownCloudlet(f"Cloudlet {key} is not running on this Vm")
        if cloudlet.status not in (CloudletStatus.INEXEC, CloudletStatus.QUEUED):
            return False
        self._remove(key)
        cloudlet.set_status(CloudletStatus.PAUSED, current_time)
        self.paused_list.append(cloudlet)
        self._reschedule(current_time)
        return True

    def resume(self, key: CloudletKey, current_time: float) -> bool:
        self._advance(current_time)
        cloudlet = next((c for c in self.paused_list if c.uid == key), None)
        if cloudlet is None:
            if self.find(key) is None:
                raise UnknownCloudlet(f"Cloudlet {key} is not running on this Vm")
            return False
        self.paused_list.remove(cloudlet)
        self._accept(cloudlet, current_time)
        self._reschedule(current_time)
        return True

    def fail_all(self, current_time: float) -> List[Cloudlet]:
        """Fail every unfinished cloudlet, e.g. when the Vm is destroyed."""
        self._advance(current_time)
        failed = self.exec_list + self.waiting_list + self.paused_list
        self.exec_list, self.waiting_list, self.paused_list = [], [], []
        self._shares.clear()
        for cloudlet in failed:
            cloudlet.set_status(CloudletStatus.FAILED, current_time)
            self._mark_finished(cloudlet)
        return failed

    def next_completion_time(self, current_time: float) -> Optional[float]:
        next_time = None
        for cloudlet in self.exec_list:
            share = self._shares.get(cloudlet.uid, 0.0)
            if share <= 0:
                continue
            eta = current_time + cloudlet.remaining_length / share
            if next_time is None or eta < next_time:
                next_time = eta
        return next_time

    @property
    def is_idle(self) -> bool:
        return not (self.exec_list or self.waiting_list or self.paused_list)

    def total_utilization_of_ram(self, current_time: float) -> float:
        return min(1.0, sum(c.utilization_of_ram(self._elapsed(c, current_time)) for c in self.exec_list))

    def total_utilization_of_bw(self, current_time: float) -> float:
        return min(1.0, sum(c.utilization_of_bw(self._elapsed(c, current_time)) for c in self.exec_list))

    # ------------------------------------------------------------------

    @abstractmethod
    def _accept(self, cloudlet: Cloudlet, current_time: float) -> None:
        """Place a submitted or resumed cloudlet into the right list."""

    @abstractmethod
    def _compute_shares(self, current_time: float) -> List[float]:
        """MIPS share of each cloudlet in `exec_list`, in order."""

    def _start_waiting(self, current_time: float) -> None:
        """Move waiting cloudlets into execution when capacity allows."""

    def _reschedule(self, current_time: float) -> None:
        self._start_waiting(current_time)
        shares = self._compute_shares(current_time)
        self._shares = {c.uid: share for c, share in zip(self.exec_list, shares)}

    def _advance(self, current_time: float) -> None:
        if self._previous_time is not None:
            elapsed = current_time - self._previous_time
            if elapsed < 0:
                raise ValueError(
                    f"Cannot move scheduler back in time from {self._previous_time} to {current_time}"
                )
            if elapsed > 0:
                for cloudlet in self.exec_list:
                    cloudlet.add_executed_length(self._shares.get(cloudlet.uid, 0.0) * elapsed)
        self._previous_time = current_time

    def _collect_finished(self, current_time: float) -> None:
        for cloudlet in list(self.exec_list):
            if cloudlet.has_reached_length():
                self.exec_list.remove(cloudlet)
                self._shares.pop(cloudlet.uid, None)
                cloudlet.finish(current_time)
                self._mark_finished(cloudlet)

    def _start(self, cloudlet: Cloudlet, current_time: float) -> None:
        cloudlet.set_status(CloudletStatus.INEXEC, current_time)
        self.exec_list.append(cloudlet)
        logger.debug(f"Cloudlet {cloudlet.uid} started at {current_time:.2f}")

    def _remove(self, key: CloudletKey) -> Cloudlet:
        for bucket in (self.exec_list, self.waiting_list, self.paused_list):
            for cloudlet in bucket:
                if cloudlet.uid == key:
                    bucket.remove(cloudlet)
                    self._shares.pop(key, None)
                    return cloudlet
        raise UnknownCloudlet(f"Cloudlet {key} is not running on this Vm")

    def _mark_finished(self, cloudlet: Cloudlet) -> None:
        self.finished_list.append(cloudlet)
        self._finished_keys.add(cloudlet.uid)

    def _cpu_request(self, cloudlet: Cloudlet, current_time: float) -> float:
        utilization = cloudlet.utilization_of_cpu(self._elapsed(cloudlet, current_time))
        return cloudlet.pes * self.per_pe_mips * utilization

    @staticmethod
    def _elapsed(cloudlet: Cloudlet, current_time: float) -> float:
        if cloudlet.exec_start_time is None:
            return 0.0
        return current_time - cloudlet.exec_start_time


class CloudletSchedulerTimeShared(CloudletScheduler):
    """All cloudlets run at once and share the Vm's MIPS by max-min fairness."""

    def _accept(self, cloudlet: Cloudlet, current_time: float) -> None:
        self._start(cloudlet, current_time)

    def _compute_shares(self, current_time: float) -> List[float]:
        requests = [self._cpu_request(c, current_time) for c in self.exec_list]
        return max_min_fair_share(requests, self.capacity)


class CloudletSchedulerSpaceShared(CloudletScheduler):
    """Each running cloudlet holds dedicated PEs; others wait in FIFO order."""

    @property
    def free_pes(self) -> int:
        return self.number_of_pes - sum(c.pes for c in self.exec_list)

    def _accept(self, cloudlet: Cloudlet, current_time: float) -> None:
        if self._mips_share and cloudlet.pes > self.number_of_pes:
            logger.warning(
                f"Cloudlet {cloudlet.uid} needs {cloudlet.pes} PEs but the Vm has {self.number_of_pes}"
            )
            cloudlet.set_status(CloudletStatus.FAILED, current_time)
            self._mark_finished(cloudlet)
            return
        if cloudlet.status == CloudletStatus.PAUSED:
            cloudlet.set_status(CloudletStatus.QUEUED, current_time)
        self.waiting_list.append(cloudlet)

    def _start_waiting(self, current_time: float) -> None:
        while self.waiting_list and self.waiting_list[0].pes <= self.free_pes:
            self._start(self.waiting_list.pop(0), current_time)

    def _compute_shares(self, current_time: float) -> List[float]:
        return [self._cpu_request(c, current_time) for c in self.exec_list]


def create_cloudlet_scheduler(kind) -> CloudletScheduler:
    """Create a cloudlet scheduler from a SchedulerKind or its value."""
    schedulers = {
        SchedulerKind.TIME_SHARED: CloudletSchedulerTimeShared,
        SchedulerKind.SPACE_SHARED: CloudletSchedulerSpaceShared,
    }
    try:
        kind = SchedulerKind(kind)
    except ValueError:
        raise ValueError(f"Unknown cloudlet scheduler kind: {kind}") from None
    return schedulers[kind]()
