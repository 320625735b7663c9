"""Simulation analysis and metrics calculation."""

from typing import Any, Dict, List, Sequence

import numpy as np
import pandas as pd
from loguru import logger

from ..core.simulator import Simulation
from ..core.workload import Cloudlet, CloudletStatus
from ..energy import DEFAULT_CARBON_FACTOR, carbon_emissions, energy_consumed, total_energy_consumed

CLOUDLET_COLUMNS = [
    "cloudlet_id",
    "broker_id",
    "status",
    "datacenter_id",
    "vm_id",
    "cpu_time",
    "submission_time",
    "start_time",
    "finish_time",
    "cost",
]


def cloudlets_to_frame(cloudlets: Sequence[Cloudlet]) -> pd.DataFrame:
    """One row per cloudlet, in the given order."""
    rows = [
        {
            "cloudlet_id": c.cloudlet_id,
            "broker_id": c.broker_id,
            "status": c.status.value,
            "datacenter_id": c.resource_id,
            "vm_id": c.vm_id,
            "cpu_time": c.actual_cpu_time,
            "submission_time": c.submission_time,
            "start_time": c.exec_start_time,
            "finish_time": c.exec_finish_time,
            "cost": c.processing_cost,
        }
        for c in cloudlets
    ]
    return pd.DataFrame(rows, columns=CLOUDLET_COLUMNS)


class SimulationAnalyzer:
    """Analyzer for simulation results."""

    def __init__(self, carbon_factor: float = DEFAULT_CARBON_FACTOR):
        self.carbon_factor = carbon_factor
        self.logger = logger.bind(component="SimulationAnalyzer")

    def analyze(self, simulation: Simulation) -> Dict[str, Any]:
        """Summarize a finished run: cloudlet outcomes, timing, cost, energy."""
        brokers = simulation.brokers
        received: List[Cloudlet] = []
        for broker in brokers:
            received.extend(simulation.received_cloudlets(broker))
        frame = cloudlets_to_frame(received)

        self.logger.info(f"Analyzing simulation with {len(brokers)} broker(s), "
                         f"{len(received)} returned cloudlet(s)")

        analysis = {
            'summary': self._summary(simulation, frame),
            'brokers': {broker.name: self._broker_stats(simulation, broker) for broker in brokers},
            'timing': self._timing(frame),
            'energy': self._energy(simulation),
            'cloudlets': frame.to_dict(orient="records"),
        }

        self.logger.info(f"Analysis completed. {analysis['summary']['successful_cloudlets']} successful, "
                         f"{analysis['energy']['total_energy_kwh']:.6f} kWh")
        return analysis

    def _summary(self, simulation: Simulation, frame: pd.DataFrame) -> Dict[str, Any]:
        counts = frame['status'].value_counts()
        return {
            'final_clock': simulation.clock,
            'dispatched_events': simulation.dispatched_events,
            'entity_errors': len(simulation.errors),
            'returned_cloudlets': len(frame),
            'successful_cloudlets': int(counts.get(CloudletStatus.SUCCESS.value, 0)),
            'failed_cloudlets': int(counts.get(CloudletStatus.FAILED.value, 0)),
            'canceled_cloudlets': int(counts.get(CloudletStatus.CANCELED.value, 0)),
            'binding_failures': sum(len(b.binding_failures) for b in simulation.brokers),
            'total_cost': float(frame['cost'].sum()) if len(frame) else 0.0,
        }

    def _broker_stats(self, simulation: Simulation, broker) -> Dict[str, Any]:
        received = simulation.received_cloudlets(broker)
        return {
            'broker_id': broker.id,
            'vms_created': len(broker.vms_created),
            'vms_failed': len(broker.failed_vms),
            'submitted_cloudlets': len(broker.submitted_cloudlets),
            'returned_cloudlets': len(received),
            'successful_cloudlets': sum(1 for c in received if c.status == CloudletStatus.SUCCESS),
            'binding_failures': [c.cloudlet_id for c in broker.binding_failures],
            'total_cost': float(sum(c.processing_cost for c in received)),
        }

    def _timing(self, frame: pd.DataFrame) -> Dict[str, float]:
        done = frame[frame['status'] == CloudletStatus.SUCCESS.value]
        if done.empty:
            return {
                'avg_cpu_time': 0.0,
                'p95_cpu_time': 0.0,
                'max_cpu_time': 0.0,
                'makespan': 0.0,
            }

        cpu_times = done['cpu_time'].to_numpy(dtype=float)
        return {
            'avg_cpu_time': float(np.mean(cpu_times)),
            'p95_cpu_time': float(np.percentile(cpu_times, 95)),
            'max_cpu_time': float(np.max(cpu_times)),
            'makespan': float(done['finish_time'].max() - done['submission_time'].min()),
        }

    def _energy(self, simulation: Simulation) -> Dict[str, Any]:
        per_datacenter = {}
        for datacenter in simulation.datacenters:
            energy = total_energy_consumed(datacenter)
            per_datacenter[datacenter.name] = {
                'energy_kwh': energy,
                'carbon_g': carbon_emissions(energy, self.carbon_factor),
                'allocated_energy_kwh': energy_consumed(datacenter.hosts),
                'peak_allocated_energy_kwh': datacenter.power_meter.peak_allocated_energy_kwh,
            }

        total = sum(d['energy_kwh'] for d in per_datacenter.values())
        return {
            'carbon_factor': self.carbon_factor,
            'total_energy_kwh': total,
            'total_carbon_g': carbon_emissions(total, self.carbon_factor),
            'peak_allocated_energy_kwh': sum(d['peak_allocated_energy_kwh'] for d in per_datacenter.values()),
            'datacenters': per_datacenter,
        }
