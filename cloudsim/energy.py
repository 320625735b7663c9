"""Energy and carbon accounting derived from host resource state.

Two figures are available:

* a point-in-time energy figure, a pure function of the hosts' current
  provisioner state (`energy_consumed`);
* a cumulative figure, integrated by a `PowerMeter` that each datacenter
  feeds whenever its resource state changes (`total_energy_consumed`).

Simulated time is taken to be in seconds when converting watts to kWh.
Nothing here mutates provisioner or scheduler state.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Tuple

from loguru import logger

# Grams of CO2 per kWh; depends on the region's energy mix.
DEFAULT_CARBON_FACTOR = 0.4

SECONDS_PER_HOUR = 3600.0
WATTS_PER_KILOWATT = 1000.0


class EnergyModel(ABC):
    """Maps a host's current state to an energy figure in kWh."""

    @abstractmethod
    def energy(self, host) -> float:
        pass


class RamEnergyModel(EnergyModel):
    """Energy proportional to the RAM allocated on the host."""

    def __init__(self, kwh_per_mb: float = 0.001):
        if kwh_per_mb < 0:
            raise ValueError("kwh_per_mb must be non-negative")
        self.kwh_per_mb = kwh_per_mb

    def energy(self, host) -> float:
        return host.ram_provisioner.allocated * self.kwh_per_mb


class PowerModel(ABC):
    """Maps CPU utilization in [0, 1] to power draw in watts."""

    @abstractmethod
    def power(self, utilization: float) -> float:
        pass


class LinearPowerModel(PowerModel):
    """Power grows linearly from idle to maximum with CPU utilization."""

    def __init__(self, idle_watts: float = 100.0, max_watts: float = 250.0):
        if idle_watts < 0 or max_watts < idle_watts:
            raise ValueError("Expected 0 <= idle_watts <= max_watts")
        self.idle_watts = idle_watts
        self.max_watts = max_watts

    def power(self, utilization: float) -> float:
        if not 0.0 <= utilization <= 1.0:
            raise ValueError(f"Utilization must be in [0, 1], got {utilization}")
        return self.idle_watts + (self.max_watts - self.idle_watts) * utilization


def energy_consumed(hosts: Iterable, model: Optional[EnergyModel] = None) -> float:
    """Point-in-time energy of a set of hosts, in kWh."""
    model = model or RamEnergyModel()
    return sum(model.energy(host) for host in hosts)


def carbon_emissions(energy_kwh: float, factor: float = DEFAULT_CARBON_FACTOR) -> float:
    """Emissions in grams of CO2 for `energy_kwh` at the given regional factor."""
    return energy_kwh * factor


def watt_seconds_to_kwh(watt_seconds: float) -> float:
    return watt_seconds / (SECONDS_PER_HOUR * WATTS_PER_KILOWATT)


class PowerMeter:
    """Integrates the power drawn by a set of hosts over simulated time.

    Each refresh also reads the point-in-time energy figure of the hosts and
    keeps its peak, since Vms are released before a run is analyzed.
    """

    def __init__(self, power_model: Optional[PowerModel] = None, energy_model: Optional[EnergyModel] = None):
        self.power_model = power_model or LinearPowerModel()
        self.energy_model = energy_model or RamEnergyModel()
        self.total_energy_kwh = 0.0
        self.current_power = 0.0
        self.peak_allocated_energy_kwh = 0.0
        self.last_time: Optional[float] = None
        self.samples: List[Tuple[float, float]] = []

    def power_of(self, hosts: Iterable) -> float:
        return sum(self.power_model.power(host.get_utilization().cpu_utilization) for host in hosts)

    def advance(self, current_time: float) -> None:
        """Account the energy drawn at the current power up to `current_time`."""
        self.total_energy_kwh = self.energy_until(current_time)
        self.last_time = current_time

    def refresh(self, current_time: float, hosts: Iterable) -> None:
        """Record the power drawn from `current_time` on."""
        self.advance(current_time)
        hosts = list(hosts)
        self.current_power = self.power_of(hosts)
        self.peak_allocated_energy_kwh = max(self.peak_allocated_energy_kwh,
                                             energy_consumed(hosts, self.energy_model))
        self.samples.append((current_time, self.current_power))
        logger.debug(f"Power at {current_time:.2f}: {self.current_power:.1f} W")

    def energy_until(self, current_time: float) -> float:
        """Cumulative energy in kWh up to `current_time`, without recording it."""
        if self.last_time is None or current_time <= self.last_time:
            return self.total_energy_kwh
        elapsed = current_time - self.last_time
        return self.total_energy_kwh + watt_seconds_to_kwh(self.current_power * elapsed)


def total_energy_consumed(datacenter, until: Optional[float] = None) -> float:
    """Cumulative energy drawn by a datacenter's hosts, in kWh."""
    if until is None:
        until = datacenter.clock
    return datacenter.power_meter.energy_until(until)
