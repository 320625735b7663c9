"""Evaluation and analysis modules."""

from .metrics import SimulationAnalyzer, cloudlets_to_frame

__all__ = [
    "SimulationAnalyzer",
    "cloudlets_to_frame",
]
