"""Utility modules for the cloud simulator."""

from .config import ScenarioConfig, build_simulation, load_config, save_results

__all__ = [
    "ScenarioConfig",
    "build_simulation",
    "load_config",
    "save_results",
]
