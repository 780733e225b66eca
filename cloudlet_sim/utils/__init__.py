"""Utility modules for the cloudlet simulator."""

from .config import (
    ScenarioConfig,
    Scenario,
    build_scenario,
    default_scenario_config,
    load_config,
    parse_config,
    save_config,
    save_results,
)

__all__ = [
    "ScenarioConfig",
    "Scenario",
    "build_scenario",
    "default_scenario_config",
    "load_config",
    "parse_config",
    "save_config",
    "save_results",
]
