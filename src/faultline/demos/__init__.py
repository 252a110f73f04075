"""Error-taxonomy demo scenarios."""

from faultline.demos.scenarios import SCENARIOS, Scenario, list_scenarios, run_scenario

__all__ = ["SCENARIOS", "Scenario", "list_scenarios", "run_scenario"]
