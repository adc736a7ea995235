# flightsim/scenario/lifecycle.py
"""
Scenario lifecycle: create, load, activate, deactivate.
"""

from typing import Any, Dict

from ..db.models import Scenario
from ..logging import get_scenario_logger
from ..store.definitions import ScenarioDefinition
from ..store.repository import ScenarioRepository
from .impact import seed_initial_state
from .parameters import default_parameters


def create_scenario(repo: ScenarioRepository, data: Dict[str, Any]) -> Scenario:
    """
    Create a scenario and all of its children from a plain dict.

    Raises:
        ValidationError: title missing or malformed numbers
    """
    return repo.create_scenario(ScenarioDefinition.from_dict(data))


def scenario_detail(repo: ScenarioRepository, scenario_id: str) -> Dict[str, Any]:
    """Scenario with waypoints (by sequence), decisions with options, queue and weather."""
    scenario = repo.load_scenario(scenario_id)
    detail = scenario.to_dict()
    detail["waypoints"] = [w.to_dict() for w in scenario.waypoints]
    detail["decisions"] = [
        {**d.to_dict(), "options": [o.to_dict() for o in d.options]}
        for d in scenario.decisions
    ]
    detail["communications"] = [c.to_dict() for c in scenario.queued_communications]
    detail["weather"] = scenario.weather.weather_data if scenario.weather is not None else None
    return detail


def activate_scenario(repo: ScenarioRepository, scenario_id: str) -> Scenario:
    """
    Start (or restart) a scenario.

    Marks it active, activates its first waypoint, resets aircraft
    parameters to the initial values, records the initial state if none
    exists and starts a fresh clock.
    """
    log = get_scenario_logger(__name__, scenario_id)
    with repo.unit_of_work():
        scenario = repo.get_scenario(scenario_id)
        scenario.is_active = True

        waypoints = repo.list_waypoints(scenario_id)
        if waypoints and not any(w.is_active for w in waypoints):
            repo.update_waypoint(waypoints[0].id, is_active=True)

        repo.save_parameters(scenario_id, default_parameters(scenario).to_dict())
        seed_initial_state(repo, scenario_id)
        repo.create_timing(scenario_id)

    log.info("scenario_activated", title=scenario.title)
    return scenario


def deactivate_scenario(repo: ScenarioRepository, scenario_id: str) -> Scenario:
    """Stop a scenario: clear active flags on it, its decisions and nodes; drop its clock."""
    log = get_scenario_logger(__name__, scenario_id)
    with repo.unit_of_work():
        scenario = repo.get_scenario(scenario_id)
        scenario.is_active = False
        repo.deactivate_decisions(scenario_id)
        repo.deactivate_nodes(scenario_id)
        repo.delete_timing(scenario_id)

    log.info("scenario_deactivated")
    return scenario
