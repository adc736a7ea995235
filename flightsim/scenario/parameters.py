# flightsim/scenario/parameters.py
"""
Parameter Simulator.

Closed-form extrapolation of aircraft parameters between ticks:
- fuel burns linearly at ``fuel_burn_rate`` lbs/minute, floored at 0
- position moves along the heading on a flat-earth grid
  (``speed / 3600 / 60`` degrees per second; not great-circle)
- altitude follows ``vertical_speed`` feet/minute

``simulate_parameters`` and ``apply_parameter_changes`` are pure; the
remaining functions read and write the scenario's parameter row.
"""

import math
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, List, Optional

from ..db.models import AircraftParameters, Scenario
from ..errors import NoCurrentStateError
from ..llm.extract import generate_json
from ..logging import get_logger
from ..settings import settings
from ..store.repository import ScenarioRepository

logger = get_logger(__name__)


@dataclass
class FlightParameters:
    """Snapshot of the simulated aircraft. None means unknown."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None  # feet
    heading: Optional[float] = None  # degrees
    speed: Optional[float] = None  # knots
    vertical_speed: Optional[float] = None  # feet per minute
    fuel: Optional[float] = None  # lbs
    fuel_burn_rate: Optional[float] = None  # lbs per minute

    @classmethod
    def from_record(cls, record: AircraftParameters) -> "FlightParameters":
        return cls(**{f.name: getattr(record, f.name) for f in fields(cls)})

    def to_dict(self) -> Dict[str, Optional[float]]:
        return asdict(self)


@dataclass
class ParameterChange:
    """Partial update; None leaves a parameter unchanged."""
    altitude: Optional[float] = None
    heading: Optional[float] = None
    speed: Optional[float] = None
    vertical_speed: Optional[float] = None
    fuel_burn_rate: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    fuel: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ParameterChange":
        """Keep known numeric keys; drop unknown keys and non-numeric values."""
        values = {}
        for f in fields(cls):
            value = (data or {}).get(f.name)
            if isinstance(value, bool) or value is None:
                continue
            try:
                values[f.name] = float(value)
            except (TypeError, ValueError):
                logger.warning("parameter_change_ignored", field=f.name, value=str(value))
        return cls(**values)

    def to_dict(self) -> Dict[str, float]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    def is_empty(self) -> bool:
        return not self.to_dict()


def simulate_parameters(params: FlightParameters, elapsed_seconds: float) -> FlightParameters:
    """
    Extrapolate parameters ``elapsed_seconds`` into the future.

    Raises:
        ValueError: elapsed_seconds is negative
    """
    if elapsed_seconds < 0:
        raise ValueError("elapsed_seconds must be non-negative")

    result = FlightParameters(**params.to_dict())

    if params.fuel is not None:
        burn_per_second = (params.fuel_burn_rate or 0.0) / 60
        result.fuel = max(0.0, params.fuel - burn_per_second * elapsed_seconds)

    if params.speed and params.latitude is not None and params.longitude is not None:
        rate = params.speed / 3600 / 60
        heading_rad = math.radians(params.heading or 0.0)
        result.latitude = params.latitude + math.cos(heading_rad) * rate * elapsed_seconds
        result.longitude = params.longitude + math.sin(heading_rad) * rate * elapsed_seconds

    if params.vertical_speed and params.altitude is not None:
        result.altitude = params.altitude + (params.vertical_speed / 60) * elapsed_seconds

    return result


def apply_parameter_changes(params: FlightParameters, change: ParameterChange) -> FlightParameters:
    """Overlay the non-null fields of ``change``."""
    return FlightParameters(**{**params.to_dict(), **change.to_dict()})


def default_parameters(scenario: Scenario) -> FlightParameters:
    """Starting parameters: scenario initial values plus configured position/speed."""
    return FlightParameters(
        latitude=settings.default_latitude,
        longitude=settings.default_longitude,
        altitude=scenario.initial_altitude,
        heading=scenario.initial_heading,
        speed=settings.default_speed,
        vertical_speed=0.0,
        fuel=scenario.initial_fuel,
        fuel_burn_rate=scenario.fuel_burn_rate,
    )


def seed_parameters(repo: ScenarioRepository, scenario_id: str) -> FlightParameters:
    """Write default parameters for a scenario and return them."""
    scenario = repo.get_scenario(scenario_id)
    params = default_parameters(scenario)
    repo.save_parameters(scenario_id, params.to_dict())
    logger.info("parameters_seeded", scenario_id=scenario_id, **params.to_dict())
    return params


def current_parameters(repo: ScenarioRepository, scenario_id: str) -> FlightParameters:
    """Current parameters, seeding defaults when none are recorded."""
    record = repo.find_parameters(scenario_id)
    if record is None:
        return seed_parameters(repo, scenario_id)
    return FlightParameters.from_record(record)


def advance_parameters(
    repo: ScenarioRepository,
    scenario_id: str,
    elapsed_seconds: float,
) -> FlightParameters:
    """
    Simulate ``elapsed_seconds`` and persist the result.

    Raises:
        NoCurrentStateError: no parameter row exists; seed one first
    """
    record = repo.find_parameters(scenario_id)
    if record is None:
        raise NoCurrentStateError(scenario_id)
    updated = simulate_parameters(FlightParameters.from_record(record), elapsed_seconds)
    repo.save_parameters(scenario_id, updated.to_dict())
    return updated


def update_parameters(
    repo: ScenarioRepository,
    scenario_id: str,
    change: ParameterChange,
) -> FlightParameters:
    """Apply a partial change to the stored parameters."""
    updated = apply_parameter_changes(current_parameters(repo, scenario_id), change)
    repo.save_parameters(scenario_id, updated.to_dict())
    if not change.is_empty():
        logger.info("parameters_changed", scenario_id=scenario_id, **change.to_dict())
    return updated


PARAMETER_SYSTEM_PROMPT = (
    "You are a flight dynamics model for a training simulator. Given the "
    "current aircraft state and a situation, decide which flight parameters "
    "the crew would change."
)


def build_parameter_prompt(params: FlightParameters, situation: str) -> List[Dict[str, str]]:
    prompt = f"""
Current aircraft state:
- Altitude: {params.altitude} feet
- Heading: {params.heading} degrees
- Speed: {params.speed} knots
- Vertical speed: {params.vertical_speed} feet per minute
- Fuel: {params.fuel} lbs
- Fuel burn rate: {params.fuel_burn_rate} lbs per minute

Situation: {situation}

Respond with JSON only:
{{
  "altitude": number or null,
  "heading": number or null,
  "speed": number or null,
  "vertical_speed": number or null,
  "fuel_burn_rate": number or null
}}
Use null for any parameter that does not change.
""".strip()
    return [
        {"role": "system", "content": PARAMETER_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def suggest_parameter_changes(llm, params: FlightParameters, situation: str) -> ParameterChange:
    """
    Ask the model how a situation changes the flight parameters.

    Raises:
        GenerationParseError: the reply held no JSON object
    """
    result = generate_json(llm, build_parameter_prompt(params, situation))
    change = ParameterChange.from_dict(result.data)
    # Only the five flight-control fields may come from the model
    change.latitude = change.longitude = change.fuel = None
    return change
