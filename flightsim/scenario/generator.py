# flightsim/scenario/generator.py
"""
Scenario generation from structured parameters or a free-text request.

This is the one place that degrades instead of failing: an unparseable
reply is scraped over a minimal scenario built from the request, so the
caller always gets something it can save.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..db.models import Scenario
from ..errors import ValidationError
from ..llm.extract import ExtractionResult, generate_json
from ..logging import get_logger
from ..settings import settings
from ..store.definitions import ScenarioDefinition
from ..store.repository import ScenarioRepository

logger = get_logger(__name__)

WEATHER_TYPES = ("clear", "rain", "snow", "fog", "thunderstorm")
COMPLEXITY_DECISIONS = {"low": "1-2", "medium": "3-4", "high": "5-6"}

SCENARIO_SYSTEM_PROMPT = (
    "You are a flight simulation scenario creator. Create detailed, realistic "
    "aviation scenarios with clear decision points."
)

SCENARIO_JSON_FORMAT = """
{
  "title": "Brief title of the scenario",
  "description": "Detailed description of the scenario setup",
  "aircraft": "aircraft type",
  "departure": "ICAO code",
  "arrival": "ICAO code",
  "initial_altitude": number (feet),
  "initial_heading": number (degrees),
  "initial_fuel": number (pounds),
  "max_fuel": number (pounds),
  "fuel_burn_rate": number (pounds per minute),
  "waypoints": [
    {"name": "identifier", "position_x": -1 to 1, "position_y": -1 to 1, "sequence": number, "eta": "HH:MM"}
  ],
  "weather_cells": [
    {"intensity": "light" | "moderate" | "heavy", "position": {"x": -1 to 1, "y": -1 to 1}, "size": 0 to 1}
  ],
  "decisions": [
    {
      "title": "Brief decision title",
      "description": "What must be decided",
      "time_limit": seconds or null,
      "is_urgent": boolean,
      "trigger_condition": "When this decision appears",
      "trigger_time": seconds after scenario start,
      "options": [{"text": "Option text", "consequences": "What happens", "is_recommended": boolean}]
    }
  ],
  "communications": [
    {"type": "atc" | "crew" | "system", "sender": "name", "message": "text", "is_important": boolean,
     "trigger_condition": "When it is heard", "trigger_time": seconds after scenario start}
  ]
}
""".strip()


@dataclass
class ScenarioParams:
    aircraft: str
    departure: str
    arrival: str
    weather: str = "clear"
    complexity: str = "medium"
    duration: int = 30  # minutes

    def __post_init__(self):
        if self.weather not in WEATHER_TYPES:
            raise ValidationError(f"weather must be one of {list(WEATHER_TYPES)}")
        if self.complexity not in COMPLEXITY_DECISIONS:
            raise ValidationError(f"complexity must be one of {list(COMPLEXITY_DECISIONS)}")
        if self.duration <= 0:
            raise ValidationError("duration must be positive")


def minimal_scenario(
    aircraft: Optional[str] = None,
    departure: Optional[str] = None,
    arrival: Optional[str] = None,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    """Smallest savable scenario; used when the model reply cannot be parsed."""
    route = f"{departure or 'Unknown departure'} to {arrival or 'Unknown arrival'}"
    return {
        "title": f"Flight from {route}",
        "description": description or "No description provided",
        "aircraft": aircraft or "Unknown aircraft",
        "departure": departure or "Unknown departure",
        "arrival": arrival or "Unknown arrival",
        "initial_altitude": 30000,
        "initial_heading": 0,
        "initial_fuel": 10000,
        "max_fuel": 20000,
        "fuel_burn_rate": 50,
        "waypoints": [],
        "weather_cells": [],
        "decisions": [],
        "communications": [],
    }


def build_params_prompt(params: ScenarioParams) -> List[Dict[str, str]]:
    prompt = f"""
Generate a detailed flight scenario for a {params.aircraft} flying from {params.departure} to {params.arrival}.
The weather conditions are {params.weather} and the scenario complexity should be {params.complexity}.
The scenario should last approximately {params.duration} minutes.

Provide the scenario in this JSON format:
{SCENARIO_JSON_FORMAT}

Make the scenario realistic and challenging.
For {params.complexity} complexity, include {COMPLEXITY_DECISIONS[params.complexity]} decision points.
The weather cells should reflect {params.weather} conditions.
Include realistic communications between ATC and crew throughout the flight.
""".strip()
    return [
        {"role": "system", "content": SCENARIO_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def build_request_prompt(request: str) -> List[Dict[str, str]]:
    prompt = f"""
Generate a flight training scenario for this request:
{request}

Provide the scenario in this JSON format:
{SCENARIO_JSON_FORMAT}

Include realistic waypoints, weather, decision points and ATC/crew communications.
""".strip()
    return [
        {"role": "system", "content": SCENARIO_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


NUMERIC_FIELDS = (
    "initial_altitude", "initial_heading", "initial_fuel", "max_fuel", "fuel_burn_rate",
)


def _generate(llm, messages: List[Dict[str, str]], fallback: Dict[str, Any]) -> ExtractionResult:
    result = generate_json(
        llm, messages, defaults=fallback, max_tokens=settings.llm_scenario_max_tokens
    )
    if not result.is_clean:
        logger.warning("scenario_generation_degraded", method=result.method)

    data = result.data
    if not data.get("title"):
        data["title"] = fallback["title"]
    for key in NUMERIC_FIELDS:
        try:
            float(data.get(key))
        except (TypeError, ValueError):
            logger.warning("scenario_field_defaulted", field=key, value=str(data.get(key)))
            data[key] = fallback[key]
    return result


def generate_scenario(llm, params: ScenarioParams) -> Dict[str, Any]:
    """Scenario dict for the given parameters (never raises on bad model output)."""
    fallback = minimal_scenario(params.aircraft, params.departure, params.arrival)
    messages = build_params_prompt(params)
    return _generate(llm, messages, fallback).data


def generate_scenario_from_prompt(llm, request: str) -> Dict[str, Any]:
    """Scenario dict for a free-text request (never raises on bad model output)."""
    if not request or not request.strip():
        raise ValidationError("prompt is required")
    fallback = minimal_scenario(description=request.strip())
    return _generate(llm, build_request_prompt(request), fallback).data


def generate_and_save(
    repo: ScenarioRepository,
    llm,
    params: Optional[ScenarioParams] = None,
    request: Optional[str] = None,
) -> Scenario:
    """Generate a scenario from params or a free-text request and store it."""
    if params is not None:
        data = generate_scenario(llm, params)
    elif request is not None:
        data = generate_scenario_from_prompt(llm, request)
    else:
        raise ValidationError("Either scenario parameters or a prompt is required")
    return repo.create_scenario(ScenarioDefinition.from_dict(data, lenient=True))
