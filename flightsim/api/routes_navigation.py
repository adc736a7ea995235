# flightsim/api/routes_navigation.py
"""Waypoint and weather routes."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from ..store.repository import ScenarioRepository
from .dependencies import get_repository
from .envelope import RequestModel, ok

router = APIRouter(prefix="/scenarios", tags=["navigation"])


class WaypointPatchRequest(RequestModel):
    waypoint_id: str = Field(alias="waypointId")
    is_active: Optional[bool] = Field(default=None, alias="isActive")
    is_passed: Optional[bool] = Field(default=None, alias="isPassed")
    eta: Optional[str] = None


class WeatherPatchRequest(RequestModel):
    scenario_id: str = Field(alias="scenarioId")
    weather_data: Any = Field(alias="weatherData")


@router.get("/waypoints")
async def list_waypoints(
    scenario_id: str = Query(alias="scenarioId"),
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Waypoints in flight-path order."""
    repo.get_scenario(scenario_id)
    return ok([w.to_dict() for w in repo.list_waypoints(scenario_id)])


@router.patch("/waypoints")
async def patch_waypoint(
    request: WaypointPatchRequest,
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    patch = request.model_dump(exclude={"waypoint_id"}, exclude_none=True)
    with repo.unit_of_work():
        waypoint = repo.update_waypoint(request.waypoint_id, **patch)
    return ok(waypoint.to_dict())


@router.get("/weather")
async def get_weather(
    scenario_id: str = Query(alias="scenarioId"),
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    repo.get_scenario(scenario_id)
    weather = repo.find_weather(scenario_id)
    return ok({
        "scenario_id": scenario_id,
        "weather_data": weather.weather_data if weather is not None else None,
    })


@router.patch("/weather")
async def patch_weather(
    request: WeatherPatchRequest,
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    repo.get_scenario(request.scenario_id)
    with repo.unit_of_work():
        weather = repo.set_weather(request.scenario_id, request.weather_data)
    return ok(weather.to_dict())
