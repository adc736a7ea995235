# flightsim/api/routes_runtime.py
"""
Runtime API routes.

Aircraft parameters, scenario clock and the per-second tick.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from ..llm.client import get_llm_client
from ..scenario import parameters, tick
from ..scenario.decision_tree import DecisionTree
from ..store.repository import ScenarioRepository
from .dependencies import get_decision_tree, get_repository
from .envelope import RequestModel, ok

router = APIRouter(prefix="/scenarios", tags=["runtime"])


class ParameterPatchRequest(RequestModel):
    """Partial parameter update; omitted or null fields are unchanged."""
    scenario_id: str = Field(alias="scenarioId")
    altitude: Optional[float] = None
    heading: Optional[float] = None
    speed: Optional[float] = None
    vertical_speed: Optional[float] = Field(default=None, alias="verticalSpeed")
    fuel_burn_rate: Optional[float] = Field(default=None, alias="fuelBurnRate")
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    fuel: Optional[float] = Field(default=None, ge=0)


class ParameterSuggestionRequest(RequestModel):
    scenario_id: str = Field(alias="scenarioId")
    situation: str = Field(min_length=1)
    apply: bool = False


class TimingPatchRequest(RequestModel):
    scenario_id: str = Field(alias="scenarioId")
    elapsed_seconds: Optional[int] = Field(default=None, alias="elapsedSeconds", ge=0)
    is_paused: Optional[bool] = Field(default=None, alias="isPaused")


class ScenarioRefRequest(RequestModel):
    scenario_id: str = Field(alias="scenarioId")


class TickRequest(RequestModel):
    scenario_id: str = Field(alias="scenarioId")
    seconds_elapsed: int = Field(default=1, alias="secondsElapsed", ge=0)


def _timing_dict(timing) -> Dict[str, Any]:
    data = timing.to_dict()
    data.pop("version", None)
    return data


@router.get("/parameters")
async def get_parameters(
    scenario_id: str = Query(alias="scenarioId"),
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Current aircraft parameters (seeded from the scenario if none exist)."""
    with repo.unit_of_work():
        current = parameters.current_parameters(repo, scenario_id)
    return ok({"scenario_id": scenario_id, **current.to_dict()})


@router.patch("/parameters")
async def patch_parameters(
    request: ParameterPatchRequest,
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    change = parameters.ParameterChange.from_dict(
        request.model_dump(exclude={"scenario_id"}, exclude_none=True)
    )
    with repo.unit_of_work():
        updated = parameters.update_parameters(repo, request.scenario_id, change)
    return ok({"scenario_id": request.scenario_id, **updated.to_dict()})


@router.post("/parameters/suggest")
def suggest_parameters(
    request: ParameterSuggestionRequest,
    repo: ScenarioRepository = Depends(get_repository),
    llm=Depends(get_llm_client),
) -> Dict[str, Any]:
    """Ask the model how a situation changes the flight parameters; optionally apply it."""
    with repo.unit_of_work():
        current = parameters.current_parameters(repo, request.scenario_id)
    change = parameters.suggest_parameter_changes(llm, current, request.situation)
    result = {"scenario_id": request.scenario_id, "changes": change.to_dict()}
    if request.apply:
        with repo.unit_of_work():
            result["parameters"] = parameters.update_parameters(
                repo, request.scenario_id, change
            ).to_dict()
    return ok(result)


@router.get("/timing")
async def get_timing(
    scenario_id: str = Query(alias="scenarioId"),
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    return ok(_timing_dict(repo.get_timing(scenario_id)))


@router.patch("/timing")
async def patch_timing(
    request: TimingPatchRequest,
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Set elapsed seconds (never backwards) and/or pause state."""
    timing = tick.update_timing(
        repo,
        request.scenario_id,
        elapsed_seconds=request.elapsed_seconds,
        is_paused=request.is_paused,
    )
    return ok(_timing_dict(timing))


@router.post("/timing/pause")
async def pause_timing(
    request: ScenarioRefRequest,
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    return ok(_timing_dict(tick.pause_scenario(repo, request.scenario_id)))


@router.post("/timing/resume")
async def resume_timing(
    request: ScenarioRefRequest,
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    return ok(_timing_dict(tick.resume_scenario(repo, request.scenario_id)))


@router.post("/timing/tick")
async def process_tick(
    request: TickRequest,
    repo: ScenarioRepository = Depends(get_repository),
    tree: DecisionTree = Depends(get_decision_tree),
) -> Dict[str, Any]:
    """Advance the scenario clock and fire anything that has come due."""
    repo.get_scenario(request.scenario_id)
    processor = tick.TickProcessor(repo, tree)
    return ok(processor.process_tick(request.scenario_id, request.seconds_elapsed).to_dict())
