# flightsim/api/routes_scenarios.py
"""
Scenario API routes.

Create, list, load, activate/deactivate, generate and evaluate scenarios.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import Field

from ..errors import ValidationError
from ..llm.client import get_llm_client
from ..scenario import evaluation, generator, lifecycle
from ..store.repository import ScenarioRepository
from .dependencies import get_repository
from .envelope import RequestModel, ok

router = APIRouter(prefix="/scenarios", tags=["scenarios"])


class ScenarioActionRequest(RequestModel):
    """Activate or deactivate a scenario."""
    id: str
    action: str  # activate | deactivate


class GenerateScenarioRequest(RequestModel):
    """Either structured parameters or a free-text prompt."""
    prompt: Optional[str] = None
    aircraft: Optional[str] = None
    departure: Optional[str] = None
    arrival: Optional[str] = None
    weather: str = "clear"
    complexity: str = "medium"
    duration: int = Field(default=30, gt=0)


@router.get("")
async def list_scenarios(
    active: Optional[bool] = Query(default=None),
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """List scenarios, newest first."""
    return ok([s.to_dict() for s in repo.list_scenarios(is_active=active)])


@router.post("", status_code=201)
async def create_scenario(
    payload: Dict[str, Any] = Body(...),
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """
    Create a scenario with waypoints, weather, decisions and communications.

    Only ``title`` is required; everything else has a default.
    """
    scenario = lifecycle.create_scenario(repo, payload)
    return ok(lifecycle.scenario_detail(repo, scenario.id))


@router.patch("")
async def update_scenario_status(
    request: ScenarioActionRequest,
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Activate or deactivate a scenario by id."""
    if request.action == "activate":
        scenario = lifecycle.activate_scenario(repo, request.id)
    elif request.action == "deactivate":
        scenario = lifecycle.deactivate_scenario(repo, request.id)
    else:
        raise ValidationError("action must be 'activate' or 'deactivate'")
    return ok(scenario.to_dict())


@router.post("/generate", status_code=201)
def generate_scenario(
    request: GenerateScenarioRequest,
    repo: ScenarioRepository = Depends(get_repository),
    llm=Depends(get_llm_client),
) -> Dict[str, Any]:
    """Generate and store a scenario from parameters or a prompt."""
    if request.prompt:
        scenario = generator.generate_and_save(repo, llm, request=request.prompt)
    else:
        missing = [f for f in ("aircraft", "departure", "arrival") if not getattr(request, f)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        params = generator.ScenarioParams(
            aircraft=request.aircraft,
            departure=request.departure,
            arrival=request.arrival,
            weather=request.weather,
            complexity=request.complexity,
            duration=request.duration,
        )
        scenario = generator.generate_and_save(repo, llm, params=params)
    return ok(lifecycle.scenario_detail(repo, scenario.id))


@router.get("/{scenario_id}")
async def get_scenario(
    scenario_id: str,
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Scenario with its waypoints, decisions, queued communications and weather."""
    return ok(lifecycle.scenario_detail(repo, scenario_id))


@router.get("/{scenario_id}/evaluation")
async def get_evaluation(
    scenario_id: str,
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    return ok(evaluation.get_evaluation(repo, scenario_id).to_dict())


@router.post("/{scenario_id}/evaluation")
def evaluate_scenario(
    scenario_id: str,
    repo: ScenarioRepository = Depends(get_repository),
    llm=Depends(get_llm_client),
) -> Dict[str, Any]:
    """Evaluate the scenario; replaces an earlier evaluation."""
    return ok(evaluation.evaluate_scenario(repo, llm, scenario_id).to_dict())


@router.get("/{scenario_id}/report")
def get_performance_report(
    scenario_id: str,
    repo: ScenarioRepository = Depends(get_repository),
    llm=Depends(get_llm_client),
) -> Dict[str, Any]:
    """Markdown debrief for an evaluated scenario."""
    report = evaluation.generate_performance_report(repo, llm, scenario_id)
    return ok({"scenario_id": scenario_id, "report": report})
