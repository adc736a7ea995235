# flightsim/api/routes_state.py
"""Scenario state and difficulty adaptation routes."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from ..errors import ValidationError
from ..llm.client import get_llm_client
from ..scenario.adaptation import adapt_scenario_difficulty
from ..scenario.impact import calculate_decision_impact, current_state, record_state
from ..store.repository import ScenarioRepository
from .dependencies import get_repository
from .envelope import RequestModel, ok

router = APIRouter(prefix="/scenarios", tags=["state"])


class StateRequest(RequestModel):
    """
    Either a decision choice to score or an explicit snapshot.

    When both ``decisionId`` and ``optionId`` are present the impact
    calculator runs and the score fields are ignored.
    """
    scenario_id: str = Field(alias="scenarioId")
    decision_id: Optional[str] = Field(default=None, alias="decisionId")
    option_id: Optional[str] = Field(default=None, alias="optionId")
    safety_score: Optional[float] = Field(default=None, alias="safetyScore")
    efficiency_score: Optional[float] = Field(default=None, alias="efficiencyScore")
    passenger_comfort_score: Optional[float] = Field(default=None, alias="passengerComfortScore")
    time_deviation: Optional[float] = Field(default=None, alias="timeDeviation")
    fuel_remaining: Optional[float] = Field(default=None, alias="fuelRemaining")


class AdaptationRequest(RequestModel):
    scenario_id: str = Field(alias="scenarioId")


@router.get("/state")
async def get_state(
    scenario_id: str = Query(alias="scenarioId"),
    history: bool = Query(default=False),
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    repo.get_scenario(scenario_id)
    if history:
        return ok([state.to_dict() for state in repo.list_states(scenario_id)])
    record = repo.find_current_state(scenario_id)
    if record is not None:
        return ok(record.to_dict())
    return ok({"scenario_id": scenario_id, **current_state(repo, scenario_id).to_dict()})


@router.post("/state", status_code=201)
def post_state(
    request: StateRequest,
    repo: ScenarioRepository = Depends(get_repository),
    llm=Depends(get_llm_client),
) -> Dict[str, Any]:
    if request.decision_id and request.option_id:
        state, impact = calculate_decision_impact(
            repo, llm, request.scenario_id, request.decision_id, request.option_id
        )
        return ok({"state": state.to_dict(), "impact": impact.to_dict()})
    if request.decision_id or request.option_id:
        raise ValidationError("decisionId and optionId must be supplied together")

    scores = request.model_dump(
        include={
            "safety_score",
            "efficiency_score",
            "passenger_comfort_score",
            "time_deviation",
            "fuel_remaining",
        }
    )
    missing = sorted(key for key, value in scores.items() if value is None)
    if missing:
        raise ValidationError(f"Missing state fields: {', '.join(missing)}")
    state = record_state(repo, request.scenario_id, **scores)
    return ok({"state": state.to_dict(), "impact": None})


@router.get("/adaptations")
async def list_adaptations(
    scenario_id: str = Query(alias="scenarioId"),
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    repo.get_scenario(scenario_id)
    return ok([a.to_dict() for a in repo.list_adaptations(scenario_id)])


@router.post("/adaptations", status_code=201)
def adapt_difficulty(
    request: AdaptationRequest,
    repo: ScenarioRepository = Depends(get_repository),
    llm=Depends(get_llm_client),
) -> Dict[str, Any]:
    """Adjust time pressure, weather and radio traffic to recent performance."""
    adaptation = adapt_scenario_difficulty(repo, llm, request.scenario_id)
    return ok(adaptation.to_dict())
