# flightsim/api/routes_decisions.py
"""
Decision routes.

Decisions, their tree nodes, and the responses that advance the tree.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from ..db.models import Decision
from ..errors import NotFoundError
from ..scenario.decision_tree import DecisionTree
from ..settings import settings
from ..store.repository import ScenarioRepository
from .dependencies import get_decision_tree, get_repository
from .envelope import RequestModel, ok

router = APIRouter(prefix="/scenarios", tags=["decisions"])


class DecisionPatchRequest(RequestModel):
    scenario_id: str = Field(alias="scenarioId")
    decision_id: str = Field(alias="decisionId")
    is_active: bool = Field(alias="isActive")


class TimeLimitPatchRequest(RequestModel):
    time_limit: int = Field(alias="timeLimit", gt=0)


class NodePatchRequest(RequestModel):
    scenario_id: str = Field(alias="scenarioId")
    node_id: str = Field(alias="nodeId")
    is_active: bool = Field(alias="isActive")


class DecisionResponseRequest(RequestModel):
    scenario_id: str = Field(alias="scenarioId")
    decision_id: str = Field(alias="decisionId")
    option_id: str = Field(alias="optionId")


def _decision_dict(decision: Decision) -> Dict[str, Any]:
    data = decision.to_dict()
    data["options"] = [option.to_dict() for option in decision.options]
    return data


# ============================================================
# DECISIONS
# ============================================================

@router.get("/decisions")
async def list_decisions(
    scenario_id: str = Query(alias="scenarioId"),
    is_active: Optional[bool] = Query(default=None, alias="isActive"),
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    repo.get_scenario(scenario_id)
    return ok([_decision_dict(d) for d in repo.list_decisions(scenario_id, is_active=is_active)])


@router.patch("/decisions")
async def patch_decision(
    request: DecisionPatchRequest,
    tree: DecisionTree = Depends(get_decision_tree),
) -> Dict[str, Any]:
    """Activate or deactivate a decision (through its node when it has one)."""
    decision = tree.repo.get_decision(request.decision_id)
    if decision.scenario_id != request.scenario_id:
        raise NotFoundError("Decision", request.decision_id)
    decision = tree.set_decision_active(decision.id, request.is_active)
    return ok(_decision_dict(decision))


@router.get("/decisions/responses")
async def list_responses(
    scenario_id: str = Query(alias="scenarioId"),
    limit: int = Query(default=settings.response_history_limit, ge=1),
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Latest responses, newest first, with the decision and option text."""
    repo.get_scenario(scenario_id)
    responses = repo.list_responses(scenario_id, limit=limit, newest_first=True)
    return ok([
        {
            **response.to_dict(),
            "decision_title": response.decision.title,
            "option_text": response.option.text,
            "is_recommended": response.option.is_recommended,
        }
        for response in responses
    ])


@router.post("/decisions/responses", status_code=201)
def respond_to_decision(
    request: DecisionResponseRequest,
    tree: DecisionTree = Depends(get_decision_tree),
) -> Dict[str, Any]:
    """Record the pilot's choice and advance the decision tree."""
    outcome = tree.process_decision(request.scenario_id, request.decision_id, request.option_id)
    return ok(outcome.to_dict())


@router.get("/decisions/{decision_id}")
async def get_decision(
    decision_id: str,
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    return ok(_decision_dict(repo.get_decision(decision_id)))


@router.patch("/decisions/{decision_id}")
async def patch_time_limit(
    decision_id: str,
    request: TimeLimitPatchRequest,
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    with repo.unit_of_work():
        decision = repo.update_decision(decision_id, time_limit=request.time_limit)
    return ok(_decision_dict(decision))


# ============================================================
# DECISION NODES
# ============================================================

@router.get("/decision-nodes")
async def list_nodes(
    scenario_id: str = Query(alias="scenarioId"),
    is_active: Optional[bool] = Query(default=None, alias="isActive"),
    trigger_time: Optional[int] = Query(default=None, alias="triggerTime", ge=0),
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Nodes filtered by active flag and a maximum trigger time."""
    repo.get_scenario(scenario_id)
    nodes = repo.list_nodes(scenario_id, is_active=is_active, max_trigger_time=trigger_time)
    return ok([node.to_dict() for node in nodes])


@router.patch("/decision-nodes")
async def patch_node(
    request: NodePatchRequest,
    tree: DecisionTree = Depends(get_decision_tree),
) -> Dict[str, Any]:
    node = tree.repo.get_node(request.node_id)
    if node.scenario_id != request.scenario_id:
        raise NotFoundError("DecisionNode", request.node_id)
    return ok(tree.set_node_active(node.id, request.is_active).to_dict())


@router.get("/decision-tree")
async def get_decision_tree_view(
    scenario_id: str = Query(alias="scenarioId"),
    tree: DecisionTree = Depends(get_decision_tree),
) -> Dict[str, Any]:
    view = tree.load(scenario_id)
    return ok({
        "current_node_id": view.current_node_id,
        "nodes": [node.to_dict() for node in view.nodes],
    })
