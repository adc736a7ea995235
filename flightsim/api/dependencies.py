# flightsim/api/dependencies.py
"""FastAPI dependencies shared by the routers."""

from fastapi import Depends
from sqlalchemy.orm import Session

from ..db.engine import get_session
from ..scenario.decision_tree import BranchGenerator, DecisionTree, LLMBranchGenerator
from ..store.repository import ScenarioRepository


def get_repository(session: Session = Depends(get_session)) -> ScenarioRepository:
    return ScenarioRepository(session)


def get_branch_generator() -> BranchGenerator:
    return LLMBranchGenerator()


def get_decision_tree(
    repo: ScenarioRepository = Depends(get_repository),
    generator: BranchGenerator = Depends(get_branch_generator),
) -> DecisionTree:
    return DecisionTree(repo, generator)
