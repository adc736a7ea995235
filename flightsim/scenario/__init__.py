# flightsim/scenario/__init__.py
"""Scenario engine: simulation, decisions, timing, evaluation."""

from .decision_tree import (
    BranchContext,
    BranchGenerator,
    CannedBranchGenerator,
    DecisionOutcome,
    DecisionTree,
    GeneratedBranch,
    LLMBranchGenerator,
)
from .parameters import FlightParameters, ParameterChange, simulate_parameters
from .tick import TickProcessor, TickResult

__all__ = [
    "BranchContext",
    "BranchGenerator",
    "CannedBranchGenerator",
    "DecisionOutcome",
    "DecisionTree",
    "GeneratedBranch",
    "LLMBranchGenerator",
    "FlightParameters",
    "ParameterChange",
    "simulate_parameters",
    "TickProcessor",
    "TickResult",
]
