# flightsim/store/__init__.py
"""Persistence access for scenarios."""

from .definitions import (
    CommunicationDefinition,
    DecisionDefinition,
    OptionDefinition,
    ScenarioDefinition,
    WaypointDefinition,
)
from .repository import ScenarioRepository

__all__ = [
    "ScenarioRepository",
    "ScenarioDefinition",
    "WaypointDefinition",
    "DecisionDefinition",
    "OptionDefinition",
    "CommunicationDefinition",
]
