# flightsim/api/__init__.py
"""HTTP routers for the scenario engine."""

from . import (
    routes_communications,
    routes_decisions,
    routes_navigation,
    routes_runtime,
    routes_scenarios,
    routes_state,
)

# Fixed paths first; routes_scenarios owns /scenarios/{scenario_id}.
# Handlers that call the language model are plain def so they run in the threadpool.
ROUTERS = (
    routes_runtime.router,
    routes_navigation.router,
    routes_communications.router,
    routes_decisions.router,
    routes_state.router,
    routes_scenarios.router,
)

__all__ = ["ROUTERS"]
