# tests/conftest.py
"""
Pytest configuration and fixtures.

Every test gets its own in-memory SQLite database (StaticPool keeps the
single connection alive across sessions and threads), so no external
services are needed. Language-model calls go to FakeLLM, which replays
canned replies and records the prompts it was sent.
"""

import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from flightsim.db.engine import Base, get_session, init_db
from flightsim.scenario.decision_tree import CannedBranchGenerator, DecisionTree
from flightsim.scenario.lifecycle import activate_scenario, create_scenario
from flightsim.store.repository import ScenarioRepository


# ============================================================
# LANGUAGE MODEL DOUBLE
# ============================================================

class FakeLLM:
    """
    Stand-in for LLMClient.

    Replies are consumed in order; dict replies are sent as JSON text and
    exception instances are raised. Running out of replies fails the test.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []
        self.kwargs = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def generate(self, messages, **kwargs):
        self.prompts.append(messages)
        self.kwargs.append(kwargs)
        if not self.responses:
            raise AssertionError("FakeLLM received an unexpected generate() call")
        reply = self.responses.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            return json.dumps(reply)
        return reply

    @property
    def last_prompt(self) -> str:
        """User content of the most recent call."""
        return "\n".join(m["content"] for m in self.prompts[-1] if m["role"] == "user")


# ============================================================
# DATABASE
# ============================================================

@pytest.fixture
def engine():
    """Fresh in-memory database with the full schema."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session(engine) -> Session:
    SessionFactory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionFactory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def repo(session) -> ScenarioRepository:
    return ScenarioRepository(session)


# ============================================================
# SCENARIOS
# ============================================================

@pytest.fixture
def scenario_data() -> dict:
    """Two waypoints, two decisions (first option recommended), two queued messages."""
    return {
        "title": "Storm Approach",
        "description": "Thunderstorms building over the arrival airport",
        "aircraft": "B737",
        "departure": "EGLL",
        "arrival": "EGCC",
        "initial_altitude": 35000,
        "initial_heading": 330,
        "initial_fuel": 15000,
        "max_fuel": 20000,
        "fuel_burn_rate": 50,
        "waypoints": [
            {"name": "BPK", "position_x": 10, "position_y": 20, "sequence": 1},
            {"name": "POL", "position_x": 40, "position_y": 80, "sequence": 2},
        ],
        "weather_cells": [
            {"type": "thunderstorm", "intensity": "moderate", "size": 0.5, "x": 30, "y": 60},
        ],
        "decisions": [
            {
                "title": "Cell on the arrival",
                "description": "A storm cell sits on the published arrival",
                "time_limit": 30,
                "options": [
                    {"text": "Request deviation west", "consequences": "Adds 5 minutes", "is_recommended": True},
                    {"text": "Continue on the arrival", "consequences": "Moderate turbulence", "is_recommended": False},
                ],
            },
            {
                "title": "Hold or divert",
                "description": "Manchester has closed for 20 minutes",
                "time_limit": 60,
                "options": [
                    {"text": "Enter the hold", "consequences": "Fuel reserve shrinks", "is_recommended": True},
                    {"text": "Divert to Liverpool", "consequences": "Passengers disrupted", "is_recommended": False},
                ],
            },
        ],
        "communications": [
            {"type": "atc", "sender": "London Control", "message": "Speedbird 12, climb FL350"},
            {"type": "crew", "sender": "First Officer", "message": "Weather radar shows cells ahead", "trigger_time": 100},
        ],
    }


@pytest.fixture
def scenario_id(repo, scenario_data) -> str:
    """A stored, inactive scenario."""
    return create_scenario(repo, scenario_data).id


@pytest.fixture
def active_scenario_id(repo, scenario_id) -> str:
    """The stored scenario, activated: parameters, initial state and clock exist."""
    activate_scenario(repo, scenario_id)
    return scenario_id


# ============================================================
# COLLABORATORS
# ============================================================

@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def branch_generator() -> CannedBranchGenerator:
    return CannedBranchGenerator()


@pytest.fixture
def tree(repo, branch_generator) -> DecisionTree:
    return DecisionTree(repo, branch_generator)


# ============================================================
# HTTP
# ============================================================

@pytest.fixture
def client(session, llm, branch_generator):
    """TestClient wired to the test database and the fake collaborators."""
    from fastapi.testclient import TestClient

    from flightsim.api.dependencies import get_branch_generator
    from flightsim.llm.client import get_llm_client
    from flightsim.main import app

    def override_session():
        yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_llm_client] = lambda: llm
    app.dependency_overrides[get_branch_generator] = lambda: branch_generator
    # No context manager: the lifespan would touch the configured database
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
