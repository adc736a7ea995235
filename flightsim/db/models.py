# flightsim/db/models.py
"""
ORM tables for scenarios and their runtime records.

Ownership:
- Scenario owns waypoints, weather, decisions, nodes, queued and sent
  communications, parameters, states, impacts, timing, evaluation and
  adaptations (all cascade-deleted with it).
- Decision owns its options.

Append-only: ScenarioState, DecisionResponse, DecisionImpact, Communication,
ScenarioAdaptation. Ordered logs carry a per-scenario ``seq``.
"""

from datetime import datetime, timezone
from typing import Any, Dict
from uuid import uuid4

from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .engine import Base


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SerializableMixin:
    """Column-level dict conversion for API responses."""

    def to_dict(self) -> Dict[str, Any]:
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


class Scenario(SerializableMixin, Base):
    __tablename__ = "scenarios"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    aircraft = Column(String(128), nullable=False)
    departure = Column(String(64), nullable=False)
    arrival = Column(String(64), nullable=False)
    initial_altitude = Column(Float, nullable=False)
    initial_heading = Column(Float, nullable=False)
    initial_fuel = Column(Float, nullable=False)
    max_fuel = Column(Float, nullable=False)
    fuel_burn_rate = Column(Float, nullable=False)  # lbs per minute
    is_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    waypoints = relationship(
        "Waypoint", back_populates="scenario", cascade="all, delete-orphan",
        order_by="Waypoint.sequence",
    )
    decisions = relationship(
        "Decision", back_populates="scenario", cascade="all, delete-orphan",
        order_by="Decision.seq",
    )
    weather = relationship(
        "WeatherCondition", back_populates="scenario", uselist=False,
        cascade="all, delete-orphan",
    )
    queued_communications = relationship(
        "CommunicationQueueItem", cascade="all, delete-orphan",
        order_by="CommunicationQueueItem.seq",
    )
    nodes = relationship("DecisionNode", cascade="all, delete-orphan")
    responses = relationship("DecisionResponse", cascade="all, delete-orphan")
    communications = relationship("Communication", cascade="all, delete-orphan")
    parameters = relationship(
        "AircraftParameters", uselist=False, cascade="all, delete-orphan"
    )
    states = relationship("ScenarioState", cascade="all, delete-orphan")
    impacts = relationship("DecisionImpact", cascade="all, delete-orphan")
    timing = relationship("ScenarioTiming", uselist=False, cascade="all, delete-orphan")
    evaluation = relationship(
        "ScenarioEvaluation", uselist=False, cascade="all, delete-orphan"
    )
    adaptations = relationship("ScenarioAdaptation", cascade="all, delete-orphan")


class Waypoint(SerializableMixin, Base):
    __tablename__ = "waypoints"

    id = Column(String(36), primary_key=True, default=new_id)
    scenario_id = Column(String(36), ForeignKey("scenarios.id"), nullable=False, index=True)
    name = Column(String(64), nullable=False)
    position_x = Column(Float, nullable=False, default=0.0)  # [-1, 1] display space
    position_y = Column(Float, nullable=False, default=0.0)
    sequence = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)
    is_passed = Column(Boolean, nullable=False, default=False)
    eta = Column(String(16), nullable=True)  # HH:MM
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    scenario = relationship("Scenario", back_populates="waypoints")


class WeatherCondition(SerializableMixin, Base):
    __tablename__ = "weather_conditions"

    id = Column(String(36), primary_key=True, default=new_id)
    scenario_id = Column(
        String(36), ForeignKey("scenarios.id"), nullable=False, unique=True
    )
    # list of cells {intensity, position: {x, y}, size} or a condition object
    weather_data = Column(JSON, nullable=False, default=list)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    scenario = relationship("Scenario", back_populates="weather")


class Decision(SerializableMixin, Base):
    __tablename__ = "decisions"

    id = Column(String(36), primary_key=True, default=new_id)
    scenario_id = Column(String(36), ForeignKey("scenarios.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    time_limit = Column(Integer, nullable=True)  # seconds
    is_urgent = Column(Boolean, nullable=False, default=False)
    trigger_condition = Column(Text, nullable=False, default="Manual trigger")
    is_active = Column(Boolean, nullable=False, default=False)
    is_completed = Column(Boolean, nullable=False, default=False)
    seq = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    scenario = relationship("Scenario", back_populates="decisions")
    options = relationship(
        "DecisionOption", back_populates="decision", cascade="all, delete-orphan",
        order_by="DecisionOption.position",
    )


class DecisionOption(SerializableMixin, Base):
    __tablename__ = "decision_options"

    id = Column(String(36), primary_key=True, default=new_id)
    decision_id = Column(String(36), ForeignKey("decisions.id"), nullable=False, index=True)
    scenario_id = Column(String(36), ForeignKey("scenarios.id"), nullable=False)
    text = Column(Text, nullable=False)
    consequences = Column(Text, nullable=False)
    is_recommended = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    decision = relationship("Decision", back_populates="options")


class DecisionNode(SerializableMixin, Base):
    __tablename__ = "decision_nodes"

    id = Column(String(36), primary_key=True, default=new_id)
    scenario_id = Column(String(36), ForeignKey("scenarios.id"), nullable=False, index=True)
    decision_id = Column(String(36), ForeignKey("decisions.id"), nullable=True)
    parent_node_id = Column(String(36), ForeignKey("decision_nodes.id"), nullable=True)
    option_id = Column(String(36), ForeignKey("decision_options.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=False)
    trigger_time = Column(Integer, nullable=True)  # absolute elapsed seconds; NULL = manual only
    communications_to_trigger = Column(JSON, nullable=False, default=list)  # queue item IDs
    parameter_changes = Column(JSON, nullable=True)
    activated_at = Column(DateTime(timezone=True), nullable=True)
    effects_applied = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    decision = relationship("Decision")


class DecisionResponse(SerializableMixin, Base):
    __tablename__ = "decision_responses"
    __table_args__ = (UniqueConstraint("scenario_id", "seq"),)

    id = Column(String(36), primary_key=True, default=new_id)
    scenario_id = Column(String(36), ForeignKey("scenarios.id"), nullable=False, index=True)
    decision_id = Column(String(36), ForeignKey("decisions.id"), nullable=False)
    option_id = Column(String(36), ForeignKey("decision_options.id"), nullable=False)
    seq = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    decision = relationship("Decision")
    option = relationship("DecisionOption")


class CommunicationQueueItem(SerializableMixin, Base):
    __tablename__ = "communication_queue"

    id = Column(String(36), primary_key=True, default=new_id)
    scenario_id = Column(String(36), ForeignKey("scenarios.id"), nullable=False, index=True)
    type = Column(String(16), nullable=False, default="system")  # atc | crew | system
    sender = Column(String(128), nullable=False)
    message = Column(Text, nullable=False)
    is_important = Column(Boolean, nullable=False, default=False)
    trigger_condition = Column(Text, nullable=False, default="Manual trigger")
    trigger_time = Column(Integer, nullable=True)  # absolute elapsed seconds; NULL = manual only
    is_sent = Column(Boolean, nullable=False, default=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    seq = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Communication(SerializableMixin, Base):
    __tablename__ = "communications"
    __table_args__ = (UniqueConstraint("scenario_id", "seq"),)

    id = Column(String(36), primary_key=True, default=new_id)
    scenario_id = Column(String(36), ForeignKey("scenarios.id"), nullable=False, index=True)
    # Source queue item; unique so a queued message reaches history once
    queue_item_id = Column(
        String(36), ForeignKey("communication_queue.id"), nullable=True, unique=True
    )
    type = Column(String(16), nullable=False)
    sender = Column(String(128), nullable=False)
    message = Column(Text, nullable=False)
    is_important = Column(Boolean, nullable=False, default=False)
    seq = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class AircraftParameters(SerializableMixin, Base):
    __tablename__ = "aircraft_parameters"

    id = Column(String(36), primary_key=True, default=new_id)
    scenario_id = Column(
        String(36), ForeignKey("scenarios.id"), nullable=False, unique=True
    )
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    altitude = Column(Float, nullable=True)  # feet
    heading = Column(Float, nullable=True)  # degrees
    speed = Column(Float, nullable=True)  # knots
    vertical_speed = Column(Float, nullable=True)  # feet per minute
    fuel = Column(Float, nullable=True)  # lbs
    fuel_burn_rate = Column(Float, nullable=True)  # lbs per minute
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class ScenarioState(SerializableMixin, Base):
    __tablename__ = "scenario_states"
    __table_args__ = (UniqueConstraint("scenario_id", "seq"),)

    id = Column(String(36), primary_key=True, default=new_id)
    scenario_id = Column(String(36), ForeignKey("scenarios.id"), nullable=False, index=True)
    safety_score = Column(Float, nullable=False)
    efficiency_score = Column(Float, nullable=False)
    passenger_comfort_score = Column(Float, nullable=False)
    time_deviation = Column(Float, nullable=False, default=0.0)  # minutes
    fuel_remaining = Column(Float, nullable=False)  # lbs
    impact_id = Column(String(36), ForeignKey("decision_impacts.id"), nullable=True)
    seq = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class DecisionImpact(SerializableMixin, Base):
    __tablename__ = "decision_impacts"

    id = Column(String(36), primary_key=True, default=new_id)
    scenario_id = Column(String(36), ForeignKey("scenarios.id"), nullable=False, index=True)
    decision_id = Column(String(36), ForeignKey("decisions.id"), nullable=False)
    option_id = Column(String(36), ForeignKey("decision_options.id"), nullable=False)
    safety_impact = Column(Float, nullable=False)
    efficiency_impact = Column(Float, nullable=False)
    passenger_comfort_impact = Column(Float, nullable=False)
    time_impact = Column(Float, nullable=False)  # minutes
    fuel_impact = Column(Float, nullable=False)  # lbs consumed
    description = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class ScenarioTiming(SerializableMixin, Base):
    """
    The single runtime record of a running scenario.

    Holds the clock and the current position in the decision tree. Every
    write bumps ``version``; a write based on a stale read fails.
    """

    __tablename__ = "scenario_timing"

    id = Column(String(36), primary_key=True, default=new_id)
    scenario_id = Column(
        String(36), ForeignKey("scenarios.id"), nullable=False, unique=True
    )
    start_time = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_update_time = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    is_paused = Column(Boolean, nullable=False, default=False)
    elapsed_seconds = Column(Integer, nullable=False, default=0)
    current_node_id = Column(String(36), ForeignKey("decision_nodes.id"), nullable=True)
    current_decision_id = Column(String(36), ForeignKey("decisions.id"), nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class ScenarioEvaluation(SerializableMixin, Base):
    __tablename__ = "scenario_evaluations"

    id = Column(String(36), primary_key=True, default=new_id)
    scenario_id = Column(
        String(36), ForeignKey("scenarios.id"), nullable=False, unique=True
    )
    safety_score = Column(Float, nullable=False)
    efficiency_score = Column(Float, nullable=False)
    passenger_comfort_score = Column(Float, nullable=False)
    overall_score = Column(Float, nullable=False)
    strengths = Column(JSON, nullable=False, default=list)
    areas_for_improvement = Column(JSON, nullable=False, default=list)
    recommendations = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class ScenarioAdaptation(SerializableMixin, Base):
    __tablename__ = "scenario_adaptations"

    id = Column(String(36), primary_key=True, default=new_id)
    scenario_id = Column(String(36), ForeignKey("scenarios.id"), nullable=False, index=True)
    difficulty_adjustment = Column(String(16), nullable=False)
    time_pressure_adjustment = Column(String(16), nullable=False)
    communication_frequency_adjustment = Column(String(16), nullable=False)
    weather_intensity_adjustment = Column(String(16), nullable=False)
    explanation = Column(Text, nullable=False, default="")
    performance_ratio = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
