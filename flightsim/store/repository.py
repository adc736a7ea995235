# flightsim/store/repository.py
"""
Scenario repository: the only code that touches the ORM session.

Methods flush but never commit. Callers group writes with
``unit_of_work()``, which commits once at the outermost level and rolls
back everything on any exception.

Lookups named ``get_*`` raise NotFoundError; ``find_*`` return None.
Every SQLAlchemy failure surfaces as StorageError (ConcurrencyError for a
stale runtime-row write).
"""

import functools
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from ..db.engine import SessionLocal, next_seq
from ..db.models import (
    AircraftParameters,
    Communication,
    CommunicationQueueItem,
    Decision,
    DecisionImpact,
    DecisionNode,
    DecisionOption,
    DecisionResponse,
    Scenario,
    ScenarioAdaptation,
    ScenarioEvaluation,
    ScenarioState,
    ScenarioTiming,
    Waypoint,
    WeatherCondition,
)
from ..errors import ConcurrencyError, NotFoundError, StorageError
from ..logging import get_logger
from ..settings import settings
from .definitions import CommunicationDefinition, DecisionDefinition, ScenarioDefinition

logger = get_logger(__name__)

PARAMETER_FIELDS = (
    "latitude", "longitude", "altitude", "heading",
    "speed", "vertical_speed", "fuel", "fuel_burn_rate",
)


def translate_storage_error(exc: SQLAlchemyError) -> StorageError:
    if isinstance(exc, StaleDataError):
        return ConcurrencyError("Scenario runtime was modified concurrently; retry")
    return StorageError(f"Storage failure: {exc.__class__.__name__}")


def storage_operation(method):
    """Turn SQLAlchemy failures inside a repository method into StorageError."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            logger.error("storage_error", operation=method.__name__, error=str(exc))
            raise translate_storage_error(exc) from exc

    return wrapper


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ScenarioRepository:
    """
    CRUD over every scenario entity.

    Usage:
        repo = ScenarioRepository(session)
        with repo.unit_of_work():
            scenario = repo.create_scenario(definition)
    """

    def __init__(self, session: Optional[Session] = None):
        """
        Args:
            session: Optional SQLAlchemy session (creates new if not provided)
        """
        self._session = session
        self._owns_session = session is None
        self._depth = 0

    @property
    def session(self) -> Session:
        """Get or create session."""
        if self._session is None:
            self._session = SessionLocal()
        return self._session

    def close(self):
        """Close session if we own it."""
        if self._owns_session and self._session is not None:
            self._session.close()
            self._session = None

    @contextmanager
    def unit_of_work(self) -> Iterator["ScenarioRepository"]:
        """
        Group writes into one transaction.

        Nested units join the outermost one; only the outermost commits.
        Any exception rolls back the whole transaction.
        """
        outermost = self._depth == 0
        self._depth += 1
        try:
            yield self
            if outermost:
                self.session.commit()
        except SQLAlchemyError as exc:
            if outermost:
                self.session.rollback()
            logger.error("unit_of_work_failed", error=str(exc))
            raise translate_storage_error(exc) from exc
        except BaseException:
            if outermost:
                self.session.rollback()
            raise
        finally:
            self._depth -= 1

    # ============================================================
    # SCENARIOS
    # ============================================================

    @storage_operation
    def find_scenario(self, scenario_id: str) -> Optional[Scenario]:
        return self.session.get(Scenario, scenario_id)

    def get_scenario(self, scenario_id: str) -> Scenario:
        scenario = self.find_scenario(scenario_id)
        if scenario is None:
            raise NotFoundError("Scenario", scenario_id)
        return scenario

    @storage_operation
    def list_scenarios(self, is_active: Optional[bool] = None) -> List[Scenario]:
        stmt = select(Scenario).order_by(Scenario.created_at.desc())
        if is_active is not None:
            stmt = stmt.where(Scenario.is_active == is_active)
        return list(self.session.scalars(stmt))

    @storage_operation
    def load_scenario(self, scenario_id: str) -> Scenario:
        """Scenario with waypoints, decisions+options, queue and weather eagerly loaded."""
        stmt = (
            select(Scenario)
            .where(Scenario.id == scenario_id)
            .options(
                selectinload(Scenario.waypoints),
                selectinload(Scenario.decisions).selectinload(Decision.options),
                selectinload(Scenario.queued_communications),
                selectinload(Scenario.weather),
            )
        )
        scenario = self.session.scalars(stmt).first()
        if scenario is None:
            raise NotFoundError("Scenario", scenario_id)
        return scenario

    @storage_operation
    def create_scenario(self, definition: ScenarioDefinition) -> Scenario:
        """
        Create a scenario with all its children atomically.

        Each initial decision gets a root node. Decisions and queued
        communications without a trigger time are spaced out by the
        configured intervals.
        """
        with self.unit_of_work():
            scenario = Scenario(
                title=definition.title,
                description=definition.description,
                aircraft=definition.aircraft,
                departure=definition.departure,
                arrival=definition.arrival,
                initial_altitude=definition.initial_altitude,
                initial_heading=definition.initial_heading,
                initial_fuel=definition.initial_fuel,
                max_fuel=definition.max_fuel,
                fuel_burn_rate=definition.fuel_burn_rate,
                is_active=False,
            )
            self.session.add(scenario)
            self.session.flush()

            for waypoint in definition.waypoints:
                self.session.add(Waypoint(
                    scenario_id=scenario.id,
                    name=waypoint.name,
                    position_x=waypoint.position_x,
                    position_y=waypoint.position_y,
                    sequence=waypoint.sequence,
                    is_active=waypoint.is_active,
                    is_passed=waypoint.is_passed,
                    eta=waypoint.eta,
                ))

            if definition.weather is not None:
                self.session.add(WeatherCondition(
                    scenario_id=scenario.id, weather_data=definition.weather
                ))

            for index, decision_def in enumerate(definition.decisions):
                decision = self.create_decision(scenario.id, decision_def, seq=index + 1)
                trigger_time = decision_def.trigger_time
                if trigger_time is None:
                    trigger_time = (index + 1) * settings.decision_interval_seconds
                self.create_node(
                    scenario.id,
                    decision_id=decision.id,
                    trigger_time=trigger_time,
                )

            for index, comm_def in enumerate(definition.communications):
                trigger_time = comm_def.trigger_time
                if trigger_time is None:
                    trigger_time = index * settings.communication_interval_seconds
                self.create_queue_item(scenario.id, comm_def, trigger_time=trigger_time, seq=index + 1)

            self.session.flush()

        logger.info(
            "scenario_created",
            scenario_id=scenario.id,
            title=scenario.title,
            waypoints=len(definition.waypoints),
            decisions=len(definition.decisions),
            communications=len(definition.communications),
        )
        return scenario

    @storage_operation
    def update_scenario(self, scenario_id: str, **patch) -> Scenario:
        scenario = self.get_scenario(scenario_id)
        for key, value in patch.items():
            setattr(scenario, key, value)
        self.session.flush()
        return scenario

    # ============================================================
    # WAYPOINTS AND WEATHER
    # ============================================================

    @storage_operation
    def list_waypoints(self, scenario_id: str) -> List[Waypoint]:
        stmt = (
            select(Waypoint)
            .where(Waypoint.scenario_id == scenario_id)
            .order_by(Waypoint.sequence)
        )
        return list(self.session.scalars(stmt))

    @storage_operation
    def get_waypoint(self, waypoint_id: str) -> Waypoint:
        waypoint = self.session.get(Waypoint, waypoint_id)
        if waypoint is None:
            raise NotFoundError("Waypoint", waypoint_id)
        return waypoint

    @storage_operation
    def update_waypoint(self, waypoint_id: str, **patch) -> Waypoint:
        """Update flags; making a waypoint active deactivates its siblings."""
        waypoint = self.get_waypoint(waypoint_id)
        if patch.get("is_active"):
            self.session.execute(
                update(Waypoint)
                .where(Waypoint.scenario_id == waypoint.scenario_id, Waypoint.id != waypoint.id)
                .values(is_active=False)
                .execution_options(synchronize_session="fetch")
            )
        for key, value in patch.items():
            setattr(waypoint, key, value)
        self.session.flush()
        return waypoint

    @storage_operation
    def find_weather(self, scenario_id: str) -> Optional[WeatherCondition]:
        stmt = select(WeatherCondition).where(WeatherCondition.scenario_id == scenario_id)
        return self.session.scalars(stmt).first()

    @storage_operation
    def set_weather(self, scenario_id: str, weather_data: Any) -> WeatherCondition:
        weather = self.find_weather(scenario_id)
        if weather is None:
            weather = WeatherCondition(scenario_id=scenario_id, weather_data=weather_data)
            self.session.add(weather)
        else:
            weather.weather_data = weather_data
        self.session.flush()
        return weather

    # ============================================================
    # DECISIONS AND OPTIONS
    # ============================================================

    @storage_operation
    def create_decision(
        self,
        scenario_id: str,
        definition: DecisionDefinition,
        seq: Optional[int] = None,
    ) -> Decision:
        """Create an inactive decision with its options."""
        decision = Decision(
            scenario_id=scenario_id,
            title=definition.title,
            description=definition.description,
            time_limit=definition.time_limit,
            is_urgent=definition.is_urgent,
            trigger_condition=definition.trigger_condition,
            is_active=False,
            is_completed=False,
            seq=seq if seq is not None else next_seq(self.session, Decision, scenario_id),
        )
        self.session.add(decision)
        self.session.flush()
        for position, option in enumerate(definition.options):
            self.session.add(DecisionOption(
                decision_id=decision.id,
                scenario_id=scenario_id,
                text=option.text,
                consequences=option.consequences,
                is_recommended=option.is_recommended,
                position=position,
            ))
        self.session.flush()
        return decision

    @storage_operation
    def get_decision(self, decision_id: str) -> Decision:
        decision = self.session.get(Decision, decision_id)
        if decision is None:
            raise NotFoundError("Decision", decision_id)
        return decision

    @storage_operation
    def list_decisions(
        self,
        scenario_id: str,
        is_active: Optional[bool] = None,
    ) -> List[Decision]:
        stmt = (
            select(Decision)
            .where(Decision.scenario_id == scenario_id)
            .options(selectinload(Decision.options))
            .order_by(Decision.seq)
        )
        if is_active is not None:
            stmt = stmt.where(Decision.is_active == is_active)
        return list(self.session.scalars(stmt))

    @storage_operation
    def update_decision(self, decision_id: str, **patch) -> Decision:
        decision = self.get_decision(decision_id)
        for key, value in patch.items():
            setattr(decision, key, value)
        self.session.flush()
        return decision

    @storage_operation
    def deactivate_decisions(self, scenario_id: str) -> None:
        self.session.execute(
            update(Decision)
            .where(Decision.scenario_id == scenario_id)
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )

    @storage_operation
    def get_option(self, option_id: str) -> DecisionOption:
        option = self.session.get(DecisionOption, option_id)
        if option is None:
            raise NotFoundError("DecisionOption", option_id)
        return option

    # ============================================================
    # DECISION NODES
    # ============================================================

    @storage_operation
    def create_node(
        self,
        scenario_id: str,
        decision_id: Optional[str] = None,
        parent_node_id: Optional[str] = None,
        option_id: Optional[str] = None,
        trigger_time: Optional[int] = None,
        communications_to_trigger: Optional[List[str]] = None,
        parameter_changes: Optional[Dict[str, Any]] = None,
    ) -> DecisionNode:
        """Create an inactive node; activation is the decision tree's job."""
        node = DecisionNode(
            scenario_id=scenario_id,
            decision_id=decision_id,
            parent_node_id=parent_node_id,
            option_id=option_id,
            trigger_time=trigger_time,
            communications_to_trigger=list(communications_to_trigger or []),
            parameter_changes=parameter_changes,
            is_active=False,
        )
        self.session.add(node)
        self.session.flush()
        return node

    @storage_operation
    def get_node(self, node_id: str) -> DecisionNode:
        node = self.session.get(DecisionNode, node_id)
        if node is None:
            raise NotFoundError("DecisionNode", node_id)
        return node

    @storage_operation
    def list_nodes(
        self,
        scenario_id: str,
        is_active: Optional[bool] = None,
        max_trigger_time: Optional[int] = None,
    ) -> List[DecisionNode]:
        stmt = (
            select(DecisionNode)
            .where(DecisionNode.scenario_id == scenario_id)
            .order_by(DecisionNode.created_at)
        )
        if is_active is not None:
            stmt = stmt.where(DecisionNode.is_active == is_active)
        if max_trigger_time is not None:
            stmt = stmt.where(DecisionNode.trigger_time <= max_trigger_time)
        return list(self.session.scalars(stmt))

    @storage_operation
    def find_active_node(self, scenario_id: str) -> Optional[DecisionNode]:
        stmt = select(DecisionNode).where(
            DecisionNode.scenario_id == scenario_id,
            DecisionNode.is_active.is_(True),
        )
        return self.session.scalars(stmt).first()

    @storage_operation
    def find_child_node(
        self,
        scenario_id: str,
        parent_node_id: Optional[str],
        option_id: str,
    ) -> Optional[DecisionNode]:
        stmt = select(DecisionNode).where(
            DecisionNode.scenario_id == scenario_id,
            DecisionNode.option_id == option_id,
        )
        if parent_node_id is None:
            stmt = stmt.where(DecisionNode.parent_node_id.is_(None))
        else:
            stmt = stmt.where(DecisionNode.parent_node_id == parent_node_id)
        return self.session.scalars(stmt).first()

    @storage_operation
    def find_node_for_decision(self, decision_id: str) -> Optional[DecisionNode]:
        stmt = select(DecisionNode).where(DecisionNode.decision_id == decision_id)
        return self.session.scalars(stmt).first()

    @storage_operation
    def list_due_nodes(self, scenario_id: str, elapsed_seconds: int) -> List[DecisionNode]:
        """Never-activated nodes whose trigger time has been reached, earliest first."""
        stmt = (
            select(DecisionNode)
            .where(
                DecisionNode.scenario_id == scenario_id,
                DecisionNode.is_active.is_(False),
                DecisionNode.activated_at.is_(None),
                DecisionNode.trigger_time.is_not(None),
                DecisionNode.trigger_time <= elapsed_seconds,
            )
            .order_by(DecisionNode.trigger_time, DecisionNode.created_at)
        )
        return list(self.session.scalars(stmt))

    @storage_operation
    def deactivate_nodes(self, scenario_id: str, except_node_id: Optional[str] = None) -> None:
        stmt = update(DecisionNode).where(
            DecisionNode.scenario_id == scenario_id,
            DecisionNode.is_active.is_(True),
        )
        if except_node_id is not None:
            stmt = stmt.where(DecisionNode.id != except_node_id)
        self.session.execute(
            stmt.values(is_active=False).execution_options(synchronize_session="fetch")
        )

    # ============================================================
    # DECISION RESPONSES
    # ============================================================

    @storage_operation
    def record_response(self, scenario_id: str, decision_id: str, option_id: str) -> DecisionResponse:
        response = DecisionResponse(
            scenario_id=scenario_id,
            decision_id=decision_id,
            option_id=option_id,
            seq=next_seq(self.session, DecisionResponse, scenario_id),
        )
        self.session.add(response)
        self.session.flush()
        return response

    @storage_operation
    def list_responses(
        self,
        scenario_id: str,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[DecisionResponse]:
        """Responses with decision and option loaded, in choice order."""
        order = DecisionResponse.seq.desc() if newest_first else DecisionResponse.seq
        stmt = (
            select(DecisionResponse)
            .where(DecisionResponse.scenario_id == scenario_id)
            .options(
                selectinload(DecisionResponse.decision),
                selectinload(DecisionResponse.option),
            )
            .order_by(order)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt))

    # ============================================================
    # COMMUNICATIONS
    # ============================================================

    @storage_operation
    def create_queue_item(
        self,
        scenario_id: str,
        definition: CommunicationDefinition,
        trigger_time: Optional[int] = None,
        seq: Optional[int] = None,
    ) -> CommunicationQueueItem:
        item = CommunicationQueueItem(
            scenario_id=scenario_id,
            type=definition.type,
            sender=definition.sender,
            message=definition.message,
            is_important=definition.is_important,
            trigger_condition=definition.trigger_condition,
            trigger_time=trigger_time,
            is_sent=False,
            seq=seq if seq is not None else next_seq(self.session, CommunicationQueueItem, scenario_id),
        )
        self.session.add(item)
        self.session.flush()
        return item

    @storage_operation
    def get_queue_item(self, item_id: str) -> CommunicationQueueItem:
        item = self.session.get(CommunicationQueueItem, item_id)
        if item is None:
            raise NotFoundError("CommunicationQueueItem", item_id)
        return item

    @storage_operation
    def list_queue(
        self,
        scenario_id: str,
        is_sent: Optional[bool] = None,
    ) -> List[CommunicationQueueItem]:
        stmt = (
            select(CommunicationQueueItem)
            .where(CommunicationQueueItem.scenario_id == scenario_id)
            .order_by(CommunicationQueueItem.seq)
        )
        if is_sent is not None:
            stmt = stmt.where(CommunicationQueueItem.is_sent == is_sent)
        return list(self.session.scalars(stmt))

    @storage_operation
    def list_due_communications(
        self,
        scenario_id: str,
        elapsed_seconds: int,
    ) -> List[CommunicationQueueItem]:
        stmt = (
            select(CommunicationQueueItem)
            .where(
                CommunicationQueueItem.scenario_id == scenario_id,
                CommunicationQueueItem.is_sent.is_(False),
                CommunicationQueueItem.trigger_time.is_not(None),
                CommunicationQueueItem.trigger_time <= elapsed_seconds,
            )
            .order_by(CommunicationQueueItem.trigger_time, CommunicationQueueItem.seq)
        )
        return list(self.session.scalars(stmt))

    @storage_operation
    def send_queue_item(self, item: CommunicationQueueItem) -> Optional[Communication]:
        """
        Mark a queued message sent and copy it into history.

        Returns the new history entry, or None when the item already
        reached history (sending twice never duplicates it).
        """
        if not item.is_sent:
            item.is_sent = True
            item.sent_at = _now()
        existing = self.session.scalars(
            select(Communication).where(Communication.queue_item_id == item.id)
        ).first()
        if existing is not None:
            self.session.flush()
            return None
        return self.add_communication(
            item.scenario_id,
            type=item.type,
            sender=item.sender,
            message=item.message,
            is_important=item.is_important,
            queue_item_id=item.id,
        )

    @storage_operation
    def add_communication(
        self,
        scenario_id: str,
        type: str,
        sender: str,
        message: str,
        is_important: bool = False,
        queue_item_id: Optional[str] = None,
    ) -> Communication:
        communication = Communication(
            scenario_id=scenario_id,
            queue_item_id=queue_item_id,
            type=type,
            sender=sender,
            message=message,
            is_important=is_important,
            seq=next_seq(self.session, Communication, scenario_id),
        )
        self.session.add(communication)
        self.session.flush()
        return communication

    @storage_operation
    def list_communications(
        self,
        scenario_id: str,
        limit: Optional[int] = None,
    ) -> List[Communication]:
        """History in send order; with ``limit``, the latest ``limit`` entries."""
        stmt = select(Communication).where(Communication.scenario_id == scenario_id)
        if limit is None:
            return list(self.session.scalars(stmt.order_by(Communication.seq)))
        latest = list(self.session.scalars(stmt.order_by(Communication.seq.desc()).limit(limit)))
        return list(reversed(latest))

    # ============================================================
    # AIRCRAFT PARAMETERS
    # ============================================================

    @storage_operation
    def find_parameters(self, scenario_id: str) -> Optional[AircraftParameters]:
        stmt = select(AircraftParameters).where(AircraftParameters.scenario_id == scenario_id)
        return self.session.scalars(stmt).first()

    @storage_operation
    def save_parameters(self, scenario_id: str, values: Dict[str, Any]) -> AircraftParameters:
        """Upsert the scenario's parameter row with the given fields."""
        record = self.find_parameters(scenario_id)
        if record is None:
            record = AircraftParameters(scenario_id=scenario_id)
            self.session.add(record)
        for key in PARAMETER_FIELDS:
            if key in values:
                setattr(record, key, values[key])
        record.updated_at = _now()
        self.session.flush()
        return record

    # ============================================================
    # STATE AND IMPACTS
    # ============================================================

    @storage_operation
    def find_current_state(self, scenario_id: str) -> Optional[ScenarioState]:
        stmt = (
            select(ScenarioState)
            .where(ScenarioState.scenario_id == scenario_id)
            .order_by(ScenarioState.seq.desc())
        )
        return self.session.scalars(stmt).first()

    @storage_operation
    def list_states(self, scenario_id: str) -> List[ScenarioState]:
        stmt = (
            select(ScenarioState)
            .where(ScenarioState.scenario_id == scenario_id)
            .order_by(ScenarioState.seq)
        )
        return list(self.session.scalars(stmt))

    @storage_operation
    def append_state(
        self,
        scenario_id: str,
        safety_score: float,
        efficiency_score: float,
        passenger_comfort_score: float,
        time_deviation: float,
        fuel_remaining: float,
        impact_id: Optional[str] = None,
    ) -> ScenarioState:
        state = ScenarioState(
            scenario_id=scenario_id,
            safety_score=safety_score,
            efficiency_score=efficiency_score,
            passenger_comfort_score=passenger_comfort_score,
            time_deviation=time_deviation,
            fuel_remaining=fuel_remaining,
            impact_id=impact_id,
            seq=next_seq(self.session, ScenarioState, scenario_id),
        )
        self.session.add(state)
        self.session.flush()
        return state

    @storage_operation
    def add_impact(self, scenario_id: str, decision_id: str, option_id: str, **deltas) -> DecisionImpact:
        impact = DecisionImpact(
            scenario_id=scenario_id,
            decision_id=decision_id,
            option_id=option_id,
            **deltas,
        )
        self.session.add(impact)
        self.session.flush()
        return impact

    # ============================================================
    # TIMING (scenario runtime row)
    # ============================================================

    @storage_operation
    def find_timing(self, scenario_id: str) -> Optional[ScenarioTiming]:
        stmt = select(ScenarioTiming).where(ScenarioTiming.scenario_id == scenario_id)
        return self.session.scalars(stmt).first()

    def get_timing(self, scenario_id: str) -> ScenarioTiming:
        timing = self.find_timing(scenario_id)
        if timing is None:
            raise NotFoundError("ScenarioTiming", scenario_id)
        return timing

    @storage_operation
    def create_timing(self, scenario_id: str) -> ScenarioTiming:
        """Fresh runtime row (elapsed 0, running), replacing any existing one."""
        self.delete_timing(scenario_id)
        now = _now()
        timing = ScenarioTiming(
            scenario_id=scenario_id,
            start_time=now,
            last_update_time=now,
            is_paused=False,
            elapsed_seconds=0,
        )
        self.session.add(timing)
        self.session.flush()
        return timing

    @storage_operation
    def update_timing(self, timing: ScenarioTiming, **patch) -> ScenarioTiming:
        """
        Write runtime fields.

        The UPDATE is conditioned on the version read earlier; a concurrent
        writer makes this raise ConcurrencyError.
        """
        for key, value in patch.items():
            setattr(timing, key, value)
        timing.last_update_time = _now()
        self.session.flush()
        return timing

    @storage_operation
    def delete_timing(self, scenario_id: str) -> None:
        timing = self.find_timing(scenario_id)
        if timing is not None:
            self.session.delete(timing)
            self.session.flush()

    # ============================================================
    # EVALUATION AND ADAPTATIONS
    # ============================================================

    @storage_operation
    def find_evaluation(self, scenario_id: str) -> Optional[ScenarioEvaluation]:
        stmt = select(ScenarioEvaluation).where(ScenarioEvaluation.scenario_id == scenario_id)
        return self.session.scalars(stmt).first()

    @storage_operation
    def save_evaluation(self, scenario_id: str, **fields) -> ScenarioEvaluation:
        """Store the scenario's evaluation, replacing a previous one."""
        existing = self.find_evaluation(scenario_id)
        if existing is not None:
            self.session.delete(existing)
            self.session.flush()
        evaluation = ScenarioEvaluation(scenario_id=scenario_id, **fields)
        self.session.add(evaluation)
        self.session.flush()
        return evaluation

    @storage_operation
    def add_adaptation(self, scenario_id: str, **fields) -> ScenarioAdaptation:
        adaptation = ScenarioAdaptation(scenario_id=scenario_id, **fields)
        self.session.add(adaptation)
        self.session.flush()
        return adaptation

    @storage_operation
    def list_adaptations(self, scenario_id: str) -> List[ScenarioAdaptation]:
        stmt = (
            select(ScenarioAdaptation)
            .where(ScenarioAdaptation.scenario_id == scenario_id)
            .order_by(ScenarioAdaptation.created_at)
        )
        return list(self.session.scalars(stmt))
