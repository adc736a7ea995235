# flightsim/scenario/impact.py
"""
Decision Impact Calculator.

Asks the model how a chosen option moves the scenario's scores, then
appends a new ScenarioState folded from the previous one:

    score'          = clamp(score + impact, 0, 100)   (safety, efficiency, comfort)
    time_deviation' = time_deviation + time_impact     (minutes)
    fuel_remaining' = max(0, fuel_remaining - fuel_impact)   (lbs)

Nothing is written unless the model reply parses.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..db.models import Decision, DecisionImpact, DecisionOption, Scenario, ScenarioState
from ..errors import GenerationParseError, ValidationError
from ..llm.extract import generate_json
from ..logging import get_scenario_logger
from ..store.repository import ScenarioRepository
from .parameters import FlightParameters

SCORE_MIN = 0.0
SCORE_MAX = 100.0
IMPACT_LIMIT = 10.0
INITIAL_SCORE = 100.0

IMPACT_FIELDS = (
    "safety_impact",
    "efficiency_impact",
    "passenger_comfort_impact",
    "time_impact",
    "fuel_impact",
)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass
class ImpactDeltas:
    """Numeric effect of one decision."""
    safety_impact: float
    efficiency_impact: float
    passenger_comfort_impact: float
    time_impact: float  # minutes
    fuel_impact: float  # lbs consumed (negative = saved)
    description: str = ""

    @classmethod
    def from_model_output(cls, data: Dict[str, Any]) -> "ImpactDeltas":
        """
        Validate the model's impact object.

        Score impacts are limited to [-10, 10].

        Raises:
            GenerationParseError: a numeric field is missing or not a number
        """
        values = {}
        for name in IMPACT_FIELDS:
            raw = data.get(name)
            if isinstance(raw, bool):
                raw = None
            try:
                values[name] = float(raw)
            except (TypeError, ValueError):
                raise GenerationParseError(f"Impact response missing numeric {name}", raw_text=str(data))
        for name in ("safety_impact", "efficiency_impact", "passenger_comfort_impact"):
            values[name] = clamp(values[name], -IMPACT_LIMIT, IMPACT_LIMIT)
        return cls(description=str(data.get("description") or ""), **values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class StateSnapshot:
    safety_score: float
    efficiency_score: float
    passenger_comfort_score: float
    time_deviation: float
    fuel_remaining: float

    @classmethod
    def from_record(cls, record: ScenarioState) -> "StateSnapshot":
        return cls(
            safety_score=record.safety_score,
            efficiency_score=record.efficiency_score,
            passenger_comfort_score=record.passenger_comfort_score,
            time_deviation=record.time_deviation,
            fuel_remaining=record.fuel_remaining,
        )

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def fold_impact(state: StateSnapshot, deltas: ImpactDeltas) -> StateSnapshot:
    """Next state from the previous state and one decision's deltas."""
    return StateSnapshot(
        safety_score=clamp(state.safety_score + deltas.safety_impact, SCORE_MIN, SCORE_MAX),
        efficiency_score=clamp(state.efficiency_score + deltas.efficiency_impact, SCORE_MIN, SCORE_MAX),
        passenger_comfort_score=clamp(
            state.passenger_comfort_score + deltas.passenger_comfort_impact, SCORE_MIN, SCORE_MAX
        ),
        time_deviation=state.time_deviation + deltas.time_impact,
        fuel_remaining=max(0.0, state.fuel_remaining - deltas.fuel_impact),
    )


def initial_state(repo: ScenarioRepository, scenario: Scenario) -> StateSnapshot:
    """Perfect scores; fuel from the aircraft if known, else the scenario's initial fuel."""
    params = repo.find_parameters(scenario.id)
    fuel = params.fuel if params is not None and params.fuel is not None else scenario.initial_fuel
    return StateSnapshot(
        safety_score=INITIAL_SCORE,
        efficiency_score=INITIAL_SCORE,
        passenger_comfort_score=INITIAL_SCORE,
        time_deviation=0.0,
        fuel_remaining=fuel,
    )


def current_state(repo: ScenarioRepository, scenario_id: str) -> StateSnapshot:
    """Latest snapshot, or the initial state when none was recorded."""
    record = repo.find_current_state(scenario_id)
    if record is not None:
        return StateSnapshot.from_record(record)
    return initial_state(repo, repo.get_scenario(scenario_id))


def seed_initial_state(repo: ScenarioRepository, scenario_id: str) -> Optional[ScenarioState]:
    """Record the initial snapshot if the scenario has none yet."""
    if repo.find_current_state(scenario_id) is not None:
        return None
    snapshot = initial_state(repo, repo.get_scenario(scenario_id))
    return repo.append_state(scenario_id, **snapshot.to_dict())


def record_state(
    repo: ScenarioRepository,
    scenario_id: str,
    safety_score: float,
    efficiency_score: float,
    passenger_comfort_score: float,
    time_deviation: float,
    fuel_remaining: float,
) -> ScenarioState:
    """Append an explicit snapshot (scores clamped to [0, 100])."""
    repo.get_scenario(scenario_id)
    with repo.unit_of_work():
        return repo.append_state(
            scenario_id,
            safety_score=clamp(safety_score, SCORE_MIN, SCORE_MAX),
            efficiency_score=clamp(efficiency_score, SCORE_MIN, SCORE_MAX),
            passenger_comfort_score=clamp(passenger_comfort_score, SCORE_MIN, SCORE_MAX),
            time_deviation=time_deviation,
            fuel_remaining=max(0.0, fuel_remaining),
        )


IMPACT_SYSTEM_PROMPT = (
    "You are an aviation training assessor. You judge how a pilot's decision "
    "affects flight safety, operational efficiency and passenger comfort."
)


def build_impact_prompt(
    decision: Decision,
    option: DecisionOption,
    state: StateSnapshot,
    params: Optional[FlightParameters],
) -> List[Dict[str, str]]:
    altitude = params.altitude if params else None
    heading = params.heading if params else None
    prompt = f"""
Analyze the impact of this decision in a flight scenario.

Current state:
- Safety score: {state.safety_score}/100
- Efficiency score: {state.efficiency_score}/100
- Passenger comfort score: {state.passenger_comfort_score}/100
- Time deviation: {state.time_deviation} minutes
- Fuel remaining: {state.fuel_remaining} lbs
- Altitude: {altitude if altitude is not None else "unknown"} feet
- Heading: {heading if heading is not None else "unknown"} degrees

Decision: {decision.title}
{decision.description}

Chosen option: {option.text}
Expected consequences: {option.consequences}
This option {"was" if option.is_recommended else "was not"} the recommended choice.

Respond with JSON only:
{{
  "safety_impact": number from -10 to 10,
  "efficiency_impact": number from -10 to 10,
  "passenger_comfort_impact": number from -10 to 10,
  "time_impact": minutes gained (negative) or lost (positive),
  "fuel_impact": pounds of fuel consumed (negative if saved),
  "description": "one or two sentences explaining the impact"
}}
""".strip()
    return [
        {"role": "system", "content": IMPACT_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def resolve_choice(
    repo: ScenarioRepository,
    scenario_id: str,
    decision_id: str,
    option_id: str,
) -> Tuple[Decision, DecisionOption]:
    """
    Load a decision/option pair and check they belong together.

    Raises:
        NotFoundError: an ID does not resolve
        ValidationError: the pair does not belong to the scenario
    """
    decision = repo.get_decision(decision_id)
    if decision.scenario_id != scenario_id:
        raise ValidationError(f"Decision {decision_id} does not belong to scenario {scenario_id}")
    option = repo.get_option(option_id)
    if option.decision_id != decision.id:
        raise ValidationError(f"Option {option_id} does not belong to decision {decision_id}")
    return decision, option


def calculate_decision_impact(
    repo: ScenarioRepository,
    llm,
    scenario_id: str,
    decision_id: str,
    option_id: str,
) -> Tuple[ScenarioState, DecisionImpact]:
    """
    Score one decision and append the resulting state.

    Returns:
        (new ScenarioState, DecisionImpact)

    Raises:
        GenerationParseError: reply not extractable; nothing is written
    """
    log = get_scenario_logger(__name__, scenario_id).bind(
        decision_id=decision_id, option_id=option_id
    )
    repo.get_scenario(scenario_id)
    decision, option = resolve_choice(repo, scenario_id, decision_id, option_id)
    state = current_state(repo, scenario_id)
    record = repo.find_parameters(scenario_id)
    params = FlightParameters.from_record(record) if record is not None else None

    try:
        result = generate_json(llm, build_impact_prompt(decision, option, state, params))
        deltas = ImpactDeltas.from_model_output(result.data)
    except GenerationParseError:
        log.error("impact_parse_failed")
        raise

    next_state = fold_impact(state, deltas)
    with repo.unit_of_work():
        impact = repo.add_impact(scenario_id, decision.id, option.id, **deltas.to_dict())
        new_state = repo.append_state(scenario_id, impact_id=impact.id, **next_state.to_dict())

    log.info(
        "decision_impact_applied",
        safety=new_state.safety_score,
        efficiency=new_state.efficiency_score,
        comfort=new_state.passenger_comfort_score,
        time_deviation=new_state.time_deviation,
        fuel_remaining=new_state.fuel_remaining,
    )
    return new_state, impact
