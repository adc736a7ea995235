# flightsim/scenario/evaluation.py
"""
Scenario Evaluator.

Aggregates the final state, the decision history and the radio history
into one model-written evaluation, stored as the scenario's single
ScenarioEvaluation. The markdown performance report is returned to the
caller and not stored.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

from ..db.models import Communication, DecisionResponse, ScenarioEvaluation
from ..errors import GenerationParseError, NotFoundError
from ..llm.extract import generate_json
from ..logging import get_scenario_logger
from ..store.repository import ScenarioRepository
from .impact import SCORE_MAX, SCORE_MIN, StateSnapshot, clamp, current_state

SCORE_FIELDS = ("safety_score", "efficiency_score", "passenger_comfort_score", "overall_score")
LIST_FIELDS = ("strengths", "areas_for_improvement", "recommendations")

EVALUATION_SYSTEM_PROMPT = (
    "You are a senior flight instructor evaluating a pilot's performance "
    "in a simulator training scenario. Be specific and constructive."
)

REPORT_SYSTEM_PROMPT = (
    "You are a senior flight instructor writing a debrief report for a "
    "pilot after a simulator session. Write in markdown."
)


@dataclass
class DecisionSummary:
    """Counts used for the recommended-choice ratio."""
    total: int
    recommended: int

    @property
    def recommended_ratio(self) -> float:
        if self.total == 0:
            return 0.0
        return self.recommended / self.total


def summarize_decisions(responses: List[DecisionResponse]) -> DecisionSummary:
    recommended = sum(1 for r in responses if r.option is not None and r.option.is_recommended)
    return DecisionSummary(total=len(responses), recommended=recommended)


def _format_decisions(responses: List[DecisionResponse]) -> str:
    if not responses:
        return "No decisions were made."
    lines = []
    for number, response in enumerate(responses, start=1):
        decision = response.decision
        option = response.option
        lines.append(
            f"{number}. {decision.title}: {decision.description}\n"
            f"   Selected: {option.text}\n"
            f"   Was recommended: {'Yes' if option.is_recommended else 'No'}"
        )
    return "\n".join(lines)


def _format_communications(communications: List[Communication]) -> str:
    if not communications:
        return "No communications."
    return "\n".join(
        f"- [{c.type.upper()}] {c.sender}: {c.message}" for c in communications
    )


def build_evaluation_prompt(
    title: str,
    state: StateSnapshot,
    responses: List[DecisionResponse],
    communications: List[Communication],
) -> List[Dict[str, str]]:
    summary = summarize_decisions(responses)
    percent = round(summary.recommended_ratio * 100)
    prompt = f"""
Evaluate the pilot's performance in the scenario "{title}".

Final state:
- Safety score: {state.safety_score}/100
- Efficiency score: {state.efficiency_score}/100
- Passenger comfort score: {state.passenger_comfort_score}/100
- Time deviation: {state.time_deviation} minutes
- Fuel remaining: {state.fuel_remaining} lbs

Decision history:
{_format_decisions(responses)}

Communication history:
{_format_communications(communications)}

Performance metrics:
- Recommended choices: {summary.recommended}/{summary.total} ({percent}%)
- Recommended ratio: {summary.recommended_ratio}

Respond with JSON only:
{{
  "safety_score": number from 0 to 100,
  "efficiency_score": number from 0 to 100,
  "passenger_comfort_score": number from 0 to 100,
  "overall_score": number from 0 to 100,
  "strengths": ["string"],
  "areas_for_improvement": ["string"],
  "recommendations": ["string"]
}}
""".strip()
    return [
        {"role": "system", "content": EVALUATION_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def parse_evaluation(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate the evaluation object: scores clamped to [0, 100], lists of strings.

    Raises:
        GenerationParseError: a score is missing or not a number
    """
    fields: Dict[str, Any] = {}
    for name in SCORE_FIELDS:
        raw = data.get(name)
        if isinstance(raw, bool):
            raw = None
        try:
            fields[name] = clamp(float(raw), SCORE_MIN, SCORE_MAX)
        except (TypeError, ValueError):
            raise GenerationParseError(f"Evaluation response missing numeric {name}", raw_text=str(data))
    for name in LIST_FIELDS:
        raw = data.get(name) or []
        if isinstance(raw, str):
            raw = [raw]
        fields[name] = [str(item) for item in raw if item is not None]
    return fields


def evaluate_scenario(repo: ScenarioRepository, llm, scenario_id: str) -> ScenarioEvaluation:
    """
    Evaluate a scenario and store the result (replacing any earlier one).

    Raises:
        NotFoundError: unknown scenario
        GenerationParseError: reply not extractable; nothing is written
    """
    log = get_scenario_logger(__name__, scenario_id)
    scenario = repo.get_scenario(scenario_id)
    state = current_state(repo, scenario_id)
    responses = repo.list_responses(scenario_id)
    communications = repo.list_communications(scenario_id)

    messages = build_evaluation_prompt(scenario.title, state, responses, communications)
    try:
        fields = parse_evaluation(generate_json(llm, messages).data)
    except GenerationParseError:
        log.error("evaluation_parse_failed")
        raise

    with repo.unit_of_work():
        evaluation = repo.save_evaluation(scenario_id, **fields)

    summary = summarize_decisions(responses)
    log.info(
        "scenario_evaluated",
        overall_score=evaluation.overall_score,
        decisions=summary.total,
        recommended_ratio=summary.recommended_ratio,
    )
    return evaluation


def get_evaluation(repo: ScenarioRepository, scenario_id: str) -> ScenarioEvaluation:
    repo.get_scenario(scenario_id)
    evaluation = repo.find_evaluation(scenario_id)
    if evaluation is None:
        raise NotFoundError("ScenarioEvaluation", scenario_id)
    return evaluation


def build_report_prompt(
    title: str,
    evaluation: ScenarioEvaluation,
    responses: List[DecisionResponse],
) -> List[Dict[str, str]]:
    def bullets(items: List[str]) -> str:
        return "\n".join(f"- {item}" for item in items) or "- none"

    prompt = f"""
Write a performance report for the simulator scenario "{title}".

Scores:
- Safety: {evaluation.safety_score}/100
- Efficiency: {evaluation.efficiency_score}/100
- Passenger comfort: {evaluation.passenger_comfort_score}/100
- Overall: {evaluation.overall_score}/100

Strengths:
{bullets(evaluation.strengths)}

Areas for improvement:
{bullets(evaluation.areas_for_improvement)}

Recommendations:
{bullets(evaluation.recommendations)}

Decision history:
{_format_decisions(responses)}

Structure the report with these markdown sections:
1. Executive Summary
2. Performance Analysis
3. Decision Analysis
4. Recommendations for Improvement
5. Conclusion
""".strip()
    return [
        {"role": "system", "content": REPORT_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def generate_performance_report(repo: ScenarioRepository, llm, scenario_id: str) -> str:
    """
    Markdown debrief built from the stored evaluation.

    Raises:
        NotFoundError: scenario unknown or not yet evaluated
    """
    scenario = repo.get_scenario(scenario_id)
    evaluation = get_evaluation(repo, scenario_id)
    responses = repo.list_responses(scenario_id)
    report = llm.generate(build_report_prompt(scenario.title, evaluation, responses))
    get_scenario_logger(__name__, scenario_id).info("performance_report_generated", length=len(report))
    return report
