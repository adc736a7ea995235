# flightsim/scenario/adaptation.py
"""
Difficulty adaptation.

Looks at the pilot's recent choices, asks the model whether to make the
rest of the scenario harder or easier, and applies the answer to what
has not happened yet: time limits of pending decisions, delays of unsent
communications and the weather cells.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..db.models import ScenarioAdaptation
from ..llm.extract import generate_json
from ..logging import get_scenario_logger
from ..store.repository import ScenarioRepository
from .evaluation import summarize_decisions

RECENT_RESPONSES = 5
NEUTRAL_RATIO = 0.5

ADJUSTMENTS = ("increase", "decrease", "maintain")
INTENSITY_LEVELS = ("light", "moderate", "heavy")

TIGHTEN_FACTOR = 0.8
RELAX_FACTOR = 1.2
CELL_GROWTH = 1.2
CELL_SHRINK = 0.8
MIN_CELL_SIZE = 0.1
MAX_CELL_SIZE = 1.0

ADAPTATION_SYSTEM_PROMPT = (
    "You are an adaptive flight training system. Adjust scenario difficulty "
    "so the pilot stays challenged without being overwhelmed."
)


@dataclass
class AdaptationPlan:
    difficulty_adjustment: str = "maintain"
    time_pressure_adjustment: str = "maintain"
    communication_frequency_adjustment: str = "maintain"
    weather_intensity_adjustment: str = "maintain"
    explanation: str = ""

    @classmethod
    def from_model_output(cls, data: Dict[str, Any]) -> "AdaptationPlan":
        """Unknown adjustment values become "maintain"."""
        def adjustment(key: str) -> str:
            value = str(data.get(key) or "maintain").strip().lower()
            return value if value in ADJUSTMENTS else "maintain"

        return cls(
            difficulty_adjustment=adjustment("difficulty_adjustment"),
            time_pressure_adjustment=adjustment("time_pressure_adjustment"),
            communication_frequency_adjustment=adjustment("communication_frequency_adjustment"),
            weather_intensity_adjustment=adjustment("weather_intensity_adjustment"),
            explanation=str(data.get("explanation") or ""),
        )


def scale_factor(adjustment: str) -> Optional[float]:
    """Time scaling for an adjustment: shorter when increasing, longer when decreasing."""
    if adjustment == "increase":
        return TIGHTEN_FACTOR
    if adjustment == "decrease":
        return RELAX_FACTOR
    return None


def adjust_weather_cells(cells: List[Dict[str, Any]], adjustment: str) -> List[Dict[str, Any]]:
    """Step each cell's intensity one level and grow or shrink it."""
    if adjustment not in ("increase", "decrease"):
        return cells
    step = 1 if adjustment == "increase" else -1
    adjusted = []
    for cell in cells:
        if not isinstance(cell, dict):
            adjusted.append(cell)
            continue
        cell = dict(cell)
        intensity = cell.get("intensity")
        if intensity in INTENSITY_LEVELS:
            index = INTENSITY_LEVELS.index(intensity) + step
            cell["intensity"] = INTENSITY_LEVELS[max(0, min(len(INTENSITY_LEVELS) - 1, index))]
        size = cell.get("size")
        if isinstance(size, (int, float)):
            if step > 0:
                cell["size"] = min(MAX_CELL_SIZE, size * CELL_GROWTH)
            else:
                cell["size"] = max(MIN_CELL_SIZE, size * CELL_SHRINK)
        adjusted.append(cell)
    return adjusted


def build_adaptation_prompt(
    recent: List[Dict[str, Any]],
    performance_ratio: float,
) -> List[Dict[str, str]]:
    history = "\n".join(
        f"- {r['decision']}: chose \"{r['option']}\" ({'recommended' if r['recommended'] else 'not recommended'})"
        for r in recent
    ) or "- no decisions yet"
    prompt = f"""
Recent pilot decisions:
{history}

Share of recommended choices: {performance_ratio:.2f}

Decide how the rest of the scenario should adapt. Respond with JSON only:
{{
  "difficulty_adjustment": "increase" | "decrease" | "maintain",
  "time_pressure_adjustment": "increase" | "decrease" | "maintain",
  "communication_frequency_adjustment": "increase" | "decrease" | "maintain",
  "weather_intensity_adjustment": "increase" | "decrease" | "maintain",
  "explanation": "one or two sentences"
}}
""".strip()
    return [
        {"role": "system", "content": ADAPTATION_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def apply_adaptation(
    repo: ScenarioRepository,
    scenario_id: str,
    plan: AdaptationPlan,
    performance_ratio: float,
) -> ScenarioAdaptation:
    """Store the plan and apply it to pending decisions, queued messages and weather."""
    log = get_scenario_logger(__name__, scenario_id)
    with repo.unit_of_work():
        adaptation = repo.add_adaptation(
            scenario_id,
            difficulty_adjustment=plan.difficulty_adjustment,
            time_pressure_adjustment=plan.time_pressure_adjustment,
            communication_frequency_adjustment=plan.communication_frequency_adjustment,
            weather_intensity_adjustment=plan.weather_intensity_adjustment,
            explanation=plan.explanation,
            performance_ratio=performance_ratio,
        )

        factor = scale_factor(plan.time_pressure_adjustment)
        if plan.difficulty_adjustment != "maintain" and factor is not None:
            for node in repo.list_nodes(scenario_id, is_active=False):
                if node.activated_at is not None or node.decision is None:
                    continue
                if node.decision.time_limit:
                    node.decision.time_limit = round(node.decision.time_limit * factor)

        factor = scale_factor(plan.communication_frequency_adjustment)
        if factor is not None:
            timing = repo.find_timing(scenario_id)
            now = timing.elapsed_seconds if timing is not None else 0
            for item in repo.list_queue(scenario_id, is_sent=False):
                if item.trigger_time is not None and item.trigger_time > now:
                    item.trigger_time = now + round((item.trigger_time - now) * factor)

        weather = repo.find_weather(scenario_id)
        if weather is not None and isinstance(weather.weather_data, list):
            adjusted = adjust_weather_cells(weather.weather_data, plan.weather_intensity_adjustment)
            if adjusted is not weather.weather_data:
                repo.set_weather(scenario_id, adjusted)

        repo.session.flush()

    log.info(
        "scenario_adapted",
        difficulty=plan.difficulty_adjustment,
        time_pressure=plan.time_pressure_adjustment,
        communication_frequency=plan.communication_frequency_adjustment,
        weather=plan.weather_intensity_adjustment,
        performance_ratio=performance_ratio,
    )
    return adaptation


def adapt_scenario_difficulty(repo: ScenarioRepository, llm, scenario_id: str) -> ScenarioAdaptation:
    """
    Adapt a running scenario to the pilot's recent performance.

    Raises:
        NotFoundError: unknown scenario
        GenerationParseError: reply not extractable; nothing is changed
    """
    repo.get_scenario(scenario_id)
    responses = list(reversed(repo.list_responses(scenario_id, limit=RECENT_RESPONSES, newest_first=True)))
    summary = summarize_decisions(responses)
    ratio = summary.recommended_ratio if summary.total else NEUTRAL_RATIO

    recent = [
        {
            "decision": r.decision.title,
            "option": r.option.text,
            "recommended": r.option.is_recommended,
        }
        for r in responses
    ]
    result = generate_json(llm, build_adaptation_prompt(recent, ratio))
    plan = AdaptationPlan.from_model_output(result.data)
    return apply_adaptation(repo, scenario_id, plan, ratio)
